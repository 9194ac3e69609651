import logging

from fastapi import APIRouter, Depends

from .. import schemas
from ..agent.dispatcher import ConversationDispatcher
from ..dependencies import get_dispatcher

router = APIRouter(prefix="/api", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=schemas.ChatResponse, response_model_by_alias=True)
def chat(req: schemas.ChatRequest, dispatcher: ConversationDispatcher = Depends(get_dispatcher)):
    # The dispatcher never raises; failures come back as a safe reply
    turn = dispatcher.handle_turn(req.message, req.conversation_history, req.session_data)
    logger.info("chat turn action=%s merge=%s", turn.action, sorted(turn.session_merge))
    return schemas.ChatResponse.from_turn(turn)
