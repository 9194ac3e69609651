# app/dependencies.py
from fastapi import Depends

from .agent.dispatcher import ConversationDispatcher
from .services.backend import SqlBackend
from .services.booking import BookingService
from .services.llm import LLMClient
from .services.reschedule import RescheduleSaga

# The LLM client keeps one HTTP client for the whole process
_llm = LLMClient()


def get_backend() -> SqlBackend:
    return SqlBackend()


def get_llm() -> LLMClient:
    return _llm


def get_booking_service(backend: SqlBackend = Depends(get_backend)) -> BookingService:
    return BookingService(backend)


def get_reschedule(booking: BookingService = Depends(get_booking_service)) -> RescheduleSaga:
    return RescheduleSaga(booking)


def get_dispatcher(
    backend: SqlBackend = Depends(get_backend),
    llm: LLMClient = Depends(get_llm),
    booking: BookingService = Depends(get_booking_service),
    rescheduler: RescheduleSaga = Depends(get_reschedule),
) -> ConversationDispatcher:
    return ConversationDispatcher(backend, llm, booking=booking, rescheduler=rescheduler)
