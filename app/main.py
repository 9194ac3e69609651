# app/main.py
import os
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db

# Routers
from .routers.appointments import router as appointments_router
from .routers.chat import router as chat_router
from .routers.clinic import router as clinic_router

# ──────────────────────────────────────────────────────────────────────────────
# LOGGING
# Levels come from environment variables:
#   LOG_LEVEL, AGENT_LOG_LEVEL, SQLA_LOG_LEVEL, UVICORN_LOG_LEVEL
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Conversation dispatcher verbosity
logging.getLogger("app.agent").setLevel(
    getattr(logging, os.getenv("AGENT_LOG_LEVEL", "DEBUG"), logging.DEBUG)
)
logging.getLogger("sqlalchemy.engine").setLevel(
    getattr(logging, os.getenv("SQLA_LOG_LEVEL", "WARNING"), logging.WARNING)
)
logging.getLogger("uvicorn.error").setLevel(
    getattr(logging, os.getenv("UVICORN_LOG_LEVEL", "INFO"), logging.INFO)
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────
app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(clinic_router)
app.include_router(appointments_router)
app.include_router(chat_router)


# ──────────────────────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Startup complete: %s (%s)", settings.APP_NAME, settings.ENV)


@app.get("/")
def root():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "env": settings.ENV,
        "endpoints": {
            "health": "/health",
            "clinic_info": "/api/clinic-info",
            "doctors": "/api/doctors",
            "slots": "/api/slots?doctor_id=...&date=YYYY-MM-DD",
            "appointments": "/api/appointments",
            "chat": "/api/chat",
        },
    }


@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}
