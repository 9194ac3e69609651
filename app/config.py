# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "clinic_receptionist"
    APP_VERSION: str = "1.0.0"
    ENV: str = "dev"
    # Local timezone of the clinic
    TIMEZONE: str = "America/New_York"
    CORS_ORIGINS: str = "*"

    # ===== DB =====
    # Production points DATABASE_URL to Postgres; local runs fall back to SQLite.
    DATABASE_URL: str = "sqlite:///./clinic.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== LLM (any OpenAI-compatible endpoint) =====
    LLM_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.groq.com/openai/v1"
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1000
    LLM_TIMEOUT_SECONDS: float = 30.0

    # ===== Booking policy =====
    BOOKING_WINDOW_MONTHS: int = 3
    DEFAULT_SLOT_MINUTES: int = 30

    # ===== Twilio (SMS notices) =====
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_SMS_FROM: Optional[str] = None

    # Dry run: log notices instead of sending them
    DRY_RUN: bool = False

    # ===== Backwards compatibility =====
    GROQ_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None

    def model_post_init(self, __context) -> None:
        """
        Backfill of:
          - GROQ_API_KEY / OPENAI_API_KEY -> LLM_API_KEY
        """
        if not self.LLM_API_KEY:
            self.LLM_API_KEY = self.GROQ_API_KEY or self.OPENAI_API_KEY

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
