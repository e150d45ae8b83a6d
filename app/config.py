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
    APP_NAME: str = "clinic_scheduling"
    ENV: str = "dev"
    # Local TZ of the clinic (all instants are stored naive-local)
    TIMEZONE: str = "Europe/Paris"

    # ===== DB =====
    # In production set DATABASE_URL to Postgres. Local falls back to SQLite.
    DATABASE_URL: str = "sqlite:///./clinic.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Scheduling rules =====
    DEFAULT_SLOT_MINUTES: int = 15
    MAX_APPOINTMENT_HOURS: int = 4
    UPCOMING_LIMIT: int = 5

    # ===== Reminder job =====
    SCHEDULER_ENABLED: bool = True
    REMINDER_INTERVAL_SECONDS: int = 60
    REMINDER_WINDOW_MINUTES: int = 30

    # ===== Email (SMTP) =====
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT: int = 10
    EMAIL_FROM: str = "no-reply@clinic.local"
    EMAIL_FROM_NAME: str = "Clinic"

    # ===== Twilio (WhatsApp reminders) =====
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None
    WHATSAPP_REMINDERS: bool = False

    # Simulation (True = nothing leaves the process, only logs)
    DRY_RUN: bool = False

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None

    def model_post_init(self, __context) -> None:
        """
        Normalizes values that are commonly mistyped in env files:
          - postgres:// → postgresql:// (SQLAlchemy 2 no longer accepts the alias)
          - non-positive intervals fall back to defaults
        """
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = "postgresql://" + self.DATABASE_URL[len("postgres://"):]

        if self.REMINDER_INTERVAL_SECONDS <= 0:
            self.REMINDER_INTERVAL_SECONDS = 60
        if self.DEFAULT_SLOT_MINUTES <= 0:
            self.DEFAULT_SLOT_MINUTES = 15


settings = Settings()
