# trainer_hub/config.py
import os
from functools import lru_cache
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

class Settings:
    # ---- Database ----
    DB_USER: str = os.getenv("DB_USER", "trainer")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "abc123")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: str = os.getenv("DB_PORT", "3306")
    DB_NAME: str = os.getenv("DB_NAME", "trainer_hub")

    # Full URL wins; else build from parts (defaults to MySQL/PyMySQL)
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        f"mysql+pymysql://{quote_plus(DB_USER)}:{quote_plus(DB_PASSWORD)}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
    )

    # Alias for libraries that expect this name
    SQLALCHEMY_DATABASE_URL: str = os.getenv(
        "SQLALCHEMY_DATABASE_URL",
        DATABASE_URL,
    )

    DB_POOL_PRE_PING: bool = os.getenv("DB_POOL_PRE_PING", "true").lower() == "true"

    # ---- Logging ----
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ---- Session bookkeeping ----
    # Every new client starts with this many sessions, whatever package was picked.
    DEFAULT_SESSION_ALLOWANCE: int = int(os.getenv("DEFAULT_SESSION_ALLOWANCE", "10"))
    RECURRING_WEEKS: int = int(os.getenv("RECURRING_WEEKS", "4"))

    # ---- Notifications (email via Resend, SMS via Twilio) ----
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    RESEND_API_URL: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "Training Notifications <onboarding@resend.dev>")

    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.getenv("TWILIO_PHONE_NUMBER", "")

    NOTIFY_TIMEOUT: int = int(os.getenv("NOTIFY_TIMEOUT", "10"))  # seconds

    # Helpers
    @property
    def is_sqlite(self) -> bool:
        return self.SQLALCHEMY_DATABASE_URL.startswith("sqlite")

@lru_cache
def get_settings() -> Settings:
    return Settings()
