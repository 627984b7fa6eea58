"""
Application configuration.
Values come from environment variables or a local .env file. The
reconciliation knobs are exposed here so operators can tune the call
window without a redeploy.
"""
import logging
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    APP_ENV: str = "development"
    DATABASE_URL: str
    JWT_SECRET_KEY: str = ""
    DEBUG_SQL: bool = False

    # Reconciliation scheduler. Only one process per database may run it.
    SCHEDULER_ENABLED: bool = True
    RECONCILIATION_INTERVAL_SECONDS: int = 60
    COMPLETE_DURATION_SECONDS: int = 300
    NO_SHOW_TIMEOUT_MINUTES: int = 5
    SLOT_LOCK_TIMEOUT_MINUTES: int = 10

    # External payment gateway (hybrid payments)
    EXTERNAL_PAYMENT_URL: str = ""
    EXTERNAL_PAYMENT_API_KEY: str = ""
    EXTERNAL_PAYMENT_TIMEOUT_SECONDS: float = 15.0
    EXTERNAL_PAYMENT_CALLBACK_SECRET: str = ""  # checked against X-Callback-Token when set

    # Listing
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    class Config:
        env_file = ".env"


settings = Settings()

# Validate critical security settings
if not settings.JWT_SECRET_KEY:
    raise ValueError(
        "JWT_SECRET_KEY is not set. Provide it as an environment variable or in .env. "
        "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )

if settings.APP_ENV.lower() == "production" and not settings.SCHEDULER_ENABLED:
    logger.warning("SCHEDULER_ENABLED is false; appointments will not be reconciled by this process")
