"""
Application configuration.
Values are read from environment variables / .env file via pydantic-settings.
Per-channel notification switches and the default working window live here so
operators can change them without a deploy.
"""
import logging
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str
    JWT_SECRET_KEY: str = ""

    # Practice-local wall clock; all appointment timestamps are stored in it
    TIMEZONE: str = "Africa/Johannesburg"

    # Default working window when a practitioner has no weekly schedule
    WORKING_HOURS_START: str = "08:00"
    WORKING_HOURS_END: str = "20:00"
    SLOT_GRANULARITY_MINUTES: int = 30

    # Notifications
    NOTIFICATION_CHANNEL_TIMEOUT_SECONDS: float = 10.0
    REMINDER_LEAD_HOURS: int = 24
    SEND_SMS_ON_BOOKING: bool = True
    SEND_SMS_ON_UPDATE: bool = True
    SEND_SMS_ON_CANCELLATION: bool = True
    SEND_SMS_REMINDERS: bool = True
    CALENDAR_SYNC_ENABLED: bool = False
    INVOICE_EMAIL_ENABLED: bool = True

    # Twilio SMS
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    SMS_DEFAULT_COUNTRY_CODE: str = "27"

    # SendGrid Email
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "noreply@practiceflow.app"
    SENDGRID_FROM_NAME: str = "PracticeFlow"

    # Google Calendar
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CALENDAR_ACCESS_TOKEN: str = ""

    # Shared secret for the scheduled reminder job
    CRON_SECRET: str = ""

    class Config:
        env_file = ".env"


settings = Settings()

# Validate critical security settings
if not settings.JWT_SECRET_KEY:
    raise ValueError(
        "JWT_SECRET_KEY is not set. It must exist as a JWT_SECRET_KEY environment variable. "
        "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )

if not settings.CRON_SECRET:
    logger.warning("CRON_SECRET is not set; the reminder job endpoint will reject every call.")
