"""Configuration management for RealtyFlow."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration."""

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Database
    # For development: SQLite (file-based). For production: PostgreSQL.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./realtyflow.db")

    # Celery broker / result backend (meeting reminders)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Google Calendar
    # OAuth code exchange happens outside this service; agents arrive here with
    # tokens already stored. We only refresh expired access tokens.
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_API_BASE: str = os.getenv("GOOGLE_API_BASE", "https://www.googleapis.com/calendar/v3")
    GOOGLE_TOKEN_URL: str = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
    CALENDAR_HTTP_TIMEOUT: float = float(os.getenv("CALENDAR_HTTP_TIMEOUT", "10"))

    # Email (SMTP)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "RealtyFlow <noreply@realtyflow.local>")

    # Twilio SMS
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER: str = os.getenv("TWILIO_PHONE_NUMBER", "")

    # Booking engine
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
    BOOKING_LOOKAHEAD_DAYS: int = int(os.getenv("BOOKING_LOOKAHEAD_DAYS", "7"))
    # When the calendar provider can't answer, treat the window as free (True)
    # or busy (False). Fail-open keeps bookings flowing during provider outages
    # at the cost of possible double-bookings.
    CALENDAR_FAIL_OPEN: bool = os.getenv("CALENDAR_FAIL_OPEN", "True").lower() == "true"
    # Re-verify the chosen window right before the meeting write.
    BOOKING_RECHECK_SLOT: bool = os.getenv("BOOKING_RECHECK_SLOT", "False").lower() == "true"
    REMINDER_MINUTES: int = int(os.getenv("REMINDER_MINUTES", "30"))

    @classmethod
    def is_production(cls) -> bool:
        """Production responses must not leak internal error text."""
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def has_google_oauth(cls) -> bool:
        """Check if Google OAuth client credentials are configured (needed for token refresh)."""
        return bool(cls.GOOGLE_CLIENT_ID and cls.GOOGLE_CLIENT_SECRET)

    @classmethod
    def has_smtp_config(cls) -> bool:
        """Check if SMTP configuration is complete."""
        return bool(cls.SMTP_HOST and cls.SMTP_USER)

    @classmethod
    def has_twilio_config(cls) -> bool:
        """Check if Twilio configuration is complete."""
        return all([
            cls.TWILIO_ACCOUNT_SID,
            cls.TWILIO_AUTH_TOKEN,
            cls.TWILIO_PHONE_NUMBER
        ])


# Create a global config instance
config = Config()
