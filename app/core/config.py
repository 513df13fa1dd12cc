from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Revoked access tokens younger than this are kept by the sweep even if expired
    BLACKLIST_RETENTION_MINUTES: int = 60

    # One-time passcodes
    OTP_LENGTH: int = 6
    OTP_EXPIRE_MINUTES: int = 15

    # Phone verification
    PHONE_VERIFICATION_EXPIRE_SECONDS: int = 300
    DEFAULT_COUNTRY_CODE: str = "963"
    PARTIAL_MATCH_DIGITS: int = 7

    # Failed-attempt tracking and blocking
    BLOCK_MAX_ATTEMPTS: int = 5
    BLOCK_DURATION_MINUTES: int = 30
    ABUSE_WINDOW_MINUTES: int = 60
    ABUSE_PHONE_THRESHOLD: int = 3
    ABUSE_IP_THRESHOLD: int = 5
    ABUSE_PRINCIPAL_THRESHOLD: int = 3
    SECURITY_RECORD_RETENTION_HOURS: int = 24

    # Telegram (external messaging platform)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    # Bot updates are pushed to /api/telegram/webhook with this secret header
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = None
    TELEGRAM_WEBHOOK_URL: Optional[str] = None

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"

    def validate_required_secrets(self) -> list[str]:
        """Validate that critical secrets are set. Returns list of errors."""
        errors = []
        if not self.SECRET_KEY or len(self.SECRET_KEY) < 16:
            errors.append("SECRET_KEY must be set and at least 16 characters")
        if not self.DATABASE_URL:
            errors.append("DATABASE_URL must be set")
        if self.ENVIRONMENT == "production" and not self.TELEGRAM_BOT_TOKEN:
            errors.append("TELEGRAM_BOT_TOKEN must be set in production")
        if self.ENVIRONMENT == "production" and not self.TELEGRAM_WEBHOOK_SECRET:
            errors.append("TELEGRAM_WEBHOOK_SECRET must be set in production")
        return errors

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
