from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "pinme-ledger"

    LEDGER_JWT_SECRET: str = "pinme-ledger-secret-change-in-prod"
    LEDGER_JWT_TTL_DAYS: int = 7
    LEDGER_COOKIE_NAME: str = "pinme_ledger_session"

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    DATABASE_URL: str
    REDIS_URL: str

    WHATSAPP_PROVIDER: str = "dummy"  # dummy | cloud
    WHATSAPP_TOKEN: str = ""
    WHATSAPP_PHONE_NUMBER_ID: str = ""
    WHATSAPP_API_VERSION: str = "v21.0"
    WHATSAPP_API_BASE_URL: str = "https://graph.facebook.com"
    WHATSAPP_TIMEOUT_SECONDS: float = 10.0

    OTP_TTL_MINUTES: int = 5
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = 300
    OTP_SEND_RATE_LIMIT: int = 5
    OTP_VERIFY_RATE_LIMIT: int = 20
    OTP_CLEANUP_INTERVAL_SECONDS: float = 3600.0

    REMINDER_POLL_INTERVAL_SECONDS: float = 60.0
    REMINDER_BATCH_SIZE: int = 50
    REMINDER_TICK_LOCK_SECONDS: int = 300
    REMINDER_FALLBACK_NAME: str = "bhai"

    DEFAULT_TIMEZONE: str = "Asia/Kolkata"
    DEFAULT_CURRENCY: str = "INR"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def secure_cookies(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

settings = Settings()
