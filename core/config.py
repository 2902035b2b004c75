from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

# Resolve the project root .env file (core/../.env)
_THIS_DIR = Path(__file__).resolve().parent          # core/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

class Settings(BaseSettings):
    # Server config
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Frontend config
    FRONTEND_URL: str = "http://localhost:5173"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # JWT Auth
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # Redis config (for rate limiting)
    REDIS_URL: str = "redis://localhost:6379"

    # Razorpay
    # Checkout secret (client-side verification) and webhook secret are
    # independent values and must stay that way.
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    GATEWAY_TIMEOUT_SECONDS: int = 30

    # Payments
    PAYMENT_CURRENCY: str = "INR"
    HISTORY_DEFAULT_LIMIT: int = 20
    HISTORY_MAX_LIMIT: int = 100
    ANALYTICS_DEFAULT_DAYS: int = 30
    # Per-IP requests per minute on create-order and verify
    PAYMENT_RATE_LIMIT_PER_MINUTE: int = 10

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
