from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "VitalView Monitor"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = ""  # local, dev, prod (from .env)

    # CORS (from .env, comma-separated)
    BACKEND_CORS_ORIGINS: List[str] = []

    # Logging & Sentry
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # MongoDB (from .env)
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "vitalview"

    # Throttle ledger (set empty to keep it in memory)
    REDIS_URL: str | None = None

    # Extraction
    VISION_API_URL: str = "https://router.huggingface.co/v1/chat/completions"
    VISION_API_KEY: str | None = None
    VISION_MODEL: str = "Qwen/Qwen2.5-VL-7B-Instruct"
    VISION_MAX_TOKENS: int = 500
    TESSERACT_CMD: str | None = None
    EXTRACTOR_TIMEOUT_SECONDS: float = 20.0

    # Alerts
    ALERT_RULES_PATH: str | None = None
    NOTIFY_EMAIL: str | None = None
    NOTIFY_PHONE: str | None = None
    NOTIFY_THROTTLE_SECONDS: int = 300
    DASHBOARD_URL: str = "http://localhost:5173/dashboard"

    # SMTP (leave credentials empty to simulate email delivery)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_SENDER: str | None = None
    SMTP_USE_TLS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()
