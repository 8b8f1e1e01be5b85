from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # DB
    DATABASE_URL: str = "sqlite:///./pricewatch.db"
    DB_CONNECT_TIMEOUT_SECONDS: int = 5
    DB_STATEMENT_TIMEOUT_SECONDS: int = 5

    # Price provider
    PRICE_API_URL: str = "https://deep-index.moralis.io/api/v2.2"
    PRICE_API_KEY: Optional[str] = None
    PRICE_CHAIN: str = "0x1"
    PRICE_FETCH_TIMEOUT_SECONDS: float = 5.0

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    POLL_INTERVAL_SECONDS: float = 300.0

    # Alerts
    ALERT_BAND: Decimal = Decimal("0.01")
    CHANGE_NOTIFY_EMAIL: Optional[str] = None

    # Mail
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: Optional[str] = None
    SMTP_STARTTLS: bool = True
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
