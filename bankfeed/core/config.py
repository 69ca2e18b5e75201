from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Bankfeed Backend"
    ENV: str = "dev"

    # SQLite file next to the package so the path does not depend on the CWD
    _default_db_path = Path(__file__).resolve().parents[2] / "db.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Europe/Rome"
    LOG_LEVEL: str = "INFO"
    DEFAULT_CURRENCY: str = "EUR"

    # Recurring-expense matcher tolerances
    MATCH_DATE_TOLERANCE_DAYS: int = 5
    MATCH_AMOUNT_TOLERANCE_PCT: float = 0.10
    MATCH_AMOUNT_TOLERANCE_ABS: float = 1.00

    # Webhook receiver
    WEBHOOK_SIGNATURE_HEADERS: list[str] = ["X-Signature", "X-Webhook-Signature", "Tally-Signature"]
    WEBHOOK_LOG_DEFAULT_LIMIT: int = 50
    WEBHOOK_LOG_MAX_LIMIT: int = 100

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="BANKFEED_", case_sensitive=False)


settings = Settings()
