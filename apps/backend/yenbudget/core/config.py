from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import Literal


class Settings(BaseSettings):
    APP_NAME: str = "Yen Budget Manager"
    ENV: str = "dev"

    # SQLite file next to the backend so the path does not depend on the CWD
    _default_db_path = Path(__file__).resolve().parents[2] / "budget.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    # "sql" keeps state in DATABASE_URL, "json" keeps one file per namespace
    STORAGE_BACKEND: Literal["sql", "json"] = "sql"
    JSON_STORAGE_DIR: Path = Path(__file__).resolve().parents[2] / "data"
    DEFAULT_NAMESPACE: str = "default"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Asia/Tokyo"
    CURRENCY: str = "JPY"

    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path | None = None

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="YENBUDGET_", case_sensitive=False)


settings = Settings()
