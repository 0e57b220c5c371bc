from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Harvi Content API"
    app_version: str = "1.0.0"

    # Database
    database_url: str = "sqlite+aiosqlite:///./harvi.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Cascades and reads
    cascade_timeout_seconds: float = 10.0
    lecture_batch_limit: int = 50

    # How long a SQLite connection waits for another writer before giving up
    sqlite_busy_timeout_seconds: float = 5.0

    # CORS
    cors_origins: str = "*"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
