from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "postgresql+psycopg2://postgres@127.0.0.1:5499/prbot_development"
    DB_ECHO: bool = False
    # Seconds a SQLite connection waits for the database write lock
    SQLITE_BUSY_TIMEOUT: float = 30.0

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Request signing for mutating routes; empty means not ready
    WEBHOOK_SECRET: str = ""

    # Server bind address for `review-queue serve`
    HOST: str = "0.0.0.0"
    PORT: int = 8000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
