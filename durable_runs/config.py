"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Environment ('development', 'test', 'production')
    APP_ENV: str = "development"

    # Trusted base URL; its origin is the only host queue callbacks target
    APP_BASE_URL: str
    RUN_STEP_PATH: str = "/jobs/run-step"

    # QStash
    QSTASH_URL: str = "https://qstash.upstash.io"
    QSTASH_TOKEN: str = ""
    QSTASH_TIMEOUT_SECONDS: float = 10.0

    # Startup
    RUN_MIGRATIONS_ON_STARTUP: bool = True

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
