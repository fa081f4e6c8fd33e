from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./familysync.db"

    # App
    APP_NAME: str = "FamilySync API"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Remote sync transport
    SYNC_SERVER_URL: str = "http://localhost:8080"
    SYNC_API_TOKEN: str = ""
    SYNC_TIMEOUT_SECONDS: float = 30.0
    SYNC_MAX_RETRIES: int = 3
    SYNC_RETRY_BASE_DELAY: float = 0.5
    SYNC_RETRY_MAX_DELAY: float = 5.0
    SYNC_INTERVAL_SECONDS: float = 300.0  # periodic push; 0 disables

    # Family join codes
    FAMILY_CODE_LENGTH: int = 6
    FAMILY_CODE_MAX_ATTEMPTS: int = 10


settings = Settings()
