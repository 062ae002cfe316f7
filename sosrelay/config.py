from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings shared by the command service and the relay.
    Loaded from environment variables, with .env as a fallback.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Command service database (safe bases, SOS events, alert log)
    DATABASE_URL: str = "sqlite:///./safebase.db"

    LOG_LEVEL: str = "INFO"

    # Seed the two default safe bases when the directory is empty
    SEED_SAFE_BASES: bool = True

    # Number of SOS events returned by GET /events
    EVENTS_LIMIT: int = 100

    # Relay -> command service forwarding
    COMMAND_URL: str = "http://localhost:6060"
    FORWARD_TIMEOUT_SECONDS: float = 5.0

    # Retry queue backoff: min(max_delay, base_delay * 2**attempts)
    RETRY_BASE_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 60000

    # 0 keeps retrying forever; N > 0 dead-letters the head after N failures
    RETRY_MAX_ATTEMPTS: int = 0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
