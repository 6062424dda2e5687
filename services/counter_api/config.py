"""Configuration management for the Be There counter service."""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service configuration
    SERVICE_NAME: str = "be-there-counter"
    API_VERSION: str = "v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Local durable file
    DATA_FILE: str = "data.json"
    DEFAULT_EVENT_TEXT: str = "Event Text"

    # Redis configuration (remote counter is disabled when REDIS_URL is unset)
    REDIS_URL: Optional[str] = None
    REDIS_KEY: str = "be-there:count"
    REDIS_TIMEOUT_SECONDS: float = 0.5

    # Admin shared secret
    ADMIN_PASSWORD: str = "changeme"

    # Vote tracking
    VOTE_TRACKER: str = "cookie"  # local_flag, cookie or address
    VOTE_COOKIE_NAME: str = "be_there_voted"
    VOTE_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 365
    VOTE_COOKIE_SECURE: bool = False
    CLIENT_FLAG_HEADER: str = "X-Be-There-Clicked"
    TRUST_FORWARDED_FOR: bool = True

    # Rate limiting
    RATE_LIMIT: str = "30/second"
    RATE_LIMIT_ENABLED: bool = True

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def remote_enabled(self) -> bool:
        """Whether a remote Redis counter is configured."""
        return bool(self.REDIS_URL)


settings = Settings()
