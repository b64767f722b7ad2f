"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DailyCommit"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database (aggregate store)
    DATABASE_URL: str = "sqlite:///./dailycommit.db"

    # GitHub API
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: Optional[str] = None
    USER_AGENT: str = "DailyCommit/1.0"

    # HTTP client behaviour
    REQUEST_TIMEOUT_SECONDS: float = 20.0
    MAX_RETRIES: int = 3
    BACKOFF_BASE_SECONDS: float = 0.5
    BACKOFF_MAX_SECONDS: float = 8.0
    RATE_LIMIT_BUFFER_SECONDS: float = 1.0

    # Collection limits
    MAX_CONCURRENT_REQUESTS: int = 5
    MAX_PAGES_PER_REPOSITORY: int = 50
    PER_PAGE: int = 100
    SYNC_DEADLINE_SECONDS: float = 120.0
    INCLUDE_FORKS: bool = True
    LIGHT_SYNC_DAYS: int = 30

    # Sync behaviour
    SYNC_COALESCE: bool = True  # False rejects duplicate triggers instead
    DEFAULT_TIMEZONE: str = "UTC"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
