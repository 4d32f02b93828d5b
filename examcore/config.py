"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str

    # Auth - tokens are issued by the user service, only verified here
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_ENABLED: bool = True

    # Application
    APP_NAME: str = "Exam Session Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 120
    RATE_LIMIT_PER_HOUR: int = 3000

    # Exam Settings
    PREVIEW_TTL_SECONDS: int = 3600  # 1 hour
    DEFAULT_POINTS: float = 5.0
    DEFAULT_PASSING_SCORE: float = 60.0
    DEFAULT_MAX_ATTEMPTS: int = 1
    HISTORY_PAGE_LIMIT: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
