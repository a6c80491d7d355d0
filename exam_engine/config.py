"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./exam_engine.db"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    EXAM_CACHE_TTL: int = 900  # 15 minutes

    # Application
    APP_NAME: str = "Exam Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Scoring
    PASS_THRESHOLD: int = 60  # percent
    RESUBMISSION_POLICY: str = "reject"  # reject | overwrite
    UNRESOLVABLE_QUESTION_POLICY: str = "count_wrong"  # count_wrong | exclude

    # Sampling
    MIN_SAMPLE_COUNT: int = 1
    MAX_SAMPLE_COUNT: int = 50
    DEFAULT_SAMPLE_COUNT: int = 5
    PERSIST_SAMPLED_EXAMS: bool = True
    SAMPLED_EXAM_TTL_MINUTES: int = 60
    DEFAULT_ASSIGNMENT_TTL_MINUTES: int = 60  # 0 = never expires

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
