"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Server store
    DATABASE_URL: str = "sqlite:///./data/expense_tracker.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:8080", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # Community pool
    COMMUNITY_CONTRIBUTION_INCREMENT: int = 5
    COMMUNITY_BULK_INCREMENT: int = 2
    COMMUNITY_TRUST_CAP: int = 100
    COMMUNITY_PULL_MIN_TRUST: int = 50
    COMMUNITY_PULL_PRODUCT_LIMIT: int = 100
    COMMUNITY_PULL_MERCHANT_LIMIT: int = 50
    COMMUNITY_SEARCH_LIMIT: int = 20

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
