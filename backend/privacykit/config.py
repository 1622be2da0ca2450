from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import List, Literal

BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "PrivacyKit"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    BASE_URL: str = "http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:8080"

    # Database
    DATABASE_URL: str = f"sqlite:///{BACKEND_DIR / 'privacykit.db'}"
    SQLITE_SYNCHRONOUS: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = "FULL"

    # Link Settings
    SHORT_CODE_LENGTH: int = 6
    CODE_MAX_ATTEMPTS: int = 10

    # HTTP
    CORS_ORIGINS: List[str] = ["*"]

    # Extra domains that may not be used as link targets
    BLOCKED_DOMAINS: List[str] = []

    class Config:
        # Resolve backend/.env relative to this file so settings load correctly
        env_file = str(BACKEND_DIR / ".env")
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
