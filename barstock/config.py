# barstock/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(env_path), extra="ignore")

    DATABASE_URL: str = "sqlite:///./barstock.db"

    # Auth provider (Supabase-style JWKS endpoint)
    SUPABASE_URL: str = "http://localhost:54321"
    JWKS_URL: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    JWKS_CACHE_TTL_SECONDS: int = 600
    JWKS_MIN_REFRESH_SECONDS: int = 30

    # Alerts
    EXPIRY_ALERT_DAYS: int = 7

    FRONTEND_URL: Optional[str] = None
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # AI assistant
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"

    @property
    def jwks_url(self) -> str:
        if self.JWKS_URL:
            return self.JWKS_URL
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1/jwks"

    @property
    def database_url(self) -> str:
        # SQLAlchemy requires postgresql:// instead of the legacy postgres:// scheme
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
