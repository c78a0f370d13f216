from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings read from the environment or a .env file"""

    # API
    API_TITLE: str = "Bike Violation Management API"
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: str = "bike_violation"
    DATABASE_ECHO: bool = False

    # Bootstrap admin used by scripts/setup_admin.py
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_HOURS: int = 24
    ADMIN_SESSION_HOURS: int = 8
    PASSWORD_HASH_ITERATIONS: int = 260000
    COOKIE_DOMAIN: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "5/minute"

    # Uploads
    UPLOAD_ROOT: str = "public"
    MAX_UPLOAD_MB: int = 25

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def upload_dir(self) -> Path:
        """Directory served at /uploads"""
        return Path(self.UPLOAD_ROOT) / "uploads"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
