# bookkeeper/config.py
# Application settings loaded from BOOKKEEPER_* environment variables and .env

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the bookkeeping API."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Bookkeeper API"
    version: str = "1.0.0"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 5001

    # Database
    database_url: str = "sqlite:///./bookkeeper.db"
    backup_dir: str = "backups"
    # Accounts allowed to back up, restore and reconfigure the whole install
    admin_emails: List[str] = []

    # Authentication
    jwt_secret: str = "change-this-secret-in-production"
    jwt_algorithm: str = "HS256"
    token_expire_hours: int = 24
    bcrypt_rounds: int = 12

    # HTTP edge
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60
    max_body_bytes: int = 10 * 1024 * 1024

    # Receipt scanning backend ("simulated" is the only bundled one)
    receipt_scanner: str = "simulated"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "test")

    @property
    def allowed_origins(self) -> List[str]:
        if self.is_development:
            return self.cors_origins + ["*"]
        return self.cors_origins

    @property
    def database_path(self) -> Optional[Path]:
        """Filesystem path of the SQLite database, None for other backends."""
        prefix = "sqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        location = self.database_url[len(prefix):]
        if not location or location == ":memory:":
            return None
        return Path(location)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
