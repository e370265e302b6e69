# app/config/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # App Info
    app_name: str = "Report Dashboard API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./dashboard.db")

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "change-in-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 10080

    # Payment provider integration (webhook handler authenticates with this key)
    system_api_key: Optional[str] = os.getenv("SYSTEM_API_KEY")

    # Accounts
    password_history_limit: int = 5
    max_login_attempts: int = 5
    lockout_minutes: int = 15

    # Sesiones sin actividad: se cierran cada `session_sweep_minutes` (0 = desactivado)
    session_stale_hours: int = 4
    session_sweep_minutes: int = 5

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # Server
    host: str = "0.0.0.0"
    port: int = int(os.getenv("PORT", 10000))
    cors_origins: List[str] = ["*"]

    @property
    def database_url_with_ssl(self) -> str:
        """Agregar SSL para conexiones de producción"""
        if self.database_url and "render" in self.database_url:
            if "?sslmode=" not in self.database_url:
                return f"{self.database_url}?sslmode=require"
        return self.database_url

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

settings = Settings()
