from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = Field(default="dev", description="dev|staging|prod")
    APP_NAME: str = "TIDESK API"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 5000

    # Segurança
    JWT_SECRET: str = "tidesk-secret-key"
    ACCESS_EXPIRES_MIN: int = 24 * 60

    # DB
    DB_URL: str = "sqlite+aiosqlite:///./tidesk.db"
    RUN_MIGRATIONS_ON_STARTUP: bool = True

    # Fuso horário civil (numeração diária e identificadores de ticket)
    TIMEZONE: str = "America/Sao_Paulo"

    # Cache de permissões
    PERMISSION_CACHE_TTL_SECONDS: int = 5 * 60
    PERMISSION_CACHE_SWEEP_SECONDS: int = 60

    # Tickets finalizados
    CLOSED_TICKET_RESOLVE_HOURS: int = 24
    CLOSED_TICKET_SWEEP_SECONDS: int = 60 * 60

    # Perfis reservados
    ADMIN_PROFILE_NAME: str = "Administrador"
    AGENT_PROFILE_NAME: str = "Agente"
    USER_PROFILE_NAME: str = "Usuário"

    # Admin padrão
    ADMIN_EMAIL: str = "admin@tidesk.com"
    ADMIN_PASSWORD: str = "admin123"
    ADMIN_NAME: str = "Administrador"

    # Logs
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3333", "http://127.0.0.1:3333"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
