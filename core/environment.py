from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class EnvironmentSettings(BaseSettings):
    # MongoDB
    DATABASE_URI: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "motormatch"
    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Tokens emitidos pelo serviço de autenticação da loja
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    GUEST_TOKEN_HEADER: str = "X-Guest-Token"

    # Realtime: "local" (um processo) ou "redis" (fan-out entre workers)
    REALTIME_BACKEND: str = "local"

    # Attachments
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = "uploads/chat_attachments"
    UPLOAD_URL_PREFIX: str = "/chat-attachments"
    R2_ACCOUNT_ID: Optional[str] = None
    R2_ACCESS_KEY: Optional[str] = None
    R2_SECRET_KEY: Optional[str] = None
    R2_BUCKET: Optional[str] = None

    # Cache do badge de mensagens não lidas
    UNREAD_CACHE_TTL_SECONDS: int = 30

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }


@lru_cache
def get_environment() -> EnvironmentSettings:
    return EnvironmentSettings()
