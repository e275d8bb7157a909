"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _load_env_file(path: str = ".env") -> None:
    """Populate os.environ from the provided .env file if it exists."""

    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Centralised project settings based on OS environment variables."""

    environment: str = "dev"
    log_level: str = "INFO"

    ai_api_key: str = ""
    ai_base_url: str = "https://api.aitunnel.ru/v1"
    ai_health_path: str = "/models"
    ai_vision_model: str = "gemini-2.5-flash"
    ai_chat_model: str = "gpt-4o"
    ai_image_model: str = "gemini-2.5-flash-image"
    ai_image_size: str = "1024x1024"
    ai_request_timeout: float = 60.0

    storage_backend: str = "json"
    storage_path: str = "data/closet.json"
    database_url: str = "sqlite+aiosqlite:///./data/closet.db"
    scan_history_limit: int = 20

    camera_index: int = 0


def _build_settings() -> Settings:
    _load_env_file()

    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        ai_api_key=os.getenv("AI_API_KEY", ""),
        ai_base_url=os.getenv("AI_BASE_URL", "https://api.aitunnel.ru/v1"),
        ai_health_path=os.getenv("AI_HEALTH_PATH", "/models"),
        ai_vision_model=os.getenv("AI_VISION_MODEL", "gemini-2.5-flash"),
        ai_chat_model=os.getenv("AI_CHAT_MODEL", "gpt-4o"),
        ai_image_model=os.getenv("AI_IMAGE_MODEL", "gemini-2.5-flash-image"),
        ai_image_size=os.getenv("AI_IMAGE_SIZE", "1024x1024"),
        ai_request_timeout=float(os.getenv("AI_REQUEST_TIMEOUT", "60")),
        storage_backend=os.getenv("STORAGE_BACKEND", "json").lower(),
        storage_path=os.getenv("STORAGE_PATH", "data/closet.json"),
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/closet.db"),
        scan_history_limit=int(os.getenv("SCAN_HISTORY_LIMIT", "20")),
        camera_index=int(os.getenv("CAMERA_INDEX", "0")),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
