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

    media_root: str = "data/media"

    photo_aspect_ratio: str = "16:9"
    photo_max_width: int = 1280
    photo_byte_budget: int = 160 * 1024
    photo_initial_quality: float = 0.82
    photo_quality_decrement: float = 0.07
    photo_quality_floor: float = 0.20

    photo_batch_max: int = 6
    photo_batch_min: int = 3


def _build_settings() -> Settings:
    _load_env_file()

    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        media_root=os.getenv("MEDIA_ROOT", "data/media"),
        photo_aspect_ratio=os.getenv("PHOTO_ASPECT_RATIO", "16:9"),
        photo_max_width=int(os.getenv("PHOTO_MAX_WIDTH", "1280")),
        photo_byte_budget=int(os.getenv("PHOTO_BYTE_BUDGET", str(160 * 1024))),
        photo_initial_quality=float(os.getenv("PHOTO_INITIAL_QUALITY", "0.82")),
        photo_quality_decrement=float(os.getenv("PHOTO_QUALITY_DECREMENT", "0.07")),
        photo_quality_floor=float(os.getenv("PHOTO_QUALITY_FLOOR", "0.20")),
        photo_batch_max=int(os.getenv("PHOTO_BATCH_MAX", "6")),
        photo_batch_min=int(os.getenv("PHOTO_BATCH_MIN", "3")),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
