"""
Runtime configuration loaded from the environment (.env supported).
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


# ============ Transport limits ============
MAX_IMAGES = _env_int("MAX_IMAGES", 5)
MAX_AUDIO = _env_int("MAX_AUDIO", 3)
MAX_FILE_BYTES = _env_int("MAX_FILE_BYTES", 10 * 1024 * 1024)
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
    if origin.strip()
]


@dataclass(frozen=True)
class PipelineSettings:
    """Per-call deadlines (seconds) for every external call the pipeline makes."""

    upload_timeout: float = 20.0
    image_timeout: float = 30.0
    audio_timeout: float = 60.0
    analyzer_timeout: float = 15.0
    delete_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        return cls(
            upload_timeout=_env_float("UPLOAD_TIMEOUT_SEC", cls.upload_timeout),
            image_timeout=_env_float("IMAGE_TIMEOUT_SEC", cls.image_timeout),
            audio_timeout=_env_float("AUDIO_TIMEOUT_SEC", cls.audio_timeout),
            analyzer_timeout=_env_float("ANALYZER_TIMEOUT_SEC", cls.analyzer_timeout),
            delete_timeout=_env_float("DELETE_TIMEOUT_SEC", cls.delete_timeout),
        )
