"""Конфигурация приложения."""
import os
from functools import lru_cache
from pathlib import Path

from .constants import FLIP_CONFLICT_RETRIES, MAX_UPLOAD_BYTES

_DEFAULT_UPLOAD_DIR = Path(__file__).resolve().parent.parent.parent / "uploads"


@lru_cache
def get_config():
    return type("Config", (), {
        "debug": os.environ.get("DEBUG", "0").lower() in ("1", "true", "yes"),
        "allowed_origins": os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        "auth_jwt_secret": os.environ.get("AUTH_JWT_SECRET", ""),
        "database_path": os.environ.get("DATABASE_PATH", ""),
        "upload_dir": Path(os.environ.get("UPLOAD_DIR", "") or _DEFAULT_UPLOAD_DIR),
        "max_upload_bytes": int(os.environ.get("MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES)),
        "flip_conflict_retries": int(os.environ.get("FLIP_CONFLICT_RETRIES", FLIP_CONFLICT_RETRIES)),
        "log_level": os.environ.get("LOG_LEVEL", "INFO").upper(),
    })()
