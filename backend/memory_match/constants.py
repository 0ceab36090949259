"""Константы игры и ограничения ввода."""
from typing import TypedDict


class Limits(TypedDict):
    min_images: int
    max_images: int


LIMITS: Limits = {"min_images": 1, "max_images": 50}

ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"}

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOADS_URL_PREFIX = "/uploads"

# Карт в раунде: после второй переворачиваемой карты раунд решается
ROUND_SIZE = 2

FLIP_CONFLICT_RETRIES = 3
USER_GAMES_LIMIT = 20
