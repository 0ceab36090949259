"""
Хранилище изображений: сохранить байты, вернуть URL, по которому их отдаёт сервер.
"""
import logging
import uuid
from pathlib import Path

from .constants import ALLOWED_IMAGE_EXTENSIONS, MAX_UPLOAD_BYTES, UPLOADS_URL_PREFIX
from .errors import InvalidInputError, PersistenceError

logger = logging.getLogger(__name__)


class LocalImageStore:
    """Файлы в каталоге на диске, отдаются через StaticFiles по url_prefix."""

    def __init__(
        self,
        root: Path,
        url_prefix: str = UPLOADS_URL_PREFIX,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def check_name(self, filename: str) -> str:
        """Расширение файла в нижнем регистре; неподдерживаемый тип — InvalidInputError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            raise InvalidInputError(f"Unsupported image type: {filename!r}")
        return ext

    def store(self, data: bytes, filename: str) -> str:
        ext = self.check_name(filename)
        if not data:
            raise InvalidInputError(f"Empty file: {filename!r}")
        if len(data) > self.max_bytes:
            raise InvalidInputError(f"File too large: {filename!r}")
        name = f"{uuid.uuid4()}{ext}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / name).write_bytes(data)
        except OSError as e:
            logger.exception("upload: cannot write %s", name)
            raise PersistenceError("Error uploading file") from e
        logger.info("upload: stored %s (%d bytes) as %s", filename, len(data), name)
        return f"{self.url_prefix}/{name}"

    def discard(self, url: str) -> None:
        """Удалить файл, ранее сохранённый через store."""
        name = url.rsplit("/", 1)[-1]
        try:
            (self.root / name).unlink(missing_ok=True)
        except OSError:
            logger.exception("upload: cannot remove %s", name)
            return
        logger.info("upload: removed %s", name)
