"""
src/data/blob_store.py
──────────────────────
File-system storage for photographic evidence attached to readings.

The engine only ever sees the returned URL; it never reads images back.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from pathlib import Path

from config.settings import settings
from src.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:image/(\w+);base64,(.+)$", re.DOTALL)


class FileBlobStore:
    def __init__(
        self,
        root: str | Path = settings.UPLOADS_DIR,
        url_prefix: str = settings.UPLOADS_URL_PREFIX,
        max_bytes: int = settings.MAX_IMAGE_BYTES,
    ) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"
        self.max_bytes = max_bytes

    def save(self, payload: str | bytes, extension: str = "png") -> str:
        """
        Store an image and return its URL.

        Accepts a `data:image/<type>;base64,...` string or raw bytes.
        """
        if isinstance(payload, str):
            match = _DATA_URL.match(payload)
            if not match:
                raise ValidationError("Invalid base64 image data", field="image")
            extension = match.group(1).lower()
            try:
                data = base64.b64decode(match.group(2), validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValidationError(f"Invalid base64 image data: {exc}", field="image") from exc
        else:
            data = payload

        if not data:
            raise ValidationError("Image payload is empty", field="image")
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"Image is {len(data)} bytes, limit is {self.max_bytes}", field="image"
            )

        filename = f"{uuid.uuid4().hex}.{extension}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / filename).write_bytes(data)
        except OSError as exc:
            raise PersistenceError("image upload", exc) from exc
        return self.url_prefix + filename

    def _path_for(self, url: str | None) -> Path | None:
        if not url or not url.startswith(self.url_prefix):
            return None
        return self.root / Path(url).name

    def exists(self, url: str | None) -> bool:
        path = self._path_for(url)
        return path is not None and path.exists()

    def delete(self, url: str | None) -> None:
        """Remove a stored image. URLs this store did not issue are ignored."""
        path = self._path_for(url)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Error deleting image file %s: %s", path, exc)
