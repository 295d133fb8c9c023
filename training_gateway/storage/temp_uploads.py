"""Local scratch copies of uploaded datasets, removed after hand-off."""

import logging
import os
import shutil
import tempfile
import time
from typing import Optional

from fastapi import UploadFile

from training_gateway.errors import UploadTooLargeError

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 1024 * 1024


class TempUploadStore:
    """Writes incoming uploads to disk and deletes them once stored remotely."""

    def __init__(self, base_dir: Optional[str] = None, max_bytes: int = 50 * 1024 * 1024):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "training_gateway_uploads")
        os.makedirs(self._base_dir, exist_ok=True)
        self._max_bytes = max_bytes

    @property
    def base_dir(self) -> str:
        return self._base_dir

    async def save(self, upload: UploadFile) -> str:
        """Stream an upload to a uniquely named local file. Returns its path.

        Raises UploadTooLargeError (and removes the partial file) when the
        upload exceeds the configured limit.
        """
        ext = os.path.splitext(upload.filename or "")[1] or ".csv"
        fd, path = tempfile.mkstemp(dir=self._base_dir, suffix=ext)
        total = 0
        try:
            with os.fdopen(fd, "wb") as dst:
                while True:
                    chunk = await upload.read(_CHUNK_BYTES)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self._max_bytes:
                        limit_mb = self._max_bytes // (1024 * 1024)
                        raise UploadTooLargeError(f"File too large (max {limit_mb} MB)")
                    dst.write(chunk)
        except BaseException:
            self.remove(path)
            raise
        return path

    def remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove temp upload %s: %s", path, e)

    def cleanup_expired(self, max_age_seconds: float = 3600) -> int:
        """Remove leftovers older than `max_age_seconds`. Returns count removed."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            path = os.path.join(self._base_dir, entry)
            if now - os.path.getmtime(path) <= max_age_seconds:
                continue
            if os.path.isdir(path):
                shutil.rmtree(path, ignore_errors=True)
            else:
                self.remove(path)
            removed += 1
        return removed
