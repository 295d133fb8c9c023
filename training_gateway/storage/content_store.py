"""Content store interface and the Supabase Storage implementation."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from supabase import Client, create_client

from training_gateway.errors import StorageError

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """Persists raw bytes and hands back a durable, fetchable URL."""

    @abstractmethod
    def put(self, data: bytes, filename: str, content_type: str = "text/csv") -> str:
        """Store `data` under a name derived from `filename`. Returns its URL.

        Raises StorageError if the object could not be stored.
        """
        ...


def object_name(filename: str, prefix: str = "", now: Optional[float] = None) -> str:
    """Build a collision-resistant object key: `<prefix>/<epoch-millis>_<name>`."""
    millis = int((time.time() if now is None else now) * 1000)
    # Strip any client-supplied directories
    base = filename.replace("\\", "/").rsplit("/", 1)[-1] or "dataset.csv"
    key = f"{millis}_{base}"
    return f"{prefix.strip('/')}/{key}" if prefix.strip("/") else key


def lazy_supabase_client(url: str, key: str) -> Callable[[], Client]:
    """Return a factory that builds one service-role client on first use.

    Missing credentials surface as a StorageError on the first upload, so
    the app still starts and serves status queries without them.
    """
    client: Optional[Client] = None
    lock = threading.Lock()

    def get_client() -> Client:
        nonlocal client
        with lock:
            if client is None:
                if not url or not key:
                    raise StorageError(
                        "Dataset storage is not configured: "
                        "set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
                    )
                client = create_client(url, key)
        return client

    return get_client


class SupabaseContentStore(ContentStore):
    """Uploads datasets to a public Supabase Storage bucket."""

    def __init__(
        self,
        client_factory: Callable[[], Client],
        bucket: str = "ml-datasets",
        prefix: str = "uploads",
    ):
        self._client_factory = client_factory
        self._bucket = bucket
        self._prefix = prefix

    def put(self, data: bytes, filename: str, content_type: str = "text/csv") -> str:
        path = object_name(filename, self._prefix)
        try:
            bucket = self._client_factory().storage.from_(self._bucket)
            bucket.upload(path, data, file_options={"content-type": content_type})
            url = bucket.get_public_url(path)
        except Exception as e:
            raise StorageError(
                f"Supabase upload failed: {getattr(e, 'message', None) or e}"
            ) from e

        logger.info("Stored dataset %s/%s (%d bytes)", self._bucket, path, len(data))
        return url
