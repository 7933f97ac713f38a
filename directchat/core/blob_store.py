import logging
import threading

from supabase import Client

from directchat.core.errors import UploadFailed

logger = logging.getLogger(__name__)


class BlobStore:
    """Write-once attachment storage. Nothing is ever deleted or versioned."""

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError


class SupabaseBlobStore(BlobStore):
    def __init__(self, client: Client, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def upload(self, key, data, content_type=None):
        file_options = {"content-type": content_type} if content_type else None

        try:
            response = self.client.storage.from_(self.bucket).upload(
                path=key, file=data, file_options=file_options
            )
        except Exception as error:
            logger.error(f"upload_failed bucket={self.bucket} key={key} error={error}")
            raise UploadFailed() from error

        return getattr(response, "path", None) or key

    def public_url(self, path):
        return self.client.storage.from_(self.bucket).get_public_url(path)


class MemoryBlobStore(BlobStore):
    def __init__(self, bucket: str = "attachments") -> None:
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, key, data, content_type=None):
        with self._lock:
            if key in self.objects:
                raise UploadFailed(f"Object {key} already exists.")
            self.objects[key] = bytes(data)
        return key

    def public_url(self, path):
        return f"memory://{self.bucket}/{path}"
