"""
Image storage for MediScan AI.

Stores uploaded scan images and hands out public URLs for them.
Two backends: a local directory served by the app itself, and a
Supabase storage bucket.
"""

from pathlib import Path
from typing import Optional

from mediscan.config import settings
from mediscan.utils.logger import get_logger

logger = get_logger("storage")


class StorageError(Exception):
    """Raised when an image cannot be stored."""

    def __init__(self, message: str, error_code: str = "STORAGE_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ImageStorage:
    """Interface for binary image storage."""

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        raise NotImplementedError

    def get_public_url(self, path: str) -> str:
        raise NotImplementedError


class LocalImageStorage(ImageStorage):
    """
    Stores images on the local filesystem.

    Files are served by the application under ``/uploads``.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        base_url: Optional[str] = None
    ):
        self.root = Path(root) if root is not None else settings.upload_path
        self.base_url = (base_url or settings.public_base_url).rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageError(f"Invalid storage path: {path}", error_code="INVALID_PATH")
        return target

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}", error_code="DUPLICATE_OBJECT")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error("Local image write failed", path=path, error=str(e))
            raise StorageError(f"Failed to store image: {e}")

        logger.info(
            "Image stored",
            backend="local",
            path=path,
            size_bytes=len(content),
            content_type=content_type
        )

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/uploads/{path}"


class SupabaseImageStorage(ImageStorage):
    """Stores images in a Supabase storage bucket."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        if client is None:
            from mediscan.core.supabase_client import get_supabase_client
            client = get_supabase_client()
        self.client = client
        self.bucket = bucket or settings.storage_bucket

    def upload(self, path: str, content: bytes, content_type: str) -> None:
        try:
            self.client.storage.from_(self.bucket).upload(
                path,
                content,
                {"content-type": content_type}
            )
        except Exception as e:
            logger.error("Supabase upload failed", bucket=self.bucket, path=path, error=str(e))
            raise StorageError(f"Failed to store image: {e}")

        logger.info(
            "Image stored",
            backend="supabase",
            bucket=self.bucket,
            path=path,
            size_bytes=len(content)
        )

    def get_public_url(self, path: str) -> str:
        url = self.client.storage.from_(self.bucket).get_public_url(path)
        # Some client versions append an empty query string
        return url.rstrip("?")
