"""
Storage service - blob store for report attachments.

The report service only sees the BlobStore interface:
    upload(data, filename, content_type) -> StoredBlob(id, url)
    upload_encoded(data_string)          -> StoredBlob(id, url)
    delete(blob_id)
    delete_by_url(url)
    is_encoded_payload(value)            -> bool

Encoded payloads are data URIs: "data:<mime>;base64,<payload>".

Adapters:
- FirebaseBlobStore: Firebase Storage bucket (production)
- LocalBlobStore: a directory on disk served under /uploads (development)

All I/O failures are raised as UpstreamStorageError.
"""

from typing import NamedTuple, Optional, Tuple
from urllib.parse import unquote, urlparse
import base64
import binascii
import logging
import mimetypes
import os
import re
import uuid

from app.core.exceptions import UpstreamStorageError, ValidationFailedError
from app.core.settings import settings

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w.-]+)*;base64,(?P<data>.+)$", re.DOTALL)


class StoredBlob(NamedTuple):
    id: str
    url: str


class BlobStore:
    """Base class with the shared data-URI handling."""

    def __init__(self, folder: Optional[str] = None):
        self.folder = folder or settings.ATTACHMENT_FOLDER

    def upload(self, data: bytes, filename: Optional[str] = None,
               content_type: Optional[str] = None) -> StoredBlob:
        raise NotImplementedError

    def delete(self, blob_id: str) -> None:
        raise NotImplementedError

    def delete_by_url(self, url: str) -> bool:
        """Delete the blob behind a URL. Returns False if the URL is not ours."""
        raise NotImplementedError

    @staticmethod
    def is_encoded_payload(value: str) -> bool:
        return isinstance(value, str) and _DATA_URI_RE.match(value.strip()) is not None

    @staticmethod
    def decode_payload(value: str) -> Tuple[bytes, str]:
        """Split a data URI into (bytes, content type)."""
        match = _DATA_URI_RE.match(value.strip())
        if match is None:
            raise ValidationFailedError("Attachment is not a base64 data URI")
        content_type = match.group("mime") or "application/octet-stream"
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationFailedError(f"Attachment payload is not valid base64: {e}")
        return data, content_type

    def upload_encoded(self, value: str) -> StoredBlob:
        data, content_type = self.decode_payload(value)
        return self.upload(data, content_type=content_type)

    def _object_name(self, filename: Optional[str], content_type: Optional[str]) -> str:
        extension = ""
        if filename:
            extension = os.path.splitext(filename)[1].lower()
        if not extension and content_type:
            extension = mimetypes.guess_extension(content_type) or ""
        return f"{self.folder}/{uuid.uuid4().hex}{extension}"


class FirebaseBlobStore(BlobStore):
    """Attachments stored as public objects in the Firebase Storage bucket."""

    def __init__(self, bucket=None, folder: Optional[str] = None):
        super().__init__(folder)
        if bucket is None:
            from app.config.firebase import get_storage_bucket
            bucket = get_storage_bucket()
        self.bucket = bucket

    def upload(self, data: bytes, filename: Optional[str] = None,
               content_type: Optional[str] = None) -> StoredBlob:
        name = self._object_name(filename, content_type)
        try:
            blob = self.bucket.blob(name)
            blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
            blob.make_public()
        except Exception as e:
            logger.error(f"Failed to upload attachment {name}: {e}", exc_info=True)
            raise UpstreamStorageError(f"Attachment upload failed: {e}")
        logger.info(f"Uploaded attachment {name} ({len(data)} bytes)")
        return StoredBlob(id=name, url=blob.public_url)

    def delete(self, blob_id: str) -> None:
        try:
            self.bucket.blob(blob_id).delete()
        except Exception as e:
            raise UpstreamStorageError(f"Attachment delete failed for {blob_id}: {e}")
        logger.info(f"Deleted attachment {blob_id}")

    def delete_by_url(self, url: str) -> bool:
        name = self._blob_name_from_url(url)
        if name is None:
            logger.warning(f"Not a URL in bucket {self.bucket.name}, skipping delete: {url}")
            return False
        self.delete(name)
        return True

    def _blob_name_from_url(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        path = unquote(parsed.path)
        bucket_name = self.bucket.name

        # https://storage.googleapis.com/<bucket>/<name>
        prefix = f"/{bucket_name}/"
        if parsed.netloc == "storage.googleapis.com" and path.startswith(prefix):
            return path[len(prefix):]

        # https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<quoted name>
        prefix = f"/v0/b/{bucket_name}/o/"
        if parsed.netloc == "firebasestorage.googleapis.com" and path.startswith(prefix):
            return path[len(prefix):]

        return None


class LocalBlobStore(BlobStore):
    """Attachments written to a local directory (BLOB_STORE_PROVIDER=local)."""

    def __init__(self, root_dir: Optional[str] = None, base_url: Optional[str] = None,
                 folder: Optional[str] = None):
        super().__init__(folder)
        self.root_dir = root_dir or settings.LOCAL_UPLOAD_DIR
        self.base_url = (base_url or settings.LOCAL_UPLOAD_BASE_URL).rstrip("/")

    def _path(self, blob_id: str) -> str:
        path = os.path.abspath(os.path.join(self.root_dir, blob_id))
        if not path.startswith(os.path.abspath(self.root_dir) + os.sep):
            raise UpstreamStorageError(f"Blob id escapes upload directory: {blob_id}")
        return path

    def upload(self, data: bytes, filename: Optional[str] = None,
               content_type: Optional[str] = None) -> StoredBlob:
        name = self._object_name(filename, content_type)
        path = self._path(name)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Failed to write attachment {path}: {e}", exc_info=True)
            raise UpstreamStorageError(f"Attachment upload failed: {e}")
        return StoredBlob(id=name, url=f"{self.base_url}/{name}")

    def delete(self, blob_id: str) -> None:
        try:
            os.remove(self._path(blob_id))
        except FileNotFoundError:
            logger.warning(f"Attachment already gone: {blob_id}")
        except OSError as e:
            raise UpstreamStorageError(f"Attachment delete failed for {blob_id}: {e}")

    def delete_by_url(self, url: str) -> bool:
        prefix = self.base_url + "/"
        if not url.startswith(prefix):
            logger.warning(f"Not a local upload URL, skipping delete: {url}")
            return False
        self.delete(unquote(url[len(prefix):]))
        return True


_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """Get or create the configured BlobStore singleton."""
    global _blob_store
    if _blob_store is None:
        provider = settings.BLOB_STORE_PROVIDER.lower()
        if provider == "local":
            _blob_store = LocalBlobStore()
        elif provider == "firebase":
            _blob_store = FirebaseBlobStore()
        else:
            raise RuntimeError(f"Unknown BLOB_STORE_PROVIDER: {settings.BLOB_STORE_PROVIDER}")
        logger.info(f"Attachment storage: {type(_blob_store).__name__}")
    return _blob_store
