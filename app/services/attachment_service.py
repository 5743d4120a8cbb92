"""
Attachment ingestion - normalize the three attachment sources into URLs.

Sources (a tagged variant list):
- UploadedFile:    raw bytes from a multipart upload -> uploaded
- EncodedPayload:  data:<mime>;base64,... string     -> decoded and uploaded
- HostedUrl:       already-hosted http(s) URL        -> passed through

Staging is the first half of a two-phase write:

    staged = ingestor.stage(sources)      # uploads run in parallel
    try:
        commit(staged.urls)               # persist the report
    except Exception:
        staged.rollback()                 # delete what this request uploaded
        raise

If any upload fails, stage() waits for every sibling upload to settle, deletes
the ones that succeeded and raises. Nothing but URLs ever leaves this module.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, List, NamedTuple, Optional, Sequence, Union
from urllib.parse import urlparse
import logging

from app.core.exceptions import CrimeAlertError, UpstreamStorageError, ValidationFailedError
from app.core.settings import settings
from app.services.storage_service import BlobStore, StoredBlob

logger = logging.getLogger(__name__)


class UploadedFile(NamedTuple):
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


class EncodedPayload(NamedTuple):
    value: str


class HostedUrl(NamedTuple):
    url: str


AttachmentSource = Union[UploadedFile, EncodedPayload, HostedUrl]


def classify_attachments(values: Iterable[str]) -> List[AttachmentSource]:
    """Tag attachment strings from a request body as encoded payloads or hosted URLs."""
    sources: List[AttachmentSource] = []
    for value in values:
        value = (value or "").strip()
        if not value:
            continue
        if BlobStore.is_encoded_payload(value):
            sources.append(EncodedPayload(value))
            continue
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationFailedError(
                "Attachments must be http(s) URLs or base64 data URIs",
                detail={"attachment": value[:80]},
            )
        sources.append(HostedUrl(value))
    return sources


class StagedAttachments:
    """URLs ready to persist, plus the blobs this request created."""

    def __init__(self, blob_store: BlobStore, urls: List[str], uploaded: List[StoredBlob]):
        self._blob_store = blob_store
        self.urls = urls
        self.uploaded = uploaded

    def rollback(self) -> None:
        """Compensating delete of every blob uploaded while staging. Best-effort."""
        for blob in self.uploaded:
            try:
                self._blob_store.delete(blob.id)
                logger.info(f"Rolled back uploaded attachment {blob.id}")
            except Exception as e:
                logger.error(f"Failed to roll back attachment {blob.id}: {e}")
        self.uploaded = []


class AttachmentIngestor:
    """Uploads attachment sources concurrently and returns a flat URL list."""

    def __init__(self, blob_store: BlobStore, max_workers: Optional[int] = None):
        self.blob_store = blob_store
        self.max_workers = max_workers or settings.MAX_UPLOAD_WORKERS

    def _upload(self, source: AttachmentSource) -> StoredBlob:
        if isinstance(source, UploadedFile):
            return self.blob_store.upload(source.data, filename=source.filename,
                                          content_type=source.content_type)
        return self.blob_store.upload_encoded(source.value)

    def stage(self, sources: Sequence[AttachmentSource]) -> StagedAttachments:
        urls: List[Optional[str]] = [None] * len(sources)
        pending = {}

        for index, source in enumerate(sources):
            if isinstance(source, HostedUrl):
                urls[index] = source.url

        to_upload = [(index, source) for index, source in enumerate(sources)
                     if not isinstance(source, HostedUrl)]
        uploaded: List[StoredBlob] = []
        errors: List[Exception] = []

        if to_upload:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(to_upload))) as executor:
                for index, source in to_upload:
                    pending[executor.submit(self._upload, source)] = index
                # Every upload must settle before any compensating delete is issued
                wait(pending)

            for future, index in pending.items():
                error = future.exception()
                if error is not None:
                    errors.append(error)
                    continue
                blob = future.result()
                uploaded.append(blob)
                urls[index] = blob.url

        staged = StagedAttachments(self.blob_store, [], uploaded)

        if errors:
            logger.error(f"{len(errors)} of {len(to_upload)} attachment uploads failed; rolling back {len(uploaded)}")
            staged.rollback()
            first = errors[0]
            if isinstance(first, CrimeAlertError):
                raise first
            raise UpstreamStorageError(f"Attachment upload failed: {first}")

        # Keep first occurrence order, drop repeats
        staged.urls = list(dict.fromkeys(url for url in urls if url))
        if uploaded:
            logger.info(f"Staged {len(uploaded)} uploaded attachment(s), {len(staged.urls)} URL(s) total")
        return staged
