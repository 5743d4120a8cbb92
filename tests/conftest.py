import os

# Settings are read at import time
os.environ["USE_MOCK_DB"] = "true"
os.environ["MOCK_DB_PATH"] = ""
os.environ["BLOB_STORE_PROVIDER"] = "firebase"
os.environ["TRUST_RESCORE_INTERVAL_MINUTES"] = "0"
os.environ["ADMIN_USER_IDS"] = "admin_1,admin_2"

import threading

import pytest

from app.config import firebase
from app.config.mock_firestore import MockFirestore
from app.core.exceptions import UpstreamStorageError
from app.services import report_service, storage_service, vote_service
from app.services.report_service import ReportService
from app.services.storage_service import BlobStore, StoredBlob
from app.services.vote_service import VoteService


class RecordingBlobStore(BlobStore):
    """In-memory blob store that remembers every upload and delete."""

    BASE_URL = "https://blobs.test"

    def __init__(self, fail_on=None):
        super().__init__(folder="evidence")
        self.fail_on = fail_on
        self.blobs = {}
        self.upload_calls = []
        self.deleted = []
        self.deleted_urls = []
        self._lock = threading.Lock()

    def upload(self, data, filename=None, content_type=None):
        with self._lock:
            self.upload_calls.append(filename)
        if self.fail_on and filename and self.fail_on in filename:
            raise UpstreamStorageError(f"upload of {filename} refused")
        name = self._object_name(filename, content_type)
        with self._lock:
            self.blobs[name] = data
        return StoredBlob(id=name, url=f"{self.BASE_URL}/{name}")

    def delete(self, blob_id):
        with self._lock:
            self.deleted.append(blob_id)
            self.blobs.pop(blob_id, None)

    def delete_by_url(self, url):
        self.deleted_urls.append(url)
        prefix = self.BASE_URL + "/"
        if not url.startswith(prefix):
            return False
        self.delete(url[len(prefix):])
        return True


@pytest.fixture
def db(monkeypatch):
    mock = MockFirestore()
    monkeypatch.setattr(firebase, "db", mock)
    monkeypatch.setattr(report_service, "_report_service", None)
    monkeypatch.setattr(vote_service, "_vote_service", None)
    monkeypatch.setattr(storage_service, "_blob_store", None)
    return mock


@pytest.fixture
def blob_store(db, monkeypatch):
    store = RecordingBlobStore()
    monkeypatch.setattr(storage_service, "_blob_store", store)
    return store


@pytest.fixture
def votes(db):
    return VoteService(db)


@pytest.fixture
def reports(db, blob_store, votes):
    return ReportService(db, blob_store=blob_store, vote_service=votes)


@pytest.fixture
def client(db, blob_store):
    from fastapi.testclient import TestClient
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client
