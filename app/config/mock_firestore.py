"""
In-memory Firestore stand-in for local development and tests (USE_MOCK_DB=true).

Implements the subset of the google-cloud-firestore client surface that the
services use: collections, documents, chained equality and range where() queries,
write batches and transactions. Transactions are serialized with a process-wide
lock, which gives the same all-or-nothing guarantee that Firestore provides
with optimistic retries.

When a path is given, the store is loaded from and snapshotted to a JSON file
after every committed write.
"""

from copy import deepcopy
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import json
import logging
import os
import threading
import uuid

from google.api_core.exceptions import AlreadyExists, NotFound

logger = logging.getLogger(__name__)


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
}

_MISSING = object()


def _json_default(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _revive_timestamps(data: Dict[str, Any]) -> Dict[str, Any]:
    """JSON snapshots store datetimes as ISO strings; turn *_at fields back into datetimes."""
    for key, value in data.items():
        if key.endswith("_at") and isinstance(value, str):
            try:
                data[key] = datetime.fromisoformat(value)
            except ValueError:
                pass
    return data


class MockDocumentSnapshot:
    def __init__(self, reference: "MockDocumentReference", data: Optional[Dict[str, Any]]):
        self.reference = reference
        self.id = reference.id
        self._data = deepcopy(data)

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return deepcopy(self._data)


class MockDocumentReference:
    def __init__(self, db: "MockFirestore", collection_name: str, doc_id: str):
        self._db = db
        self._collection_name = collection_name
        self.id = doc_id

    @property
    def path(self) -> str:
        return f"{self._collection_name}/{self.id}"

    def get(self, transaction=None) -> MockDocumentSnapshot:
        with self._db._lock:
            data = self._db._store.get(self._collection_name, {}).get(self.id)
            return MockDocumentSnapshot(self, data)

    def create(self, data: Dict[str, Any]) -> None:
        with self._db._lock:
            self._db._apply_create(self, data)
            self._db._persist()

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        with self._db._lock:
            self._db._apply_set(self, data, merge)
            self._db._persist()

    def update(self, data: Dict[str, Any]) -> None:
        with self._db._lock:
            self._db._apply_update(self, data)
            self._db._persist()

    def delete(self) -> None:
        with self._db._lock:
            self._db._apply_delete(self)
            self._db._persist()


class MockQuery:
    def __init__(
        self,
        db: "MockFirestore",
        collection_name: str,
        filters: Tuple[Tuple[str, str, Any], ...] = (),
    ):
        self._db = db
        self._collection_name = collection_name
        self._filters = filters

    def where(self, field_path: str, op_string: str, value: Any) -> "MockQuery":
        if op_string not in _OPERATORS:
            raise ValueError(f"Unsupported operator in mock query: {op_string}")
        return MockQuery(self._db, self._collection_name,
                         self._filters + ((field_path, op_string, value),))

    def _matches(self, data: Dict[str, Any]) -> bool:
        for field_path, op_string, value in self._filters:
            actual = data.get(field_path, _MISSING)
            if actual is _MISSING:
                return False
            try:
                if not _OPERATORS[op_string](actual, value):
                    return False
            except TypeError:
                return False
        return True

    def stream(self, transaction=None) -> Iterator[MockDocumentSnapshot]:
        with self._db._lock:
            documents = self._db._store.get(self._collection_name, {})
            rows = [(doc_id, data) for doc_id, data in documents.items() if self._matches(data)]

            snapshots = [
                MockDocumentSnapshot(MockDocumentReference(self._db, self._collection_name, doc_id), data)
                for doc_id, data in rows
            ]
        return iter(snapshots)


class MockCollectionReference(MockQuery):
    def __init__(self, db: "MockFirestore", name: str):
        super().__init__(db, name)
        self.id = name

    def document(self, document_id: Optional[str] = None) -> MockDocumentReference:
        return MockDocumentReference(self._db, self._collection_name, document_id or uuid.uuid4().hex[:20])


class MockWriteBatch:
    def __init__(self, db: "MockFirestore"):
        self._db = db
        self._writes: List[Callable[[], None]] = []

    def create(self, reference: MockDocumentReference, data: Dict[str, Any]) -> None:
        self._writes.append(lambda: self._db._apply_create(reference, data))

    def set(self, reference: MockDocumentReference, data: Dict[str, Any], merge: bool = False) -> None:
        self._writes.append(lambda: self._db._apply_set(reference, data, merge))

    def update(self, reference: MockDocumentReference, data: Dict[str, Any]) -> None:
        self._writes.append(lambda: self._db._apply_update(reference, data))

    def delete(self, reference: MockDocumentReference) -> None:
        self._writes.append(lambda: self._db._apply_delete(reference))

    def commit(self) -> None:
        with self._db._lock:
            for write in self._writes:
                write()
            self._writes = []
            self._db._persist()


class MockTransaction(MockWriteBatch):
    """Writes are buffered until commit; reads go through reference.get(transaction=...)."""


class MockFirestore:
    def __init__(self, path: Optional[str] = None):
        self._lock = threading.RLock()
        self._path = path
        self._store: Dict[str, Dict[str, Dict[str, Any]]] = {}
        if path and os.path.exists(path):
            self._load()

    def collection(self, name: str) -> MockCollectionReference:
        return MockCollectionReference(self, name)

    def collections(self) -> List[MockCollectionReference]:
        with self._lock:
            return [MockCollectionReference(self, name) for name in self._store]

    def batch(self) -> MockWriteBatch:
        return MockWriteBatch(self)

    def run_transaction(self, callback: Callable[[MockTransaction], Any]) -> Any:
        """Run callback with a transaction while holding the store lock, then commit."""
        with self._lock:
            transaction = MockTransaction(self)
            result = callback(transaction)
            transaction.commit()
            return result

    # Internal write primitives (caller holds the lock)

    def _apply_create(self, reference: MockDocumentReference, data: Dict[str, Any]) -> None:
        documents = self._store.setdefault(reference._collection_name, {})
        if reference.id in documents:
            raise AlreadyExists(f"Document already exists: {reference.path}")
        documents[reference.id] = deepcopy(data)

    def _apply_set(self, reference: MockDocumentReference, data: Dict[str, Any], merge: bool) -> None:
        documents = self._store.setdefault(reference._collection_name, {})
        if merge and reference.id in documents:
            documents[reference.id].update(deepcopy(data))
        else:
            documents[reference.id] = deepcopy(data)

    def _apply_update(self, reference: MockDocumentReference, data: Dict[str, Any]) -> None:
        documents = self._store.get(reference._collection_name, {})
        if reference.id not in documents:
            raise NotFound(f"No document to update: {reference.path}")
        documents[reference.id].update(deepcopy(data))

    def _apply_delete(self, reference: MockDocumentReference) -> None:
        self._store.get(reference._collection_name, {}).pop(reference.id, None)

    def _load(self) -> None:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[MOCK DB] Could not load {self._path}: {e}; starting empty")
            return
        self._store = {
            collection: {doc_id: _revive_timestamps(data) for doc_id, data in documents.items()}
            for collection, documents in raw.items()
        }
        logger.info(f"[MOCK DB] Loaded {sum(len(d) for d in self._store.values())} documents from {self._path}")

    def _persist(self) -> None:
        if not self._path:
            return
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(self._store, f, default=_json_default, indent=2)


_mock_dbs: Dict[Optional[str], MockFirestore] = {}


def get_mock_db(path: Optional[str] = None) -> MockFirestore:
    """Get or create the MockFirestore instance for a snapshot path."""
    if path not in _mock_dbs:
        _mock_dbs[path] = MockFirestore(path)
    return _mock_dbs[path]
