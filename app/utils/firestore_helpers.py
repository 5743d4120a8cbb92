"""
Firestore query and transaction helpers.

NOTE: For firebase_admin SDK, we use positional arguments for where() which still work.
The deprecation warning is just a warning - the functionality is still supported.
"""

from typing import Any, Callable, Dict, Optional

from firebase_admin import firestore


def where_filter(query, field_path: str, op_string: str, value):
    """
    Helper function for Firestore queries.

    Usage:
        query = where_filter(collection, "district", "==", "Hoan Kiem")
        query = where_filter(query, "category", "==", "theft")
    """
    return query.where(field_path, op_string, value)


def run_transaction(db, callback: Callable[[Any], Any]) -> Any:
    """
    Run callback(transaction) atomically and return its result.

    On real Firestore the callback is wrapped with firestore.transactional, so it
    is re-run when a document it read changed before commit. Exceptions raised by
    the callback roll the transaction back and propagate unchanged. The mock
    database exposes run_transaction() and serializes callbacks instead.

    All reads inside the callback must happen before the first write.
    """
    runner = getattr(db, "run_transaction", None)
    if runner is not None:
        return runner(callback)
    return firestore.transactional(callback)(db.transaction())


def snapshot_to_dict(snapshot) -> Optional[Dict[str, Any]]:
    """Convert a document snapshot to a dict that carries its document id."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data
