"""
Report service - lifecycle of crime reports.
Handles Firestore CRUD for reports and coordinates attachment storage.

DESIGN NOTE:
- Only the reporter may edit or delete a report
- trust_score / verification_level are written only from rescore() output
  (or the admin override), inside the same write as the change that caused it
- Attachments are staged (uploaded) before the record is written and rolled
  back if the write fails; removed attachments are deleted after the write,
  best-effort
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from app.config.firebase import get_db
from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from app.core.settings import settings
from app.models.report import (
    CrimeCategory,
    ReportCreate,
    ReportResponse,
    ReportStatus,
    ReportUpdate,
    to_report_response,
)
from app.services.attachment_service import (
    AttachmentIngestor,
    HostedUrl,
    StagedAttachments,
    UploadedFile,
    classify_attachments,
)
from app.services.danger_weights import default_severity
from app.services.storage_service import BlobStore, get_blob_store
from app.services.trust_score import rescore
from app.services.verification import admin_override
from app.services.vote_service import REPORTS_COLLECTION, VoteService
from app.utils.firestore_helpers import run_transaction, snapshot_to_dict, where_filter
from app.utils.timestamps import parse_timestamp, utcnow

logger = logging.getLogger(__name__)

DERIVED_FIELDS = ("trust_score", "verification_level")


def _sort_newest_first(reports: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    def created(report):
        ts = parse_timestamp(report.get("created_at"))
        return ts.timestamp() if ts else 0.0
    return sorted(reports, key=created, reverse=True)


def validate_report_content(report: Dict[str, Any]) -> None:
    """A report needs a title or description, and coordinates or an address."""
    if not report.get("title") and not report.get("description"):
        raise ValidationFailedError("Either title or description must be provided")

    has_coordinates = report.get("latitude") is not None and report.get("longitude") is not None
    if not has_coordinates and not report.get("address"):
        raise ValidationFailedError("Either coordinates (latitude and longitude) or address must be provided")


def _payload_fields(payload: ReportCreate, partial: bool) -> Dict[str, Any]:
    """Request model -> stored field names and plain values."""
    if partial:
        fields = payload.model_dump(exclude_unset=True)
    else:
        fields = payload.model_dump(exclude_none=True)

    if isinstance(fields.get("category"), CrimeCategory):
        fields["category"] = fields["category"].value
    if isinstance(fields.get("status"), ReportStatus):
        fields["status"] = int(fields["status"])
    return fields


class ReportService:
    """
    Orchestrates create / update / delete around Firestore, the vote ledger
    and the blob store.
    """

    def __init__(self, db=None, blob_store: Optional[BlobStore] = None,
                 vote_service: Optional[VoteService] = None):
        self.db = db if db is not None else get_db()
        self._blob_store = blob_store
        self.vote_service = vote_service or VoteService(self.db)

    @property
    def blob_store(self) -> BlobStore:
        if self._blob_store is None:
            self._blob_store = get_blob_store()
        return self._blob_store

    @property
    def collection(self):
        return self.db.collection(REPORTS_COLLECTION)

    def _stage(self, sources) -> StagedAttachments:
        if not any(not isinstance(source, HostedUrl) for source in sources):
            # Nothing to upload, so the blob store is not needed
            return StagedAttachments(self._blob_store, list(dict.fromkeys(s.url for s in sources)), [])
        return AttachmentIngestor(self.blob_store).stage(sources)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, reporter_id: str, payload: ReportCreate,
               files: Sequence[UploadedFile] = ()) -> ReportResponse:
        """
        Create a new crime report.

        Flow:
        1. Validate content and location
        2. Default severity from the category
        3. Stage attachments (upload files and data URIs)
        4. Compute trust score / verification level
        5. Write the document; on failure delete the staged uploads
        """
        fields = _payload_fields(payload, partial=False)
        validate_report_content(fields)

        sources = classify_attachments(fields.pop("attachments", []) or []) + list(files)

        if fields.get("severity") is None:
            fields["severity"] = default_severity(fields.get("category"))

        doc_ref = self.collection.document()
        now = utcnow()
        record = {
            "id": doc_ref.id,
            "reporter_id": reporter_id,
            "title": None,
            "description": None,
            "category": None,
            "latitude": None,
            "longitude": None,
            "address": None,
            "area_code": None,
            "province": None,
            "district": None,
            "ward": None,
            "street": None,
            "source": "user",
            "reported_at": None,
            "status": int(ReportStatus.OPEN),
            **fields,
            "attachments": [],
            "confirmation_count": 0,
            "dispute_count": 0,
            "verified_by": None,
            "verified_at": None,
            "created_at": now,
            "updated_at": now,
        }

        staged = self._stage(sources)
        record["attachments"] = staged.urls
        record.update(rescore(record, now))

        try:
            doc_ref.create(record)
        except Exception as e:
            logger.error(f"Failed to save crime report {doc_ref.id}: {e}", exc_info=True)
            staged.rollback()
            raise

        logger.info(
            f"Crime report created: {doc_ref.id} by {reporter_id} "
            f"(category={record.get('category')}, severity={record['severity']}, "
            f"score={record['trust_score']}, attachments={len(record['attachments'])})"
        )
        return to_report_response(record)

    def update(self, report_id: str, user_id: str, payload: ReportUpdate,
               files: Sequence[UploadedFile] = ()) -> ReportResponse:
        """
        Update a report owned by user_id.

        - category change without an explicit severity re-derives severity
        - an attachments list replaces the stored list; uploaded files are
          appended to it (or to the stored list when no list is given)
        - attachments no longer referenced are deleted after the write
        """
        changes = _payload_fields(payload, partial=True)
        existing = self._get_owned(report_id, user_id)

        if changes.get("severity") is None:
            changes.pop("severity", None)
            if "category" in changes and changes["category"] != existing.get("category"):
                changes["severity"] = default_severity(changes["category"])

        replacing_attachments = "attachments" in changes or bool(files)
        new_attachment_values = changes.pop("attachments", None)

        # Fail fast before uploading anything
        validate_report_content({**existing, **changes})

        staged = None
        if replacing_attachments:
            if new_attachment_values is None:
                new_attachment_values = existing.get("attachments") or []
            staged = self._stage(classify_attachments(new_attachment_values) + list(files))

        doc_ref = self.collection.document(report_id)

        def _apply(transaction) -> Tuple[Dict[str, Any], List[str]]:
            current = snapshot_to_dict(doc_ref.get(transaction=transaction))
            if current is None:
                raise NotFoundError(f"Crime report {report_id} not found")
            if current.get("reporter_id") != user_id:
                raise PermissionDeniedError("You can only edit your own reports")

            now = utcnow()
            merged = {**current, **changes, "updated_at": now}
            if staged is not None:
                merged["attachments"] = staged.urls
            validate_report_content(merged)
            merged.update(rescore(merged, now))

            transaction.set(doc_ref, merged)
            return merged, current.get("attachments") or []

        try:
            updated, previous_attachments = run_transaction(self.db, _apply)
        except Exception:
            if staged is not None:
                staged.rollback()
            raise

        if staged is not None:
            kept = set(updated["attachments"])
            self._delete_attachments([url for url in previous_attachments if url not in kept], report_id)

        logger.info(f"Crime report updated: {report_id} (fields={sorted(changes)}, score={updated['trust_score']})")
        return to_report_response(updated)

    def delete(self, report_id: str, user_id: str) -> None:
        """Delete a report owned by user_id, its attachments and its votes."""
        report = self._get_owned(report_id, user_id)

        self._delete_attachments(report.get("attachments") or [], report_id)
        self.collection.document(report_id).delete()
        self.vote_service.delete_votes_for_report(report_id)

        logger.info(f"Crime report deleted: {report_id} by {user_id}")

    def verify(self, report_id: str, admin_id: str, now: Optional[datetime] = None) -> ReportResponse:
        """
        Admin verification: force score 100 / CONFIRMED.

        This is the ONLY way to set derived fields outside of rescoring.
        """
        self.require_admin(admin_id)
        doc_ref = self.collection.document(report_id)

        def _verify(transaction) -> Dict[str, Any]:
            report = snapshot_to_dict(doc_ref.get(transaction=transaction))
            if report is None:
                raise NotFoundError(f"Crime report {report_id} not found")
            forced = admin_override(admin_id, now)
            forced["updated_at"] = forced["verified_at"]
            transaction.update(doc_ref, forced)
            report.update(forced)
            return report

        report = run_transaction(self.db, _verify)
        logger.info(f"✅ Admin {admin_id} verified crime report {report_id}")
        return to_report_response(report)

    def require_admin(self, user_id: str) -> None:
        """Only ids listed in ADMIN_USER_IDS may use admin actions."""
        if user_id not in settings.admin_user_ids_list:
            logger.warning(f"Admin action refused for {user_id}")
            raise PermissionDeniedError("Admin privileges required")

    def rescore_report(self, report_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Recompute and persist derived fields for one report."""
        doc_ref = self.collection.document(report_id)

        def _rescore(transaction) -> Dict[str, Any]:
            report = snapshot_to_dict(doc_ref.get(transaction=transaction))
            if report is None:
                raise NotFoundError(f"Crime report {report_id} not found")
            derived = rescore(report, now)
            if any(report.get(field) != derived[field] for field in DERIVED_FIELDS):
                transaction.update(doc_ref, derived)
            report.update(derived)
            return report

        return run_transaction(self.db, _rescore)

    def recalculate_all(self, now: Optional[datetime] = None) -> int:
        """
        Rescoring sweep over every report (freshness decays with time).

        Returns:
            Number of reports whose derived fields changed
        """
        now = now or utcnow()
        changed = 0
        for doc in self.collection.stream():
            report = snapshot_to_dict(doc)
            derived = rescore(report, now)
            if all(report.get(field) == derived[field] for field in DERIVED_FIELDS):
                continue
            try:
                self.rescore_report(report["id"], now)
                changed += 1
            except NotFoundError:
                # Deleted between the scan and the rescore
                continue

        logger.info(f"Trust score sweep finished: {changed} report(s) changed")
        return changed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, report_id: str) -> ReportResponse:
        report = snapshot_to_dict(self.collection.document(report_id).get())
        if report is None:
            raise NotFoundError(f"Crime report {report_id} not found")
        return to_report_response(report)

    def list_reports(self, category: Optional[CrimeCategory] = None) -> List[ReportResponse]:
        query = self.collection
        if category is not None:
            query = where_filter(query, "category", "==", CrimeCategory(category).value)
        return self._query_responses(query)

    def list_by_district(self, district: str) -> List[ReportResponse]:
        return self._query_responses(where_filter(self.collection, "district", "==", district))

    def list_by_province(self, province: str) -> List[ReportResponse]:
        return self._query_responses(where_filter(self.collection, "province", "==", province))

    def list_by_reporter(self, reporter_id: str) -> List[ReportResponse]:
        return self._query_responses(where_filter(self.collection, "reporter_id", "==", reporter_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _query_responses(self, query) -> List[ReportResponse]:
        # Sorted in memory so equality filters need no composite index
        reports = [snapshot_to_dict(doc) for doc in query.stream()]
        return [to_report_response(report) for report in _sort_newest_first(reports)]

    def _get_owned(self, report_id: str, user_id: str) -> Dict[str, Any]:
        report = snapshot_to_dict(self.collection.document(report_id).get())
        if report is None:
            raise NotFoundError(f"Crime report {report_id} not found")
        if report.get("reporter_id") != user_id:
            raise PermissionDeniedError("You can only modify your own reports")
        return report

    def _delete_attachments(self, urls: List[str], report_id: str) -> None:
        """Best-effort blob cleanup; failures are logged, never raised."""
        urls = list(dict.fromkeys(urls))
        if not urls:
            return
        deleted = 0
        for url in urls:
            try:
                if self.blob_store.delete_by_url(url):
                    deleted += 1
            except Exception as e:
                logger.error(f"Failed to delete attachment {url} for report {report_id}: {e}")
        logger.info(f"Deleted {deleted} of {len(urls)} attachment(s) for report {report_id}")


# Global service instance
_report_service: Optional[ReportService] = None


def get_report_service() -> ReportService:
    """Get or create ReportService singleton."""
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service
