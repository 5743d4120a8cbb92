"""
Vote Service - community confirm/dispute ledger for crime reports.

RULES (checked in this order, each with its own error):
1. Report must exist                            -> NotFoundError
2. Voter must not be the reporter               -> SelfVoteRejectedError
3. Voter holds fewer than 2 votes on the report -> VoteQuotaExceededError
4. Voter has no vote of the same kind           -> DuplicateVoteError

Each vote is written in one Firestore transaction together with the report
counter increment and the rescored trust fields, so concurrent votes on the
same report cannot both pass the checks. Vote documents use the id
"<report_id>__<voter_id>__<kind>", which makes the per-kind uniqueness a
property of the key and lets the transaction read (and lock) both possible
votes of a voter directly.
"""

from typing import Dict, List, Optional
import logging

from app.config.firebase import get_db
from app.core.exceptions import (
    DuplicateVoteError,
    NotFoundError,
    SelfVoteRejectedError,
    VoteQuotaExceededError,
)
from app.models.vote import VoteKind, VoteStatusResponse
from app.services.trust_score import rescore
from app.utils.firestore_helpers import run_transaction, snapshot_to_dict, where_filter
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

REPORTS_COLLECTION = "crime_reports"
VOTES_COLLECTION = "report_votes"

_COUNTER_FIELDS = {
    VoteKind.CONFIRM: "confirmation_count",
    VoteKind.DISPUTE: "dispute_count",
}


def vote_document_id(report_id: str, voter_id: str, kind: VoteKind) -> str:
    return f"{report_id}__{voter_id}__{kind.value}"


class VoteService:
    """Service for the per-report vote ledger."""

    VOTE_QUOTA = 2
    DELETE_BATCH_SIZE = 400

    def __init__(self, db=None):
        self.db = db if db is not None else get_db()

    def confirm(self, report_id: str, voter_id: str) -> Dict:
        return self.cast_vote(report_id, voter_id, VoteKind.CONFIRM)

    def dispute(self, report_id: str, voter_id: str) -> Dict:
        return self.cast_vote(report_id, voter_id, VoteKind.DISPUTE)

    def cast_vote(self, report_id: str, voter_id: str, kind: VoteKind) -> Dict:
        """
        Record a vote and rescore the report atomically.

        Returns:
            The updated report dict (with id)
        """
        report_ref = self.db.collection(REPORTS_COLLECTION).document(report_id)
        votes_ref = self.db.collection(VOTES_COLLECTION)
        vote_refs = {k: votes_ref.document(vote_document_id(report_id, voter_id, k)) for k in VoteKind}
        counter_field = _COUNTER_FIELDS[kind]

        def _cast(transaction) -> Dict:
            # Reads first (Firestore requires all reads before writes)
            report = snapshot_to_dict(report_ref.get(transaction=transaction))
            if report is None:
                raise NotFoundError(f"Crime report {report_id} not found")
            if report.get("reporter_id") == voter_id:
                raise SelfVoteRejectedError("You cannot vote on your own report")

            held = [k for k, ref in vote_refs.items() if ref.get(transaction=transaction).exists]
            if len(held) >= self.VOTE_QUOTA:
                raise VoteQuotaExceededError(
                    f"You have already voted {self.VOTE_QUOTA} times on this report"
                )
            if kind in held:
                raise DuplicateVoteError(f"You have already voted '{kind.value}' on this report")

            now = utcnow()
            report[counter_field] = (report.get(counter_field) or 0) + 1
            derived = rescore(report, now)

            transaction.create(vote_refs[kind], {
                "report_id": report_id,
                "voter_id": voter_id,
                "kind": kind.value,
                "created_at": now,
            })
            transaction.update(report_ref, {
                counter_field: report[counter_field],
                "updated_at": now,
                **derived,
            })

            report.update(derived)
            report["updated_at"] = now
            return report

        report = run_transaction(self.db, _cast)
        logger.info(
            f"Vote '{kind.value}' by {voter_id} on report {report_id}: "
            f"score={report['trust_score']} level={report['verification_level']}"
        )
        return report

    def get_voter_votes(self, report_id: str, voter_id: str) -> List[Dict]:
        query = where_filter(self.db.collection(VOTES_COLLECTION), "report_id", "==", report_id)
        query = where_filter(query, "voter_id", "==", voter_id)
        return [snapshot_to_dict(doc) for doc in query.stream()]

    def vote_status(self, report_id: str, voter_id: str) -> VoteStatusResponse:
        """Read-only view of what a user has done on a report."""
        report = snapshot_to_dict(self.db.collection(REPORTS_COLLECTION).document(report_id).get())
        if report is None:
            raise NotFoundError(f"Crime report {report_id} not found")

        votes = self.get_voter_votes(report_id, voter_id)
        kinds = {vote.get("kind") for vote in votes}
        vote_count = len(votes)
        return VoteStatusResponse(
            has_confirmed=VoteKind.CONFIRM.value in kinds,
            has_disputed=VoteKind.DISPUTE.value in kinds,
            vote_count=vote_count,
            can_vote=vote_count < self.VOTE_QUOTA,
            is_owner=report.get("reporter_id") == voter_id,
        )

    def delete_votes_for_report(self, report_id: str) -> int:
        """Remove every vote that targets a report. Returns the number deleted."""
        query = where_filter(self.db.collection(VOTES_COLLECTION), "report_id", "==", report_id)
        refs = [doc.reference for doc in query.stream()]

        for start in range(0, len(refs), self.DELETE_BATCH_SIZE):
            batch = self.db.batch()
            for ref in refs[start:start + self.DELETE_BATCH_SIZE]:
                batch.delete(ref)
            batch.commit()

        if refs:
            logger.info(f"Deleted {len(refs)} vote(s) for report {report_id}")
        return len(refs)


# Global service instance
_vote_service: Optional[VoteService] = None


def get_vote_service() -> VoteService:
    """Get or create VoteService singleton."""
    global _vote_service
    if _vote_service is None:
        _vote_service = VoteService()
    return _vote_service
