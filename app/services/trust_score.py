"""
Trust Score Calculator - deterministic credibility score for crime reports.

DESIGN PRINCIPLES:
- Score is SYSTEM-DERIVED, never user-editable
- Score is always recomputed from the current report state, never patched
- Score: 0-100 (higher = more credible)

Contributions (each capped independently, then summed and clamped):
1. Evidence      25   at least one attachment
2. Completeness  20   title 4, description 5, category 3, address 4, coordinates 4
3. Freshness     10   <24h 10, <72h 7, <1 week 4
4. Community     45   confirmations x5 - disputes x10, floored at 0
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import logging

from app.services.verification import (
    ADMIN_VERIFIED_SCORE,
    is_admin_verified,
    level_for_score,
)
from app.models.report import VerificationLevel
from app.utils.timestamps import hours_since

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustScoreBreakdown:
    evidence: int
    completeness: int
    freshness: int
    community: int

    @property
    def total(self) -> int:
        return max(0, min(100, self.evidence + self.completeness + self.freshness + self.community))

    def describe(self) -> str:
        return (
            f"evidence +{self.evidence} | completeness +{self.completeness} | "
            f"freshness +{self.freshness} | community +{self.community}"
        )


class TrustScoreCalculator:
    """Pure scoring rules. Holds no state and never touches the database."""

    EVIDENCE_POINTS = 25

    COMPLETENESS_CAP = 20
    TITLE_POINTS = 4
    DESCRIPTION_POINTS = 5
    CATEGORY_POINTS = 3
    ADDRESS_POINTS = 4
    COORDINATES_POINTS = 4

    # (age below hours, points), checked in order
    FRESHNESS_TIERS = [(24, 10), (72, 7), (168, 4)]

    CONFIRMATION_POINTS = 5
    DISPUTE_PENALTY = 10
    COMMUNITY_CAP = 45

    @classmethod
    def evidence(cls, report: Dict) -> int:
        return cls.EVIDENCE_POINTS if report.get("attachments") else 0

    @classmethod
    def completeness(cls, report: Dict) -> int:
        points = 0
        if report.get("title"):
            points += cls.TITLE_POINTS
        if report.get("description"):
            points += cls.DESCRIPTION_POINTS
        if report.get("category"):
            points += cls.CATEGORY_POINTS
        if report.get("address"):
            points += cls.ADDRESS_POINTS
        if report.get("latitude") is not None and report.get("longitude") is not None:
            points += cls.COORDINATES_POINTS
        return min(points, cls.COMPLETENESS_CAP)

    @classmethod
    def freshness(cls, report: Dict, now: Optional[datetime] = None) -> int:
        age_hours = hours_since(report.get("created_at"), now)
        if age_hours is None:
            return 0
        for below_hours, points in cls.FRESHNESS_TIERS:
            if age_hours < below_hours:
                return points
        return 0

    @classmethod
    def community(cls, report: Dict) -> int:
        confirmations = report.get("confirmation_count") or 0
        disputes = report.get("dispute_count") or 0
        raw = confirmations * cls.CONFIRMATION_POINTS - disputes * cls.DISPUTE_PENALTY
        return max(min(raw, cls.COMMUNITY_CAP), 0)

    @classmethod
    def breakdown(cls, report: Dict, now: Optional[datetime] = None) -> TrustScoreBreakdown:
        return TrustScoreBreakdown(
            evidence=cls.evidence(report),
            completeness=cls.completeness(report),
            freshness=cls.freshness(report, now),
            community=cls.community(report),
        )


def calculate_trust_score(report: Dict, now: Optional[datetime] = None) -> int:
    """Score a report dict (stored field names) in the range 0-100."""
    return TrustScoreCalculator.breakdown(report, now).total


def rescore(report: Dict, now: Optional[datetime] = None) -> Dict:
    """
    Recompute the derived fields of a report from its current state.

    Returns {"trust_score", "verification_level"}; callers write exactly this
    dict back. Admin-verified reports keep their forced score and level.
    """
    if is_admin_verified(report):
        return {
            "trust_score": ADMIN_VERIFIED_SCORE,
            "verification_level": VerificationLevel.CONFIRMED.value,
        }

    breakdown = TrustScoreCalculator.breakdown(report, now)
    score = breakdown.total
    level = level_for_score(score)
    logger.debug(f"Rescored report {report.get('id')}: {score} ({level.value}) [{breakdown.describe()}]")
    return {
        "trust_score": score,
        "verification_level": level.value,
    }
