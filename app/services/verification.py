"""
Verification state machine.

Levels are a pure function of the trust score, evaluated high to low:

    score >= 85  -> CONFIRMED
    score >= 70  -> VERIFIED
    score >= 40  -> PENDING
    otherwise    -> UNVERIFIED

The admin verification action is the only forced transition: score 100,
level CONFIRMED, verifier and timestamp recorded.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.models.report import VerificationLevel
from app.utils.timestamps import utcnow

ADMIN_VERIFIED_SCORE = 100

# (minimum score, level), highest first
LEVEL_THRESHOLDS: List[Tuple[int, VerificationLevel]] = [
    (85, VerificationLevel.CONFIRMED),
    (70, VerificationLevel.VERIFIED),
    (40, VerificationLevel.PENDING),
]


def level_for_score(score: int) -> VerificationLevel:
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return VerificationLevel.UNVERIFIED


def is_admin_verified(report: Dict) -> bool:
    return bool(report.get("verified_by"))


def admin_override(admin_id: str, now: Optional[datetime] = None) -> Dict:
    """Fields written by the admin verification action."""
    return {
        "trust_score": ADMIN_VERIFIED_SCORE,
        "verification_level": VerificationLevel.CONFIRMED.value,
        "verified_by": admin_id,
        "verified_at": now or utcnow(),
    }
