"""
Admin endpoints - human-in-the-loop verification and maintenance.

Callers are identified by X-User-ID and must be listed in ADMIN_USER_IDS.

SCOPE OF ADMIN:
✅ Verify a report (forces trust score 100 / CONFIRMED, records who and when)
✅ Trigger the trust score sweep on demand

❌ NOT edit report content
❌ NOT delete reports
❌ NOT cast community votes
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
import logging

from app.core.exceptions import CrimeAlertError
from app.models.report import ReportResponse
from app.services.report_service import get_report_service
from app.utils.security import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class RecalculateResponse(BaseModel):
    success: bool = True
    changed: int = Field(..., description="Reports whose trust score or level changed")


@router.post("/crime-reports/{report_id}/verify", response_model=ReportResponse)
def verify_report(report_id: str, admin_id: str = Depends(get_current_user_id)):
    """
    Manually verify a report.

    **Rules:**
    - Caller must be an admin; they are recorded as verified_by
    - Sets trust score to 100 and verification level to CONFIRMED
    - Later votes and sweeps keep the verified values
    """
    try:
        return get_report_service().verify(report_id, admin_id)
    except CrimeAlertError:
        raise
    except Exception as e:
        logger.error(f"Failed to verify report {report_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to verify report: {str(e)}",
        )


@router.post("/trust-scores/recalculate", response_model=RecalculateResponse)
def recalculate_trust_scores(admin_id: str = Depends(get_current_user_id)):
    """Rescore every report now (normally done by the periodic sweep)."""
    service = get_report_service()
    service.require_admin(admin_id)
    logger.info(f"Trust score sweep requested by {admin_id}")
    return RecalculateResponse(changed=service.recalculate_all())
