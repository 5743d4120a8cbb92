"""
Crime report endpoints - submission, lookup, edit, delete and community votes.

Domain errors (not found, permission, vote rules, validation) propagate to
the CrimeAlertError handler in app.main; anything else becomes a 500 here.
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError

from app.core.exceptions import CrimeAlertError
from app.models.base import BaseResponse
from app.models.report import CrimeCategory, ReportCreate, ReportResponse, ReportUpdate, to_report_response
from app.models.vote import VoteStatusResponse
from app.services.attachment_service import UploadedFile
from app.services.report_service import get_report_service
from app.services.vote_service import get_vote_service
from app.utils.security import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/crime-reports", tags=["Crime Reports"])


def _read_uploads(files: List[UploadFile]) -> List[UploadedFile]:
    return [
        UploadedFile(data=upload.file.read(), filename=upload.filename, content_type=upload.content_type)
        for upload in files or []
        if upload.filename
    ]


def _parse_payload(payload: str, model):
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors())


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"❌ {action} failed: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{action} failed: {str(e)}",
    )


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def submit_report(report: ReportCreate, user_id: str = Depends(get_current_user_id)):
    """
    Submit a new crime report.

    Attachments may be hosted URLs or base64 data URIs; data URIs are uploaded
    and replaced by their URLs before the report is stored.
    """
    try:
        logger.info(f"📝 POST /crime-reports by {user_id}: category={report.category}")
        return get_report_service().create(user_id, report)
    except (HTTPException, CrimeAlertError):
        raise
    except Exception as e:
        raise _internal_error("Report creation", e)


@router.post("/form", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def submit_report_form(
    payload: str = Form(..., description="ReportCreate as JSON"),
    files: List[UploadFile] = File(default=[]),
    user_id: str = Depends(get_current_user_id),
):
    """Submit a new crime report with evidence files (multipart/form-data)."""
    report = _parse_payload(payload, ReportCreate)
    try:
        return get_report_service().create(user_id, report, files=_read_uploads(files))
    except (HTTPException, CrimeAlertError):
        raise
    except Exception as e:
        raise _internal_error("Report creation", e)


@router.get("", response_model=List[ReportResponse])
def list_reports(category: Optional[CrimeCategory] = Query(None, description="Filter by category")):
    try:
        return get_report_service().list_reports(category)
    except CrimeAlertError:
        raise
    except Exception as e:
        raise _internal_error("Report listing", e)


@router.get("/mine", response_model=List[ReportResponse])
def my_reports(user_id: str = Depends(get_current_user_id)):
    return get_report_service().list_by_reporter(user_id)


@router.get("/district/{district}", response_model=List[ReportResponse])
def reports_by_district(district: str):
    return get_report_service().list_by_district(district)


@router.get("/city/{province}", response_model=List[ReportResponse])
def reports_by_city(province: str):
    return get_report_service().list_by_province(province)


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(report_id: str):
    return get_report_service().get(report_id)


@router.patch("/{report_id}", response_model=ReportResponse)
def update_report(report_id: str, changes: ReportUpdate, user_id: str = Depends(get_current_user_id)):
    """
    Edit your own report.

    Sending "attachments" replaces the stored list; files dropped from the list
    are removed from storage.
    """
    try:
        return get_report_service().update(report_id, user_id, changes)
    except (HTTPException, CrimeAlertError):
        raise
    except Exception as e:
        raise _internal_error("Report update", e)


@router.patch("/{report_id}/form", response_model=ReportResponse)
def update_report_form(
    report_id: str,
    payload: str = Form("{}", description="ReportUpdate as JSON"),
    files: List[UploadFile] = File(default=[]),
    user_id: str = Depends(get_current_user_id),
):
    """Edit your own report and upload additional evidence files."""
    changes = _parse_payload(payload, ReportUpdate)
    try:
        return get_report_service().update(report_id, user_id, changes, files=_read_uploads(files))
    except (HTTPException, CrimeAlertError):
        raise
    except Exception as e:
        raise _internal_error("Report update", e)


@router.delete("/{report_id}", response_model=BaseResponse)
def delete_report(report_id: str, user_id: str = Depends(get_current_user_id)):
    try:
        get_report_service().delete(report_id, user_id)
        return BaseResponse(message=f"Crime report {report_id} deleted")
    except (HTTPException, CrimeAlertError):
        raise
    except Exception as e:
        raise _internal_error("Report deletion", e)


@router.post("/{report_id}/confirm", response_model=ReportResponse)
def confirm_report(report_id: str, user_id: str = Depends(get_current_user_id)):
    """Confirm someone else's report (community verification)."""
    return to_report_response(get_vote_service().confirm(report_id, user_id))


@router.post("/{report_id}/dispute", response_model=ReportResponse)
def dispute_report(report_id: str, user_id: str = Depends(get_current_user_id)):
    """Dispute someone else's report (community verification)."""
    return to_report_response(get_vote_service().dispute(report_id, user_id))


@router.get("/{report_id}/vote-status", response_model=VoteStatusResponse)
def vote_status(report_id: str, user_id: str = Depends(get_current_user_id)):
    return get_vote_service().vote_status(report_id, user_id)
