"""
Pydantic models for crime reports.
These models handle validation for report submission and responses.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum, IntEnum


class CrimeCategory(str, Enum):
    """Crime categories a citizen can pick when reporting."""
    HOMICIDE = "homicide"
    KIDNAPPING = "kidnapping"
    WANTED_PERSON = "wanted_person"
    ROBBERY = "robbery"
    THREAT = "threat"
    SUSPECT_SIGHTING = "suspect_sighting"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    THEFT = "theft"


class ReportStatus(IntEnum):
    """Investigation status of a report."""
    OPEN = 0
    INVESTIGATING = 1
    RESOLVED = 2


class VerificationLevel(str, Enum):
    """
    Credibility bucket derived from the trust score.

    UNVERIFIED: 0-39, PENDING: 40-69, VERIFIED: 70-84, CONFIRMED: 85-100
    (or forced by an admin).
    """
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    CONFIRMED = "confirmed"


class ReportCreate(BaseModel):
    """
    Model for creating a new report (incoming POST request).

    Either title or description is required, and either coordinates or an
    address. Those cross-field rules are enforced by the report service so
    they surface as validation_failed errors.
    """
    title: Optional[str] = Field(None, max_length=200, description="Short headline")
    description: Optional[str] = Field(None, max_length=5000, description="What the citizen observed")
    category: Optional[CrimeCategory] = Field(None, description="Crime category")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500, description="Free-text address")
    area_code: Optional[str] = Field(None, max_length=20)
    province: Optional[str] = Field(None, max_length=100, description="Province / city")
    district: Optional[str] = Field(None, max_length=100)
    ward: Optional[str] = Field(None, max_length=100)
    street: Optional[str] = Field(None, max_length=200)
    source: Optional[str] = Field(None, max_length=50, description="Where the report came from (default: user)")
    attachments: Optional[List[str]] = Field(
        None,
        description="Hosted URLs or data:<mime>;base64,<payload> strings (uploaded before saving)",
    )
    status: Optional[ReportStatus] = Field(None, description="0: open, 1: investigating, 2: resolved")
    severity: Optional[int] = Field(None, ge=1, le=5, description="1-5, defaults from category")
    reported_at: Optional[datetime] = Field(None, description="When the incident happened")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Phone snatched outside the market",
                "description": "Two men on a motorbike grabbed a phone near the east gate.",
                "category": "robbery",
                "latitude": 21.0285,
                "longitude": 105.8542,
                "address": "12 Hang Bac, Hoan Kiem",
                "province": "Hanoi",
                "district": "Hoan Kiem",
                "attachments": ["https://example.com/photo.jpg"],
            }
        }
        extra = "ignore"


class ReportUpdate(ReportCreate):
    """
    Partial update. Only fields present in the request body are applied.

    When attachments is present it replaces the stored list; URLs missing from
    the new list are removed from storage.
    """


class ReportResponse(BaseModel):
    """
    Model for report responses (what API returns).
    Adds the derived severity_level bucket to the stored record.
    """
    id: str = Field(..., description="Firestore document ID")
    reporter_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    area_code: Optional[str] = None
    province: Optional[str] = None
    district: Optional[str] = None
    ward: Optional[str] = None
    street: Optional[str] = None
    source: str = "user"
    attachments: List[str] = Field(default_factory=list)
    status: int = ReportStatus.OPEN.value
    severity: int = 1
    severity_level: str = Field("low", description="high (>=5), medium (>=3) or low")
    trust_score: int = Field(0, ge=0, le=100)
    verification_level: str = VerificationLevel.UNVERIFIED.value
    confirmation_count: int = 0
    dispute_count: int = 0
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    reported_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def severity_level_for(severity: Optional[int]) -> str:
    severity = severity or 1
    if severity >= 5:
        return "high"
    if severity >= 3:
        return "medium"
    return "low"


def to_report_response(data: Dict[str, Any]) -> ReportResponse:
    """Project a stored report document onto the response model."""
    return ReportResponse(
        id=data["id"],
        reporter_id=data["reporter_id"],
        title=data.get("title"),
        description=data.get("description"),
        category=data.get("category"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        address=data.get("address"),
        area_code=data.get("area_code"),
        province=data.get("province"),
        district=data.get("district"),
        ward=data.get("ward"),
        street=data.get("street"),
        source=data.get("source") or "user",
        attachments=data.get("attachments") or [],
        status=data.get("status", ReportStatus.OPEN.value),
        severity=data.get("severity") or 1,
        severity_level=severity_level_for(data.get("severity")),
        trust_score=data.get("trust_score") or 0,
        verification_level=data.get("verification_level") or VerificationLevel.UNVERIFIED.value,
        confirmation_count=data.get("confirmation_count") or 0,
        dispute_count=data.get("dispute_count") or 0,
        verified_by=data.get("verified_by"),
        verified_at=data.get("verified_at"),
        reported_at=data.get("reported_at"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )
