"""
Map models - heatmap cells, nearby alerts and statistics snapshots.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class HeatmapCell(BaseModel):
    """One (district, province, category) group."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    district: Optional[str] = None
    province: Optional[str] = None
    category: Optional[str] = None
    count: int
    severity: str = Field(..., description="low | medium | high")


class NearbyReport(BaseModel):
    id: str
    title: Optional[str] = None
    category: Optional[str] = None
    latitude: float
    longitude: float
    address: Optional[str] = None
    distance_km: float
    created_at: Optional[datetime] = None


class NearbyAlertResponse(BaseModel):
    """
    Result of a radius query.
    When nothing is nearby only has_alert=False and message are set.
    """
    has_alert: bool
    message: Optional[str] = None
    alert_level: Optional[str] = None
    total_reports: Optional[int] = None
    total_danger_score: Optional[int] = None
    reports: Optional[List[NearbyReport]] = None


class CategoryCount(BaseModel):
    category: Optional[str] = None
    count: int


class DistrictCount(BaseModel):
    district: Optional[str] = None
    count: int


class StatisticsResponse(BaseModel):
    total: int
    active_alerts: int
    high_severity: int
    by_category: List[CategoryCount] = Field(default_factory=list)
    by_district: List[DistrictCount] = Field(default_factory=list)
