"""
Geo service - read-only geospatial aggregation over crime reports.

- Heatmap: reports grouped by (district, province, category) with a centroid
  and a severity class from count x danger weight.
- Nearby alert: reports within a great-circle radius of a point, scored by
  summed danger weights.
- Statistics: counts by category and district.

Thresholds (shared by heatmap and nearby alert): >150 high, >50 medium, else low.
"""

from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from app.config.firebase import get_db
from app.core.exceptions import ValidationFailedError
from app.core.settings import settings
from app.models.map import (
    CategoryCount,
    DistrictCount,
    HeatmapCell,
    NearbyAlertResponse,
    NearbyReport,
    StatisticsResponse,
)
from app.models.report import ReportStatus
from app.services.danger_weights import classify_danger, danger_weight
from app.utils.firestore_helpers import snapshot_to_dict, where_filter
from app.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

REPORTS_COLLECTION = "crime_reports"

EARTH_RADIUS_KM = 6371.0088
# Shortest length of one degree of latitude (at the equator); dividing by it
# gives a band that never undershoots the true radius.
KM_PER_DEGREE_LATITUDE_MIN = 110.574
HIGH_SEVERITY_MIN = 4
TOP_DISTRICTS = 10
SAFE_AREA_MESSAGE = "This area is currently safe"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _all_reports(db) -> List[Dict[str, Any]]:
    return [snapshot_to_dict(doc) for doc in db.collection(REPORTS_COLLECTION).stream()]


def _centroid(reports: List[Dict[str, Any]]) -> Tuple[Optional[float], Optional[float]]:
    """Mean of available coordinates; reports without both are ignored."""
    points = [
        (r["latitude"], r["longitude"]) for r in reports
        if r.get("latitude") is not None and r.get("longitude") is not None
    ]
    if not points:
        return None, None
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )


def get_heatmap() -> List[HeatmapCell]:
    """Group all reports by (district, province, category)."""
    db = get_db()
    groups: Dict[Tuple, List[Dict[str, Any]]] = defaultdict(list)
    for report in _all_reports(db):
        key = (report.get("district"), report.get("province"), report.get("category"))
        groups[key].append(report)

    cells = []
    for (district, province, category), members in groups.items():
        count = len(members)
        latitude, longitude = _centroid(members)
        cells.append(HeatmapCell(
            latitude=latitude,
            longitude=longitude,
            district=district,
            province=province,
            category=category,
            count=count,
            severity=classify_danger(count * danger_weight(category)),
        ))

    cells.sort(key=lambda c: c.count, reverse=True)
    logger.info(f"Heatmap built: {len(cells)} cell(s)")
    return cells


def find_nearby_reports(latitude: float, longitude: float, radius_km: float,
                        limit: Optional[int] = None) -> List[Tuple[Dict[str, Any], float]]:
    """
    Reports within radius_km (inclusive) of the point, newest first.

    Returns (report, distance_km) pairs.
    """
    if radius_km <= 0:
        raise ValidationFailedError("Radius must be greater than zero")
    limit = limit or settings.NEARBY_MAX_RESULTS
    db = get_db()

    # Coarse latitude band in Firestore, exact great-circle test below
    band = radius_km / KM_PER_DEGREE_LATITUDE_MIN
    query = where_filter(db.collection(REPORTS_COLLECTION), "latitude", ">=", max(latitude - band, -90.0))
    query = where_filter(query, "latitude", "<=", min(latitude + band, 90.0))

    matches = []
    for doc in query.stream():
        report = snapshot_to_dict(doc)
        if report.get("longitude") is None:
            continue
        distance = haversine_km(latitude, longitude, report["latitude"], report["longitude"])
        if distance <= radius_km:
            matches.append((report, distance))

    matches.sort(key=lambda pair: _created_ts(pair[0]), reverse=True)
    return matches[:limit]


def _created_ts(report: Dict[str, Any]) -> float:
    created = parse_timestamp(report.get("created_at"))
    return created.timestamp() if created else 0.0


def get_nearby_alert(latitude: float, longitude: float,
                     radius_km: Optional[float] = None) -> NearbyAlertResponse:
    radius_km = radius_km if radius_km is not None else settings.NEARBY_DEFAULT_RADIUS_KM
    nearby = find_nearby_reports(latitude, longitude, radius_km)

    if not nearby:
        return NearbyAlertResponse(has_alert=False, message=SAFE_AREA_MESSAGE)

    total_danger_score = sum(danger_weight(report.get("category")) for report, _ in nearby)
    alert_level = classify_danger(total_danger_score)
    logger.info(
        f"Nearby alert at ({latitude}, {longitude}) r={radius_km}km: "
        f"{len(nearby)} report(s), danger={total_danger_score} ({alert_level})"
    )

    return NearbyAlertResponse(
        has_alert=True,
        alert_level=alert_level,
        total_reports=len(nearby),
        total_danger_score=total_danger_score,
        reports=[
            NearbyReport(
                id=report["id"],
                title=report.get("title"),
                category=report.get("category"),
                latitude=report["latitude"],
                longitude=report["longitude"],
                address=report.get("address"),
                distance_km=round(distance, 3),
                created_at=parse_timestamp(report.get("created_at")),
            )
            for report, distance in nearby
        ],
    )


def get_statistics() -> StatisticsResponse:
    db = get_db()
    reports = _all_reports(db)

    by_category = Counter(report.get("category") for report in reports)
    by_district = Counter(report.get("district") for report in reports)

    return StatisticsResponse(
        total=len(reports),
        active_alerts=sum(1 for r in reports if r.get("status", ReportStatus.OPEN) == ReportStatus.OPEN),
        high_severity=sum(1 for r in reports if (r.get("severity") or 1) >= HIGH_SEVERITY_MIN),
        by_category=[CategoryCount(category=c, count=n) for c, n in by_category.most_common()],
        by_district=[DistrictCount(district=d, count=n) for d, n in by_district.most_common(TOP_DISTRICTS)],
    )
