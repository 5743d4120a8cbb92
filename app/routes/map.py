"""Map routes - heatmap, nearby alerts and statistics over crime reports.

Registered before the crime report router so these fixed paths win over
/crime-reports/{report_id}.
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, HTTPException, Query

from app.core.exceptions import CrimeAlertError
from app.models.map import HeatmapCell, NearbyAlertResponse, StatisticsResponse
from app.services.geo_service import get_heatmap, get_nearby_alert, get_statistics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/crime-reports", tags=["Map"])


@router.get("/heatmap", response_model=List[HeatmapCell])
def heatmap():
    """Reports grouped by district, province and category."""
    try:
        return get_heatmap()
    except Exception as e:
        logger.error(f"Failed to build heatmap: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build heatmap: {str(e)}")


@router.get("/statistics", response_model=StatisticsResponse)
def statistics():
    try:
        return get_statistics()
    except Exception as e:
        logger.error(f"Failed to build statistics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build statistics: {str(e)}")


@router.get("/nearby", response_model=NearbyAlertResponse, response_model_exclude_none=True)
def nearby_alert(
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
    radius: Optional[float] = Query(None, gt=0, le=500, description="Radius in kilometers (default 5)"),
):
    """
    Danger level around a point.

    Returns {"has_alert": false, ...} when no report falls inside the radius.
    """
    try:
        return get_nearby_alert(lat, lng, radius)
    except CrimeAlertError:
        raise
    except Exception as e:
        logger.error(f"Failed to compute nearby alert: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compute nearby alert: {str(e)}")
