from datetime import timedelta

import pytest

from app.core.exceptions import ValidationFailedError
from app.services.geo_service import (
    find_nearby_reports,
    get_heatmap,
    get_nearby_alert,
    get_statistics,
    haversine_km,
)
from app.utils.timestamps import utcnow


def add_report(db, doc_id, **fields):
    data = {
        "reporter_id": "someone",
        "title": doc_id,
        "status": 0,
        "severity": 1,
        "created_at": utcnow(),
    }
    data.update(fields)
    db.collection("crime_reports").document(doc_id).set(data)


def test_haversine_known_distance():
    # Hanoi -> Ho Chi Minh City is roughly 1140 km
    assert haversine_km(21.0285, 105.8542, 10.8231, 106.6297) == pytest.approx(1137, rel=0.01)
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0


def test_radius_boundary_is_inclusive(db):
    add_report(db, "edge", latitude=21.0, longitude=105.85, category="theft")
    distance = haversine_km(21.0, 105.80, 21.0, 105.85)

    assert [r["id"] for r, _ in find_nearby_reports(21.0, 105.80, distance)] == ["edge"]
    assert find_nearby_reports(21.0, 105.80, distance * 0.999) == []


def test_nearby_sorted_newest_first_and_limited(db):
    now = utcnow()
    for i in range(5):
        add_report(db, f"r{i}", latitude=21.0, longitude=105.80 + i * 0.001,
                   created_at=now - timedelta(hours=i))

    found = find_nearby_reports(21.0, 105.80, 2.0, limit=3)

    assert [r["id"] for r, _ in found] == ["r0", "r1", "r2"]


def test_reports_without_coordinates_are_ignored(db):
    add_report(db, "no-coords", address="Somewhere")
    add_report(db, "lat-only", latitude=21.0)

    assert find_nearby_reports(21.0, 105.80, 50) == []


def test_radius_must_be_positive(db):
    with pytest.raises(ValidationFailedError):
        find_nearby_reports(21.0, 105.80, 0)


def test_safe_area_when_nothing_nearby(db):
    add_report(db, "far", latitude=10.8, longitude=106.6, category="homicide")

    alert = get_nearby_alert(21.0, 105.80, 5)

    assert alert.has_alert is False
    assert alert.message == "This area is currently safe"
    assert alert.total_reports is None
    assert alert.reports is None


@pytest.mark.parametrize("homicides, level", [(5, "low"), (6, "medium"), (15, "medium"), (16, "high")])
def test_alert_level_from_summed_danger_weights(db, homicides, level):
    for i in range(homicides):
        add_report(db, f"h{i}", latitude=21.0, longitude=105.80, category="homicide")

    alert = get_nearby_alert(21.0, 105.80, 1)

    assert alert.has_alert is True
    assert alert.total_reports == homicides
    assert alert.total_danger_score == homicides * 10
    assert alert.alert_level == level


def test_unknown_category_weighs_one(db):
    add_report(db, "x", latitude=21.0, longitude=105.80, category="jaywalking")
    assert get_nearby_alert(21.0, 105.80, 1).total_danger_score == 1


def test_heatmap_groups_and_classifies(db):
    for i in range(8):
        add_report(db, f"rob{i}", category="robbery", district="Hoan Kiem", province="Hanoi",
                   latitude=21.0 + i * 0.01, longitude=105.8)
    add_report(db, "theft", category="theft", district="Ba Dinh", province="Hanoi", address="45 Kim Ma")

    cells = get_heatmap()

    assert [(c.district, c.category, c.count) for c in cells] == [
        ("Hoan Kiem", "robbery", 8),
        ("Ba Dinh", "theft", 1),
    ]
    robbery, theft = cells
    assert robbery.severity == "medium"  # 8 x 7 = 56
    assert robbery.latitude == pytest.approx(21.035)
    assert robbery.longitude == pytest.approx(105.8)
    assert theft.severity == "low"
    assert theft.latitude is None and theft.longitude is None


def test_statistics(db):
    add_report(db, "a", category="robbery", district="Hoan Kiem", severity=4)
    add_report(db, "b", category="robbery", district="Hoan Kiem", severity=5, status=2)
    add_report(db, "c", category="theft", district="Ba Dinh", severity=3, status=1)

    stats = get_statistics()

    assert stats.total == 3
    assert stats.active_alerts == 1
    assert stats.high_severity == 2
    assert [(c.category, c.count) for c in stats.by_category] == [("robbery", 2), ("theft", 1)]
    assert [(d.district, d.count) for d in stats.by_district] == [("Hoan Kiem", 2), ("Ba Dinh", 1)]
