import json

import pytest


OWNER = {"X-User-ID": "owner"}
NEIGHBOUR = {"X-User-ID": "neighbour"}
ADMIN = {"X-User-ID": "admin_1"}

REPORT = {
    "title": "Phone snatched outside the market",
    "description": "Two men on a motorbike",
    "category": "robbery",
    "latitude": 21.0285,
    "longitude": 105.8542,
    "province": "Hanoi",
    "district": "Hoan Kiem",
}


@pytest.fixture
def report_id(client):
    resp = client.post("/crime-reports", json=REPORT, headers=OWNER)
    assert resp.status_code == 201
    return resp.json()["id"]


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json()["status"] == "healthy"
    db_health = client.get("/health/db").json()
    assert db_health["database"] == "mock"
    assert db_health["connected"] is True


def test_submit_requires_user_header(client):
    assert client.post("/crime-reports", json=REPORT).status_code == 401


def test_submit_and_fetch(client, report_id):
    body = client.get(f"/crime-reports/{report_id}").json()
    assert body["reporter_id"] == "owner"
    assert body["severity"] == 3
    assert body["severity_level"] == "medium"
    assert body["verification_level"] == "unverified"


def test_submit_validation_failure(client):
    resp = client.post("/crime-reports", json={"category": "theft", "address": "1 Road"}, headers=OWNER)
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_failed"


def test_submit_with_unknown_category_is_rejected(client):
    resp = client.post("/crime-reports", json={**REPORT, "category": "jaywalking"}, headers=OWNER)
    assert resp.status_code == 422


def test_unknown_report_is_404(client):
    resp = client.get("/crime-reports/missing")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_multipart_submission_uploads_files(client, blob_store):
    resp = client.post(
        "/crime-reports/form",
        data={"payload": json.dumps(REPORT)},
        files=[("files", ("evidence.jpg", b"jpeg-bytes", "image/jpeg"))],
        headers=OWNER,
    )

    assert resp.status_code == 201
    attachments = resp.json()["attachments"]
    assert len(attachments) == 1
    assert attachments[0].startswith(blob_store.BASE_URL)
    assert list(blob_store.blobs.values()) == [b"jpeg-bytes"]


def test_multipart_with_bad_payload(client):
    resp = client.post("/crime-reports/form", data={"payload": "{not json"}, headers=OWNER)
    assert resp.status_code == 422


def test_vote_flow(client, report_id):
    resp = client.post(f"/crime-reports/{report_id}/confirm", headers=OWNER)
    assert resp.status_code == 400
    assert resp.json()["code"] == "self_vote_rejected"

    resp = client.post(f"/crime-reports/{report_id}/confirm", headers=NEIGHBOUR)
    assert resp.status_code == 200
    assert resp.json()["confirmation_count"] == 1

    resp = client.post(f"/crime-reports/{report_id}/confirm", headers=NEIGHBOUR)
    assert resp.status_code == 409
    assert resp.json()["code"] == "duplicate_vote"

    assert client.post(f"/crime-reports/{report_id}/dispute", headers=NEIGHBOUR).status_code == 200

    resp = client.post(f"/crime-reports/{report_id}/dispute", headers=NEIGHBOUR)
    assert resp.status_code == 429
    assert resp.json()["code"] == "vote_quota_exceeded"

    status = client.get(f"/crime-reports/{report_id}/vote-status", headers=NEIGHBOUR).json()
    assert status == {
        "has_confirmed": True,
        "has_disputed": True,
        "vote_count": 2,
        "can_vote": False,
        "is_owner": False,
    }


def test_update_and_delete_are_owner_only(client, report_id):
    resp = client.patch(f"/crime-reports/{report_id}", json={"title": "Hijacked"}, headers=NEIGHBOUR)
    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"

    resp = client.patch(f"/crime-reports/{report_id}", json={"category": "kidnapping"}, headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["severity"] == 5

    assert client.delete(f"/crime-reports/{report_id}", headers=NEIGHBOUR).status_code == 403
    resp = client.delete(f"/crime-reports/{report_id}", headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert client.get(f"/crime-reports/{report_id}").status_code == 404


def test_listing_routes(client, report_id):
    client.post("/crime-reports", json={"title": "Bike stolen", "address": "45 Kim Ma", "category": "theft",
                                        "district": "Ba Dinh", "province": "Hanoi"}, headers=NEIGHBOUR)

    assert len(client.get("/crime-reports").json()) == 2
    assert [r["id"] for r in client.get("/crime-reports", params={"category": "robbery"}).json()] == [report_id]
    assert [r["id"] for r in client.get("/crime-reports/mine", headers=OWNER).json()] == [report_id]
    assert [r["id"] for r in client.get("/crime-reports/district/Hoan Kiem").json()] == [report_id]
    assert len(client.get("/crime-reports/city/Hanoi").json()) == 2


def test_map_routes_are_not_shadowed(client, report_id):
    heatmap = client.get("/crime-reports/heatmap")
    assert heatmap.status_code == 200
    assert heatmap.json()[0]["district"] == "Hoan Kiem"

    stats = client.get("/crime-reports/statistics").json()
    assert stats["total"] == 1

    nearby = client.get("/crime-reports/nearby", params={"lat": 21.0285, "lng": 105.8542, "radius": 1}).json()
    assert nearby["has_alert"] is True
    assert nearby["total_danger_score"] == 7
    assert nearby["alert_level"] == "low"
    assert nearby["reports"][0]["id"] == report_id


def test_nearby_safe_area_and_bad_radius(client):
    nearby = client.get("/crime-reports/nearby", params={"lat": 0, "lng": 0}).json()
    assert nearby == {"has_alert": False, "message": "This area is currently safe"}

    assert client.get("/crime-reports/nearby", params={"lat": 0, "lng": 0, "radius": 0}).status_code == 422
    assert client.get("/crime-reports/nearby", params={"lat": 91, "lng": 0}).status_code == 422


def test_admin_verify_records_caller(client, report_id):
    resp = client.post(f"/admin/crime-reports/{report_id}/verify", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["trust_score"] == 100
    assert resp.json()["verification_level"] == "confirmed"
    assert resp.json()["verified_by"] == "admin_1"

    assert client.post("/admin/crime-reports/missing/verify", headers=ADMIN).status_code == 404


def test_admin_verify_ignores_body_identity(client, report_id):
    resp = client.post(f"/admin/crime-reports/{report_id}/verify", json={"admin_id": "admin_2"}, headers=ADMIN)
    assert resp.json()["verified_by"] == "admin_1"


def test_admin_verify_requires_caller(client, report_id):
    resp = client.post(f"/admin/crime-reports/{report_id}/verify", json={"admin_id": "anyone"})
    assert resp.status_code == 401
    assert client.get(f"/crime-reports/{report_id}").json()["verified_by"] is None


def test_admin_verify_rejects_non_admin(client, report_id):
    resp = client.post(f"/admin/crime-reports/{report_id}/verify", headers=NEIGHBOUR)
    assert resp.status_code == 403
    assert resp.json()["code"] == "permission_denied"

    body = client.get(f"/crime-reports/{report_id}").json()
    assert body["verified_by"] is None
    assert body["trust_score"] < 100


def test_recalculate_is_admin_only(client, report_id):
    assert client.post("/admin/trust-scores/recalculate").status_code == 401
    assert client.post("/admin/trust-scores/recalculate", headers=OWNER).status_code == 403

    resp = client.post("/admin/trust-scores/recalculate", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "changed": 0}
