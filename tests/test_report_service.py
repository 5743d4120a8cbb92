import base64
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.config.mock_firestore import MockDocumentReference
from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    UpstreamStorageError,
    ValidationFailedError,
)
from app.models.report import ReportCreate, ReportUpdate
from app.services.attachment_service import UploadedFile
from app.services.trust_score import rescore
from app.services.vote_service import VOTES_COLLECTION
from app.utils.timestamps import utcnow


def data_uri(payload: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


def stored(db, report_id):
    snapshot = db.collection("crime_reports").document(report_id).get()
    return snapshot.to_dict() if snapshot.exists else None


def test_create_derives_severity_and_score(reports, votes):
    created = reports.create("owner", ReportCreate(
        title="Body found by the river",
        description="Police cordon near the bridge",
        category="homicide",
        latitude=21.03,
        longitude=105.85,
    ))

    assert created.severity == 5
    assert created.severity_level == "high"
    # completeness 16 + freshness 10
    assert created.trust_score == 26
    assert created.verification_level == "unverified"
    assert created.status == 0
    assert created.source == "user"

    votes.confirm(created.id, "a")
    votes.confirm(created.id, "b")
    after = reports.get(created.id)
    assert after.confirmation_count == 2
    assert after.trust_score == 36


def test_explicit_severity_is_kept(reports):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", category="theft", severity=4))
    assert created.severity == 4


@pytest.mark.parametrize("payload", [
    {"category": "theft", "address": "1 Road"},
    {"title": "Theft"},
    {"title": "Theft", "latitude": 21.0},
])
def test_create_requires_content_and_location(reports, db, payload):
    with pytest.raises(ValidationFailedError):
        reports.create("owner", ReportCreate(**payload))
    assert list(db.collection("crime_reports").stream()) == []


def test_create_rejects_non_url_attachment(reports, blob_store):
    with pytest.raises(ValidationFailedError):
        reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=["not a url"]))
    assert blob_store.upload_calls == []


def test_data_uri_is_uploaded_and_replaced_by_url(reports, blob_store):
    created = reports.create("owner", ReportCreate(
        title="Car window smashed",
        address="3 Pho Hue",
        attachments=["https://example.com/already-hosted.jpg", data_uri(b"png-bytes")],
    ))

    assert len(created.attachments) == 2
    assert created.attachments[0] == "https://example.com/already-hosted.jpg"
    uploaded_url = created.attachments[1]
    assert uploaded_url.startswith(blob_store.BASE_URL + "/evidence/")
    assert uploaded_url.endswith(".png")
    assert list(blob_store.blobs.values()) == [b"png-bytes"]
    # evidence 25 + completeness 8 + freshness 10
    assert created.trust_score == 43
    assert created.verification_level == "pending"


def test_duplicate_attachment_urls_are_collapsed(reports):
    url = "https://example.com/a.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[url, url]))
    assert created.attachments == [url]


def test_uploaded_files_are_attached(reports, blob_store):
    created = reports.create(
        "owner",
        ReportCreate(title="Theft", address="1 Road"),
        files=[UploadedFile(b"one", "one.jpg", "image/jpeg"), UploadedFile(b"two", "two.mp4", "video/mp4")],
    )

    assert len(created.attachments) == 2
    assert created.attachments[0].endswith(".jpg")
    assert created.attachments[1].endswith(".mp4")
    assert sorted(blob_store.blobs.values()) == [b"one", b"two"]


def test_partial_upload_failure_rolls_back_siblings(reports, blob_store, db):
    blob_store.fail_on = "bad"

    with pytest.raises(UpstreamStorageError):
        reports.create(
            "owner",
            ReportCreate(title="Theft", address="1 Road"),
            files=[UploadedFile(b"ok", "ok.jpg", "image/jpeg"), UploadedFile(b"bad", "bad.jpg", "image/jpeg")],
        )

    assert sorted(blob_store.upload_calls) == ["bad.jpg", "ok.jpg"]
    assert len(blob_store.deleted) == 1
    assert blob_store.blobs == {}
    assert list(db.collection("crime_reports").stream()) == []


def test_persist_failure_rolls_back_uploads(reports, blob_store, monkeypatch):
    def failing_create(self, data):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(MockDocumentReference, "create", failing_create)

    with pytest.raises(RuntimeError):
        reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[data_uri(b"x")]))

    assert len(blob_store.deleted) == 1
    assert blob_store.blobs == {}


def test_update_requires_owner(reports):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))

    with pytest.raises(PermissionDeniedError):
        reports.update(created.id, "intruder", ReportUpdate(title="Changed"))
    with pytest.raises(NotFoundError):
        reports.update("missing", "owner", ReportUpdate(title="Changed"))


def test_update_applies_only_sent_fields(reports):
    created = reports.create("owner", ReportCreate(title="Theft", description="Bike", address="1 Road"))

    updated = reports.update(created.id, "owner", ReportUpdate.model_validate({"description": "Red bike"}))

    assert updated.title == "Theft"
    assert updated.description == "Red bike"
    assert updated.address == "1 Road"


def test_update_cannot_remove_required_content(reports, db):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))

    with pytest.raises(ValidationFailedError):
        reports.update(created.id, "owner", ReportUpdate.model_validate({"address": None}))
    assert stored(db, created.id)["address"] == "1 Road"


def test_category_change_rederives_severity(reports):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", category="theft"))
    assert created.severity == 1

    updated = reports.update(created.id, "owner", ReportUpdate(category="kidnapping"))
    assert updated.severity == 5

    updated = reports.update(created.id, "owner", ReportUpdate(category="robbery", severity=2))
    assert updated.severity == 2


def test_removed_attachment_is_deleted_once(reports, blob_store):
    keep = f"{blob_store.BASE_URL}/evidence/keep.jpg"
    drop = f"{blob_store.BASE_URL}/evidence/drop.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[keep, drop]))

    updated = reports.update(created.id, "owner", ReportUpdate(attachments=[keep]))

    assert updated.attachments == [keep]
    assert blob_store.deleted_urls == [drop]


def test_update_without_attachment_list_keeps_attachments(reports, blob_store):
    url = "https://example.com/a.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[url]))

    updated = reports.update(created.id, "owner", ReportUpdate(title="Bike theft"))

    assert updated.attachments == [url]
    assert blob_store.deleted_urls == []


def test_update_files_are_appended(reports, blob_store):
    url = "https://example.com/a.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[url]))

    updated = reports.update(created.id, "owner", ReportUpdate(),
                             files=[UploadedFile(b"new", "new.jpg", "image/jpeg")])

    assert updated.attachments[0] == url
    assert len(updated.attachments) == 2
    assert blob_store.deleted_urls == []


def test_update_rescores(reports):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))
    updated = reports.update(created.id, "owner", ReportUpdate(description="More detail", category="theft"))
    assert updated.trust_score == created.trust_score + 8


def test_delete_removes_votes_and_attachments(reports, votes, blob_store, db):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[data_uri(b"x")]))
    votes.confirm(created.id, "neighbour")

    with pytest.raises(PermissionDeniedError):
        reports.delete(created.id, "neighbour")

    reports.delete(created.id, "owner")

    assert stored(db, created.id) is None
    assert list(db.collection(VOTES_COLLECTION).stream()) == []
    assert blob_store.deleted_urls == created.attachments
    assert blob_store.blobs == {}
    with pytest.raises(NotFoundError):
        reports.get(created.id)


def test_admin_verification_survives_votes_and_sweeps(reports, votes):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))

    verified = reports.verify(created.id, "admin_1")
    assert verified.trust_score == 100
    assert verified.verification_level == "confirmed"
    assert verified.verified_by == "admin_1"
    assert verified.verified_at is not None

    votes.dispute(created.id, "neighbour")
    after = reports.get(created.id)
    assert after.dispute_count == 1
    assert after.trust_score == 100

    assert reports.recalculate_all(utcnow() + timedelta(days=30)) == 0
    assert reports.get(created.id).verification_level == "confirmed"


def test_verify_missing_report(reports):
    with pytest.raises(NotFoundError):
        reports.verify("missing", "admin_1")


def test_sweep_decays_freshness(reports, db):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))
    assert created.trust_score == 18

    assert reports.recalculate_all(utcnow() + timedelta(days=2)) == 1
    assert stored(db, created.id)["trust_score"] == 15

    # Nothing changed since the last sweep
    assert reports.recalculate_all(utcnow() + timedelta(days=2)) == 0


def test_listing_filters(reports):
    reports.create("alice", ReportCreate(title="A", address="1 Road", category="theft", district="D1", province="P1"))
    reports.create("bob", ReportCreate(title="B", address="2 Road", category="robbery", district="D2", province="P1"))

    assert [r.title for r in reports.list_reports("theft")] == ["A"]
    assert len(reports.list_reports()) == 2
    assert [r.title for r in reports.list_by_district("D2")] == ["B"]
    assert sorted(r.title for r in reports.list_by_province("P1")) == ["A", "B"]
    assert [r.title for r in reports.list_by_reporter("alice")] == ["A"]


def test_verify_requires_admin(reports, db):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road"))

    with pytest.raises(PermissionDeniedError):
        reports.verify(created.id, "owner")

    assert stored(db, created.id)["verified_by"] is None
    assert stored(db, created.id)["trust_score"] == created.trust_score


def test_repeated_stored_attachment_is_deleted_once(reports, blob_store, db):
    keep = f"{blob_store.BASE_URL}/evidence/keep.jpg"
    drop = f"{blob_store.BASE_URL}/evidence/drop.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[keep]))
    db.collection("crime_reports").document(created.id).update({"attachments": [drop, keep, drop]})

    reports.update(created.id, "owner", ReportUpdate(attachments=[keep]))

    assert blob_store.deleted_urls == [drop]


def test_delete_with_repeated_attachment_deletes_each_url_once(reports, blob_store, db):
    url = f"{blob_store.BASE_URL}/evidence/a.jpg"
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", attachments=[url]))
    db.collection("crime_reports").document(created.id).update({"attachments": [url, url]})

    reports.delete(created.id, "owner")

    assert blob_store.deleted_urls == [url]


def test_concurrent_updates_do_not_lose_votes(reports, votes, db):
    created = reports.create("owner", ReportCreate(title="Theft", address="1 Road", category="theft"))
    descriptions = [f"Detail {i}" for i in range(20)]
    voters = [f"voter{i}" for i in range(20)]

    def edit(description):
        reports.update(created.id, "owner", ReportUpdate(description=description))

    def confirm(voter):
        votes.confirm(created.id, voter)

    with ThreadPoolExecutor(max_workers=8) as executor:
        futures = []
        for description, voter in zip(descriptions, voters):
            futures.append(executor.submit(edit, description))
            futures.append(executor.submit(confirm, voter))
        for future in futures:
            future.result()

    report = stored(db, created.id)
    assert report["confirmation_count"] == 20
    assert len(list(db.collection(VOTES_COLLECTION).stream())) == 20
    assert report["description"] in descriptions
    assert report["trust_score"] == rescore(report)["trust_score"]
