"""
SFOC application API tests.

Covers:
    - creation with the materialised document checklist
    - status transitions (allowed, refused, side-effect stamps)
    - checklist item updates, uploads and progress
    - communications and the per-application activity log
    - organization isolation and dashboard stats
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from rpas_compliance.models import db
from rpas_compliance.models.sfoc import SFOCApplication, SFOCDocument
from rpas_compliance.services import sfoc_service


def _url(path, org):
    sep = "&" if "?" in path else "?"
    return f"/api/v1/sfoc{path}{sep}organization_id={org}"


def _create(client, org, **overrides):
    payload = {"name": "Pipeline Survey BVLOS", "operation_triggers": ["large_rpas"]}
    payload.update(overrides)
    res = client.post(_url("/applications", org), json=payload, headers={"X-User": "pilot@nsa.ca"})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _move(client, org, app_id, *statuses):
    for status in statuses:
        res = client.patch(_url(f"/applications/{app_id}/status", org), json={"status": status})
        assert res.status_code == 200, res.get_json()
    return res.get_json()


def _first_required_document(client, org, app_id):
    docs = client.get(_url(f"/applications/{app_id}/documents", org)).get_json()["items"]
    return next(d for d in docs if d["is_required"])


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateApplication:
    def test_create_materialises_checklist(self, client, organization):
        data = _create(client, organization)
        assert data["status"] == "draft"
        assert data["complexity_level"] == "medium"
        assert data["completion_percentage"] == 0
        assert data["created_by"] == "pilot@nsa.ca"

        docs = client.get(_url(f"/applications/{data['id']}/documents", organization)).get_json()
        assert docs["total"] == 20
        required = {d["requirement_id"] for d in docs["items"] if d["is_required"]}
        assert "manufacturer_declaration" in required
        assert "medical_fitness" not in required

    def test_high_complexity_trigger(self, client, organization):
        data = _create(client, organization, operation_triggers=["extended_bvlos"])
        assert data["complexity_level"] == "high"

    def test_parachute_option_adds_requirement(self, client, organization):
        data = _create(client, organization, operation_triggers=[], options={"parachute_equipped": True})
        docs = client.get(_url(f"/applications/{data['id']}/documents", organization)).get_json()["items"]
        parachute = next(d for d in docs if d["requirement_id"] == "parachute_documentation")
        assert parachute["is_required"] is True
        assert parachute["status"] == "not_started"

    def test_name_required(self, client, organization):
        res = client.post(_url("/applications", organization), json={"name": "  "})
        assert res.status_code == 422
        assert res.get_json()["kind"] == "validation"

    def test_unknown_trigger_rejected(self, client, organization):
        res = client.post(_url("/applications", organization),
                          json={"name": "X", "operation_triggers": ["night_flying"]})
        assert res.status_code == 422

    def test_organization_required(self, client):
        res = client.post("/api/v1/sfoc/applications", json={"name": "X"})
        assert res.status_code == 400
        assert "organization_id" in res.get_json()["error"]

    def test_creation_logged(self, client, organization):
        data = _create(client, organization)
        log = client.get(_url(f"/applications/{data['id']}/activity", organization)).get_json()
        assert [e["type"] for e in log["items"]] == ["created"]
        assert log["items"][0]["metadata"]["document_count"] == 20

    def test_failed_creation_leaves_no_rows(self, organization, monkeypatch):
        def _boom(**kwargs):
            raise RuntimeError("activity log unavailable")

        monkeypatch.setattr("rpas_compliance.services.sfoc_service.log_activity", _boom)
        with pytest.raises(RuntimeError):
            sfoc_service.create_application(organization, {"name": "Pipeline Survey BVLOS"}, user="pilot")

        assert db.session.scalar(select(func.count()).select_from(SFOCApplication)) == 0
        assert db.session.scalar(select(func.count()).select_from(SFOCDocument)) == 0


# ═════════════════════════════════════════════════════════════════════════════
# Updates & isolation
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateApplication:
    def test_update_fields(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}", organization),
                         json={"operational_area": "Peace River", "proposed_start_date": "2026-06-01"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["operational_area"] == "Peace River"
        assert body["proposed_start_date"] == "2026-06-01"

    def test_triggers_rederive_complexity(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}", organization),
                         json={"operation_triggers": ["hazardous_payload"]})
        assert res.get_json()["complexity_level"] == "high"

    def test_status_refused_on_update(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}", organization), json={"status": "approved"})
        assert res.status_code == 422

    def test_other_organization_gets_404(self, client, organization, other_organization):
        app_id = _create(client, organization)["id"]
        assert client.get(_url(f"/applications/{app_id}", other_organization)).status_code == 404
        assert client.delete(_url(f"/applications/{app_id}", other_organization)).status_code == 404
        listed = client.get(_url("/applications", other_organization)).get_json()
        assert listed["total"] == 0

    def test_delete_removes_checklist(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.delete(_url(f"/applications/{app_id}", organization))
        assert res.status_code == 200
        assert client.get(_url(f"/applications/{app_id}", organization)).status_code == 404
        assert db.session.get(SFOCApplication, app_id) is None

    def test_link_sora(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}/sora", organization),
                         json={"sora_assessment_id": "sora-1", "sora_summary": {"sail_level": "III"}})
        body = res.get_json()
        assert body["sora_assessment_id"] == "sora-1"
        assert body["sora_summary"]["sail_level"] == "III"
        assert body["sora_summary"]["final_grc"] is None

    def test_link_sora_requires_id(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}/sora", organization), json={})
        assert res.status_code == 400

    def test_link_manufacturer_declaration(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.put(_url(f"/applications/{app_id}/manufacturer-declaration", organization),
                         json={"declaration_id": "decl-7"})
        assert res.get_json()["manufacturer_declaration_id"] == "decl-7"


# ═════════════════════════════════════════════════════════════════════════════
# Status workflow
# ═════════════════════════════════════════════════════════════════════════════


class TestStatusWorkflow:
    def test_available_transitions(self, client, organization):
        app_id = _create(client, organization)["id"]
        body = client.get(_url(f"/applications/{app_id}/status", organization)).get_json()
        assert body["status"] == "draft"
        assert set(body["available"]) == {"documents_pending", "sora_in_progress", "cancelled"}

    def test_invalid_transition_is_409_and_untouched(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.patch(_url(f"/applications/{app_id}/status", organization), json={"status": "approved"})
        assert res.status_code == 409
        body = res.get_json()
        assert body["details"]["from"] == "draft"
        assert body["details"]["to"] == "approved"
        assert client.get(_url(f"/applications/{app_id}", organization)).get_json()["status"] == "draft"

    def test_status_required(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.patch(_url(f"/applications/{app_id}/status", organization), json={})
        assert res.status_code == 400

    def test_submission_and_approval_stamp_dates(self, client, organization):
        app_id = _create(client, organization)["id"]
        submitted = _move(client, organization, app_id, "documents_pending", "review_ready", "submitted")
        assert submitted["submission_date"] is not None
        assert submitted["tc_response_date"] is None

        res = client.patch(_url(f"/applications/{app_id}/status", organization), json={
            "status": "approved",
            "updates": {"sfoc_number": "SFOC-2026-0042", "approved_end_date": "2027-06-01"},
        })
        approved = res.get_json()
        assert approved["status"] == "approved"
        assert approved["tc_response_date"] is not None
        assert approved["sfoc_number"] == "SFOC-2026-0042"
        assert approved["approved_end_date"] == "2027-06-01"

    def test_each_transition_logged(self, client, organization):
        app_id = _create(client, organization)["id"]
        _move(client, organization, app_id, "documents_pending", "cancelled")
        log = client.get(_url(f"/applications/{app_id}/activity", organization)).get_json()["items"]
        changes = [e["metadata"] for e in log if e["type"] == "status_change"]
        assert {"from": "draft", "to": "documents_pending"} in changes
        assert {"from": "documents_pending", "to": "cancelled"} in changes

    def test_terminal_status(self, client, organization):
        app_id = _create(client, organization)["id"]
        _move(client, organization, app_id, "cancelled")
        res = client.patch(_url(f"/applications/{app_id}/status", organization), json={"status": "draft"})
        assert res.status_code == 409
        assert "terminal" in res.get_json()["details"]["reason"]

    def test_row_version_advances(self, client, organization):
        created = _create(client, organization)
        moved = _move(client, organization, created["id"], "documents_pending")
        assert moved["row_version"] > created["row_version"]


# ═════════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════════


class TestChecklist:
    def test_upload_counts_towards_progress(self, client, organization):
        app_id = _create(client, organization)["id"]
        doc = _first_required_document(client, organization, app_id)
        res = client.post(_url(f"/applications/{app_id}/documents/{doc['id']}/upload", organization),
                          json={"file_url": "https://files.example/form.pdf", "file_name": "form.pdf"})
        assert res.status_code == 200
        item = res.get_json()
        assert item["status"] == "uploaded"
        assert item["file_name"] == "form.pdf"
        assert item["uploaded_at"] is not None

        progress = client.get(_url(f"/applications/{app_id}/progress", organization)).get_json()
        assert progress["complete"] == 1
        assert progress["required"] == 18
        assert progress["percent_complete"] == 6

    def test_upload_requires_url(self, client, organization):
        app_id = _create(client, organization)["id"]
        doc = _first_required_document(client, organization, app_id)
        res = client.post(_url(f"/applications/{app_id}/documents/{doc['id']}/upload", organization), json={})
        assert res.status_code == 422

    def test_document_transition_enforced(self, client, organization):
        app_id = _create(client, organization)["id"]
        doc = _first_required_document(client, organization, app_id)
        res = client.patch(_url(f"/applications/{app_id}/documents/{doc['id']}", organization),
                           json={"status": "approved"})
        assert res.status_code == 409

    def test_document_review_flow(self, client, organization):
        app_id = _create(client, organization)["id"]
        doc = _first_required_document(client, organization, app_id)
        base = f"/applications/{app_id}/documents/{doc['id']}"
        client.patch(_url(base, organization), json={"status": "in_progress"})
        client.patch(_url(base, organization), json={"status": "uploaded"})
        res = client.patch(_url(base, organization), json={"status": "approved", "review_notes": "OK"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "approved"
        assert res.get_json()["review_notes"] == "OK"

    def test_document_of_other_application_is_404(self, client, organization):
        first = _create(client, organization)["id"]
        second = _create(client, organization, name="Second")["id"]
        doc = _first_required_document(client, organization, first)
        res = client.patch(_url(f"/applications/{second}/documents/{doc['id']}", organization),
                           json={"status": "in_progress"})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Communications, activity, stats
# ═════════════════════════════════════════════════════════════════════════════


class TestCommunications:
    def test_add_and_list(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.post(_url(f"/applications/{app_id}/communications", organization), json={
            "type": "info_request", "direction": "inbound", "subject": "Need ConOps detail",
        })
        assert res.status_code == 201
        assert res.get_json()["type_label"] == "Information Request"
        listed = client.get(_url(f"/applications/{app_id}/communications", organization)).get_json()
        assert listed["total"] == 1

    def test_unknown_type(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.post(_url(f"/applications/{app_id}/communications", organization), json={"type": "fax"})
        assert res.status_code == 422

    def test_bad_direction(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.post(_url(f"/applications/{app_id}/communications", organization),
                          json={"type": "submission", "direction": "sideways"})
        assert res.status_code == 422


class TestActivity:
    def test_manual_entry(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.post(_url(f"/applications/{app_id}/activity", organization),
                          json={"type": "commented", "description": "Called TC regional office"})
        assert res.status_code == 201
        assert res.get_json()["type"] == "commented"

    def test_unknown_activity_type(self, client, organization):
        app_id = _create(client, organization)["id"]
        res = client.post(_url(f"/applications/{app_id}/activity", organization), json={"type": "teleported"})
        assert res.status_code == 422


class TestStats:
    def test_counts(self, client, organization):
        _create(client, organization)
        high = _create(client, organization, name="High", operation_triggers=["piloted_drone"])["id"]
        _move(client, organization, high, "documents_pending", "review_ready", "submitted")

        stats = client.get(_url("/stats", organization)).get_json()
        assert stats["total"] == 2
        assert stats["by_complexity"] == {"medium": 1, "high": 1}
        assert stats["by_status"] == {"draft": 1, "submitted": 1}
        assert stats["pending"] == 1

    def test_expiring_and_expired(self, client, organization):
        soon = _create(client, organization, name="Soon")["id"]
        gone = _create(client, organization, name="Gone")["id"]
        today = datetime.now(timezone.utc).date()
        for app_id, end in ((soon, today + timedelta(days=20)), (gone, today - timedelta(days=5))):
            _move(client, organization, app_id, "documents_pending", "review_ready", "submitted")
            client.patch(_url(f"/applications/{app_id}/status", organization), json={
                "status": "approved", "updates": {"approved_end_date": end.isoformat()},
            })
        stats = client.get(_url("/stats", organization)).get_json()
        assert stats["active"] == 1
        assert stats["expiring_soon"] == 1
        assert stats["expired"] == 1

    def test_counts_beyond_list_page(self, client, organization):
        db.session.add_all(
            SFOCApplication(organization_id=organization, name=f"Survey {n}", status="submitted")
            for n in range(105)
        )
        db.session.commit()
        assert len(sfoc_service.list_applications(organization)) == 100

        stats = client.get(_url("/stats", organization)).get_json()
        assert stats["total"] == 105
        assert stats["by_status"] == {"submitted": 105}
        assert stats["pending"] == 105


def test_reference_data(client):
    body = client.get("/api/v1/sfoc/reference").get_json()
    assert len(body["document_requirements"]) == 20
    assert {s["key"] for s in body["statuses"]} >= {"draft", "approved", "cancelled"}


@pytest.mark.parametrize("status", ["draft", "cancelled"])
def test_list_filters_by_status(client, organization, status):
    app_id = _create(client, organization)["id"]
    _create(client, organization, name="Other")
    if status == "cancelled":
        _move(client, organization, app_id, "cancelled")
    listed = client.get(_url(f"/applications?status={status}", organization)).get_json()
    assert listed["total"] == (2 if status == "draft" else 1)
