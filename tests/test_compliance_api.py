"""
Compliance matrix tests.

Covers:
    - response status derivation, progress and gap analysis (pure)
    - template CRUD and seeding
    - applications: creation from template, responses, status workflow
    - document registry
"""

import pytest

from rpas_compliance.seed_data.compliance_templates import DEFAULT_TEMPLATES
from rpas_compliance.services.compliance_service import (
    build_gap_analysis,
    calculate_progress,
    derive_response_status,
    seed_default_templates,
)

BASE = "/api/v1/compliance"

REQUIREMENTS = [
    {"id": "r1", "category": "operations", "text": "Describe the ConOps",
     "response_type": "text"},
    {"id": "r2", "category": "operations", "text": "Provide the operations manual",
     "response_type": "document-reference",
     "validation_rules": [{"type": "requires_document", "doc_types": ["operations-manual"]}]},
    {"id": "r3", "category": "crew", "text": "Pilot certification", "response_type": "text"},
]


@pytest.fixture()
def template(client):
    res = client.post(f"{BASE}/templates", json={
        "id": "tpl-test",
        "name": "Test BVLOS Matrix",
        "short_name": "BVLOS",
        "category": "sfoc",
        "status": "active",
        "requirements": REQUIREMENTS,
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _app(client, org, template_id="tpl-test", **extra):
    res = client.post(f"{BASE}/applications?organization_id={org}",
                      json={"template_id": template_id, **extra}, headers={"X-User": "ops@nsa.ca"})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _respond(client, org, app_id, req_id, payload):
    return client.put(f"{BASE}/applications/{app_id}/responses/{req_id}?organization_id={org}", json=payload)


# ═════════════════════════════════════════════════════════════════════════════
# Pure calculations
# ═════════════════════════════════════════════════════════════════════════════


class TestDeriveResponseStatus:
    def test_empty(self):
        assert derive_response_status({"response": "   ", "document_refs": []}) == "empty"

    def test_flagged_beats_complete(self):
        assert derive_response_status({"response": "text", "flagged": True}) == "needs-attention"

    def test_flag_on_empty_stays_empty(self):
        assert derive_response_status({"response": "", "flagged": True}) == "empty"

    def test_text_is_complete(self):
        assert derive_response_status({"response": "done"}, REQUIREMENTS[0]) == "complete"

    def test_document_requirement_needs_a_document(self):
        assert derive_response_status({"response": "see manual"}, REQUIREMENTS[1]) == "partial"
        assert derive_response_status({"response": "see manual", "document_refs": [{"id": "d"}]},
                                      REQUIREMENTS[1]) == "complete"

    def test_documents_without_text_is_partial(self):
        assert derive_response_status({"document_refs": [{"id": "d"}]}, REQUIREMENTS[0]) == "partial"


class TestCalculateProgress:
    def test_no_requirements_is_complete(self):
        progress = calculate_progress([], {})
        assert progress["total"] == 0
        assert progress["percent_complete"] == 100

    def test_counts_and_categories(self):
        responses = {
            "r1": {"status": "complete"},
            "r2": {"status": "needs-attention"},
            "r3": {"status": "partial"},
        }
        progress = calculate_progress(REQUIREMENTS, responses)
        assert progress["complete"] == 1
        assert progress["partial"] == 1
        assert progress["needs_attention"] == 1
        assert progress["empty"] == 0
        assert progress["percent_complete"] == 33
        assert progress["by_category"]["operations"] == {"total": 2, "complete": 1, "partial": 0, "empty": 1}
        assert progress["by_category"]["crew"] == {"total": 1, "complete": 0, "partial": 1, "empty": 0}

    def test_missing_responses_count_as_empty(self):
        assert calculate_progress(REQUIREMENTS, {})["empty"] == 3


class TestGapAnalysis:
    def test_everything_missing(self):
        analysis = build_gap_analysis(REQUIREMENTS, {})
        assert [i["requirement_id"] for i in analysis["incomplete_responses"]] == ["r1", "r2", "r3"]
        assert [m["requirement_id"] for m in analysis["missing_documentation"]] == ["r2"]
        assert analysis["suggested_actions"] == [{
            "type": "add-document",
            "title": "Add documentation for: Provide the operations manual",
            "related_requirements": ["r2"],
            "doc_types": ["operations-manual"],
        }]
        assert analysis["outdated_policies"] == []
        assert analysis["last_run"]

    def test_complete_responses_drop_out(self):
        responses = {
            "r1": {"status": "complete"},
            "r2": {"status": "complete", "document_refs": [{"id": "d"}]},
            "r3": {"status": "complete"},
        }
        analysis = build_gap_analysis(REQUIREMENTS, responses)
        assert analysis["incomplete_responses"] == []
        assert analysis["missing_documentation"] == []
        assert analysis["suggested_actions"] == []


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


class TestTemplates:
    def test_create_defaults_regulatory_body(self, template):
        assert template["regulatory_body"] == "Transport Canada"
        assert len(template["requirements"]) == 3

    def test_duplicate_id_conflicts(self, client, template):
        res = client.post(f"{BASE}/templates", json={"id": "tpl-test", "name": "Again"})
        assert res.status_code == 409

    def test_duplicate_requirement_ids_rejected(self, client):
        res = client.post(f"{BASE}/templates", json={
            "name": "Broken", "requirements": [{"id": "a"}, {"id": "a"}],
        })
        assert res.status_code == 422

    def test_unknown_category_rejected(self, client):
        res = client.post(f"{BASE}/templates", json={"name": "X", "category": "faa"})
        assert res.status_code == 422

    def test_list_filters(self, client, template):
        client.post(f"{BASE}/templates", json={"name": "COR Audit", "category": "cor"})
        body = client.get(f"{BASE}/templates?category=cor").get_json()
        assert [t["name"] for t in body["items"]] == ["COR Audit"]

    def test_update(self, client, template):
        res = client.put(f"{BASE}/templates/tpl-test", json={"version": "2.0", "status": "deprecated"})
        assert res.get_json()["version"] == "2.0"
        assert res.get_json()["status"] == "deprecated"

    def test_delete_refused_while_in_use(self, client, organization, template):
        _app(client, organization)
        res = client.delete(f"{BASE}/templates/tpl-test")
        assert res.status_code == 422
        assert res.get_json()["details"]["applications"] == 1

    def test_delete_unused(self, client, template):
        assert client.delete(f"{BASE}/templates/tpl-test").status_code == 200
        assert client.get(f"{BASE}/templates/tpl-test").status_code == 404

    def test_seed_is_idempotent(self):
        first = seed_default_templates(DEFAULT_TEMPLATES, user="test")
        second = seed_default_templates(DEFAULT_TEMPLATES, user="test")
        assert first["created"] == len(DEFAULT_TEMPLATES)
        assert second == {"created": 0, "skipped": len(DEFAULT_TEMPLATES)}


# ═════════════════════════════════════════════════════════════════════════════
# Applications
# ═════════════════════════════════════════════════════════════════════════════


class TestApplications:
    def test_create_from_template(self, client, organization, template):
        body = _app(client, organization)
        assert body["status"] == "draft"
        assert body["name"].startswith("BVLOS - ")
        assert set(body["responses"]) == {"r1", "r2", "r3"}
        assert body["progress"]["empty"] == 3
        assert body["progress"]["percent_complete"] == 0
        assert body["status_history"][0]["notes"] == "Application created"
        assert body["submission"]["submitted_at"] is None

    def test_template_required(self, client, organization):
        res = client.post(f"{BASE}/applications?organization_id={organization}", json={})
        assert res.status_code == 400

    def test_unknown_template(self, client, organization):
        res = client.post(f"{BASE}/applications?organization_id={organization}", json={"template_id": "nope"})
        assert res.status_code == 404

    def test_list_excludes_responses(self, client, organization, template):
        _app(client, organization, name="Mine")
        body = client.get(f"{BASE}/applications?organization_id={organization}").get_json()
        assert body["total"] == 1
        assert "responses" not in body["items"][0]

    def test_isolation(self, client, organization, other_organization, template):
        app_id = _app(client, organization)["id"]
        res = client.get(f"{BASE}/applications/{app_id}?organization_id={other_organization}")
        assert res.status_code == 404

    def test_update_refuses_status(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        res = client.put(f"{BASE}/applications/{app_id}?organization_id={organization}",
                         json={"status": "approved"})
        assert res.status_code == 422
        res = client.put(f"{BASE}/applications/{app_id}?organization_id={organization}",
                         json={"status": "draft", "project_name": "Pipeline"})
        assert res.status_code == 200
        assert res.get_json()["project_name"] == "Pipeline"


class TestResponses:
    def test_text_response_completes(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        res = _respond(client, organization, app_id, "r1", {"response": "Linear pipeline patrol"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["response"]["status"] == "complete"
        assert body["progress"]["complete"] == 1
        assert body["progress"]["percent_complete"] == 33

    def test_document_requirement_partial_until_document(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        res = _respond(client, organization, app_id, "r2", {"response": "See manual"})
        assert res.get_json()["response"]["status"] == "partial"
        res = _respond(client, organization, app_id, "r2", {"document_refs": [{"id": "doc-1"}]})
        assert res.get_json()["response"]["status"] == "complete"
        assert res.get_json()["response"]["response"] == "See manual"

    def test_flag_and_unflag(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        res = _respond(client, organization, app_id, "r1",
                       {"response": "draft", "flagged": True, "flag_reason": "Vague"})
        assert res.get_json()["response"]["status"] == "needs-attention"
        res = _respond(client, organization, app_id, "r1", {"flagged": False})
        response = res.get_json()["response"]
        assert response["status"] == "complete"
        assert response["flag_reason"] is None

    def test_unknown_requirement(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        assert _respond(client, organization, app_id, "r99", {"response": "x"}).status_code == 404


class TestStatusAndGaps:
    def _status(self, client, org, app_id, status, **extra):
        return client.patch(f"{BASE}/applications/{app_id}/status?organization_id={org}",
                            json={"status": status, **extra}, headers={"X-User": "ops@nsa.ca"})

    def test_full_submission_flow(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        for status in ("in-progress", "ready-for-review"):
            assert self._status(client, organization, app_id, status).status_code == 200
        res = self._status(client, organization, app_id, "submitted",
                           submission={"reference_number": "TC-123"})
        body = res.get_json()
        assert body["submission"]["submitted_to"] == "Transport Canada"
        assert body["submission"]["submitted_by"] == "ops@nsa.ca"
        assert body["submission"]["reference_number"] == "TC-123"

        body = self._status(client, organization, app_id, "approved", notes="Issued").get_json()
        assert body["submission"]["outcome"] == "approved"
        assert body["submission"]["response_received_at"] is not None
        assert [h["status"] for h in body["status_history"]] == [
            "draft", "in-progress", "ready-for-review", "submitted", "approved",
        ]
        assert body["status_history"][-1]["notes"] == "Issued"

    def test_invalid_transition(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        res = self._status(client, organization, app_id, "submitted")
        assert res.status_code == 409
        available = client.get(f"{BASE}/applications/{app_id}/status?organization_id={organization}").get_json()
        assert available == {"status": "draft", "available": ["in-progress"]}

    def test_gap_analysis_is_stored(self, client, organization, template):
        app_id = _app(client, organization)["id"]
        _respond(client, organization, app_id, "r1", {"response": "done"})
        res = client.post(f"{BASE}/applications/{app_id}/gap-analysis?organization_id={organization}")
        analysis = res.get_json()
        assert [i["requirement_id"] for i in analysis["incomplete_responses"]] == ["r2", "r3"]
        stored = client.get(f"{BASE}/applications/{app_id}?organization_id={organization}").get_json()
        assert stored["gap_analysis"]["missing_documentation"] == [
            {"requirement_id": "r2", "short_text": "Provide the operations manual"},
        ]


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════


class TestRegistry:
    def test_register_and_list(self, client, organization):
        res = client.post(f"{BASE}/registry?organization_id={organization}",
                          json={"title": "Operations Manual", "source_type": "policy", "keywords": ["ops"]})
        assert res.status_code == 201
        assert res.get_json()["status"] == "current"
        client.post(f"{BASE}/registry?organization_id={organization}", json={"title": "Insurance"})
        body = client.get(f"{BASE}/registry?organization_id={organization}&source_type=policy").get_json()
        assert [d["title"] for d in body["items"]] == ["Operations Manual"]

    def test_title_required(self, client, organization):
        res = client.post(f"{BASE}/registry?organization_id={organization}", json={})
        assert res.status_code == 422

    def test_update(self, client, organization, other_organization):
        doc_id = client.post(f"{BASE}/registry?organization_id={organization}",
                             json={"title": "Manual"}).get_json()["id"]
        res = client.put(f"{BASE}/registry/{doc_id}?organization_id={organization}",
                         json={"status": "superseded", "version": "2.1"})
        assert res.get_json()["status"] == "superseded"
        assert res.get_json()["version"] == "2.1"
        res = client.put(f"{BASE}/registry/{doc_id}?organization_id={other_organization}",
                         json={"status": "archived"})
        assert res.status_code == 404

    def test_bad_status(self, client, organization):
        res = client.post(f"{BASE}/registry?organization_id={organization}",
                          json={"title": "X", "status": "shredded"})
        assert res.status_code == 422
