"""
Comments and activity feed API tests.

Covers:
    - comment creation (validation, threading, activity side effect)
    - resolve / pin toggles and ordering
    - activity recording and organization-wide feed
"""

BASE = "/api/v1"


def _comment(client, org, **overrides):
    payload = {"entity_type": "sfoc_application", "entity_id": "app-1", "content": "Check the ConOps"}
    payload.update(overrides)
    res = client.post(f"{BASE}/comments?organization_id={org}", json=payload, headers={"X-User": "reviewer"})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _list(client, org, extra=""):
    return client.get(
        f"{BASE}/comments?organization_id={org}&entity_type=sfoc_application&entity_id=app-1{extra}"
    ).get_json()


class TestComments:
    def test_create_logs_activity(self, client, organization):
        comment = _comment(client, organization)
        assert comment["author_name"] == "reviewer"
        assert comment["type"] == "comment"

        feed = client.get(f"{BASE}/activities?organization_id={organization}"
                          "&entity_type=sfoc_application&entity_id=app-1").get_json()
        assert feed["items"][0]["type"] == "commented"
        assert feed["items"][0]["metadata"] == {"comment_id": comment["id"], "comment_type": "comment"}

    def test_validation(self, client, organization):
        res = client.post(f"{BASE}/comments?organization_id={organization}", json={"content": "x"})
        assert res.status_code == 422
        res = client.post(f"{BASE}/comments?organization_id={organization}",
                          json={"entity_type": "permit", "entity_id": "p", "content": "  "})
        assert res.status_code == 422
        res = client.post(f"{BASE}/comments?organization_id={organization}",
                          json={"entity_type": "permit", "entity_id": "p", "content": "x", "type": "rant"})
        assert res.status_code == 422

    def test_reply_needs_parent_in_same_organization(self, client, organization, other_organization):
        parent = _comment(client, organization)
        reply = _comment(client, organization, content="Done", parent_id=parent["id"])
        assert reply["parent_id"] == parent["id"]
        res = client.post(f"{BASE}/comments?organization_id={other_organization}", json={
            "entity_type": "sfoc_application", "entity_id": "app-1", "content": "x", "parent_id": parent["id"],
        })
        assert res.status_code == 404

    def test_pinned_first(self, client, organization):
        first = _comment(client, organization, content="first")
        second = _comment(client, organization, content="second")
        client.post(f"{BASE}/comments/{second['id']}/pin?organization_id={organization}")
        items = _list(client, organization)["items"]
        assert [c["id"] for c in items] == [second["id"], first["id"]]

    def test_resolve_toggle_and_filter(self, client, organization):
        comment = _comment(client, organization)
        _comment(client, organization, content="open one")
        res = client.post(f"{BASE}/comments/{comment['id']}/resolve?organization_id={organization}",
                          headers={"X-User": "lead"})
        body = res.get_json()
        assert body["is_resolved"] is True
        assert body["resolved_by"] == "lead"
        assert body["resolved_at"] is not None
        assert _list(client, organization, "&resolved=true")["total"] == 1
        assert _list(client, organization, "&resolved=false")["total"] == 1

        body = client.post(f"{BASE}/comments/{comment['id']}/resolve?organization_id={organization}").get_json()
        assert body["is_resolved"] is False
        assert body["resolved_by"] is None

    def test_list_requires_entity(self, client, organization):
        res = client.get(f"{BASE}/comments?organization_id={organization}")
        assert res.status_code == 422

    def test_delete(self, client, organization, other_organization):
        comment = _comment(client, organization)
        assert client.delete(f"{BASE}/comments/{comment['id']}?organization_id={other_organization}").status_code == 404
        assert client.delete(f"{BASE}/comments/{comment['id']}?organization_id={organization}").status_code == 200
        assert _list(client, organization)["total"] == 0


class TestActivities:
    def test_record_and_feed(self, client, organization, other_organization):
        res = client.post(f"{BASE}/activities?organization_id={organization}", json={
            "entity_type": "permit", "entity_id": "p-1", "type": "assigned",
            "description": "Assigned renewal", "metadata": {"assignee": "ops"},
        })
        assert res.status_code == 201
        assert res.get_json()["metadata"] == {"assignee": "ops"}

        feed = client.get(f"{BASE}/activities?organization_id={organization}").get_json()
        assert feed["total"] == 1
        assert client.get(f"{BASE}/activities?organization_id={other_organization}").get_json()["total"] == 0

    def test_unknown_type(self, client, organization):
        res = client.post(f"{BASE}/activities?organization_id={organization}",
                          json={"entity_type": "permit", "entity_id": "p-1", "type": "exploded"})
        assert res.status_code == 422

    def test_feed_filter_by_entity_type(self, client, organization):
        for entity_type in ("permit", "formal_hazard"):
            client.post(f"{BASE}/activities?organization_id={organization}",
                        json={"entity_type": entity_type, "entity_id": "x", "type": "updated"})
        feed = client.get(f"{BASE}/activities?organization_id={organization}&entity_type=permit").get_json()
        assert [a["entity_type"] for a in feed["items"]] == ["permit"]
