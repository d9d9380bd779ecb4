"""
Tests for middleware/logging_config.py

Scenarios covered:
  1. entity_extra drops empty values and rejects unknown field names
  2. JSONFormatter emits request, entity and transition fields
  3. ReadableFormatter appends short entity tags
  4. RequestContextFilter stamps request id and acting user
  5. Workflow services tag their log records with the touched entity
"""

import json
import logging

import pytest
from flask import g

from rpas_compliance.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
    entity_extra,
)
from rpas_compliance.services import permit_service, sfoc_service


def _record(msg="SFOC application created", **extra):
    record = logging.LogRecord("rpas_compliance.services.sfoc_service", logging.INFO,
                               __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestEntityExtra:
    def test_drops_none(self):
        assert entity_extra(organization_id=1, application_id=None) == {"organization_id": 1}

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="drone_id"):
            entity_extra(drone_id="d-1")


class TestFormatters:
    def test_json_includes_entity_and_transition(self):
        out = json.loads(JSONFormatter().format(_record(
            organization_id=3, application_id="app-1", from_status="draft",
            to_status="documents_pending", request_id="abc123",
        )))
        assert out["message"] == "SFOC application created"
        assert out["organization_id"] == 3
        assert out["application_id"] == "app-1"
        assert out["to_status"] == "documents_pending"
        assert out["request_id"] == "abc123"
        assert "hazard_id" not in out

    def test_readable_tags(self):
        line = ReadableFormatter().format(_record(organization_id=3, hazard_id="h-9", request_id="abc123"))
        assert "(org=3 fha=h-9)" in line
        assert "<abc123>" in line

    def test_readable_without_context(self):
        line = ReadableFormatter().format(_record())
        assert line.endswith("SFOC application created")


class TestRequestContextFilter:
    def test_stamps_request_fields(self, app):
        record = _record()
        with app.test_request_context("/api/v1/permits", headers={"X-User": "ops@nsa.ca"}):
            g.request_id = "req-42"
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "req-42"
        assert record.actor == "ops@nsa.ca"

    def test_outside_request_leaves_record_alone(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert getattr(record, "request_id", None) is None


class TestServiceRecords:
    def test_sfoc_create_tagged(self, organization, caplog):
        with caplog.at_level(logging.INFO, logger="rpas_compliance.services.sfoc_service"):
            application = sfoc_service.create_application(organization, {"name": "Pipeline survey"})
        record = next(r for r in caplog.records if hasattr(r, "organization_id") and "created" in r.getMessage())
        assert record.application_id == application.id
        assert record.organization_id == organization

    def test_permit_create_tagged(self, organization, caplog):
        with caplog.at_level(logging.INFO, logger="rpas_compliance.services.permit_service"):
            permit = permit_service.create_permit(organization, {"name": "Crown land access"})
        record = next(r for r in caplog.records if hasattr(r, "organization_id") and "created" in r.getMessage())
        assert record.permit_id == permit.id
        assert record.to_status == "active"
