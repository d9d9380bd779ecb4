"""
Tests for status registries and transition validation.

Covers:
    - registry construction (duplicate keys, unknown allow-list targets)
    - validate_transition / enforce_transition / available_transitions
    - the shipped registries (SFOC, checklist, compliance, master hazard)
"""

import pytest

from rpas_compliance.core.exceptions import ConfigurationError, InvalidTransitionError
from rpas_compliance.models.compliance import COMPLIANCE_STATUSES
from rpas_compliance.models.hazard import MASTER_HAZARD_STATUSES
from rpas_compliance.models.sfoc import DOCUMENT_STATUSES, SFOC_STATUSES
from rpas_compliance.services.workflow import (
    StatusDef,
    available_transitions,
    build_registry,
    enforce_transition,
    validate_transition,
)


@pytest.fixture()
def registry():
    return build_registry("ticket", [
        StatusDef("open", "Open", allowed_next=("closed", "parked")),
        StatusDef("parked", "Parked", allowed_next=("open",)),
        StatusDef("closed", "Closed"),
    ])


class TestBuildRegistry:
    def test_rejects_unknown_allowed_next(self):
        with pytest.raises(ConfigurationError, match="unknown status"):
            build_registry("broken", [StatusDef("a", "A", allowed_next=("b",))])

    def test_rejects_duplicate_keys(self):
        with pytest.raises(ConfigurationError, match="twice"):
            build_registry("dup", [StatusDef("a", "A"), StatusDef("a", "Again")])

    def test_registry_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.statuses["new"] = StatusDef("new", "New")

    def test_terminal_flag(self, registry):
        assert registry.get("closed").is_terminal
        assert not registry.get("open").is_terminal


class TestValidateTransition:
    def test_allowed_transition(self, registry):
        result = validate_transition("open", "closed", registry)
        assert result == {"valid": True, "from": "open", "to": "closed", "reason": None}

    def test_disallowed_transition_lists_alternatives(self, registry):
        result = validate_transition("parked", "closed", registry)
        assert result["valid"] is False
        assert "open" in result["reason"]

    def test_terminal_status_reason(self, registry):
        result = validate_transition("closed", "open", registry)
        assert result["valid"] is False
        assert "terminal" in result["reason"]

    def test_unknown_target_is_invalid(self, registry):
        result = validate_transition("open", "deleted", registry)
        assert result["valid"] is False
        assert "Unknown" in result["reason"]

    def test_unknown_current_is_configuration_error(self, registry):
        with pytest.raises(ConfigurationError):
            validate_transition("limbo", "open", registry)

    def test_self_transition_not_implicitly_allowed(self, registry):
        assert validate_transition("open", "open", registry)["valid"] is False


class TestEnforceTransition:
    def test_raises_with_details(self, registry):
        with pytest.raises(InvalidTransitionError) as excinfo:
            enforce_transition("closed", "open", registry)
        assert excinfo.value.from_status == "closed"
        assert excinfo.value.to_status == "open"

    def test_passes_silently(self, registry):
        assert enforce_transition("open", "parked", registry) is None

    def test_available_transitions(self, registry):
        assert available_transitions("open", registry) == ["closed", "parked"]
        assert available_transitions("closed", registry) == []


class TestShippedRegistries:
    def test_sfoc_happy_path(self):
        path = ["draft", "documents_pending", "review_ready", "submitted", "approved", "expired"]
        for current, nxt in zip(path, path[1:]):
            assert validate_transition(current, nxt, SFOC_STATUSES)["valid"], (current, nxt)

    def test_sfoc_cannot_skip_to_approved(self):
        assert not validate_transition("draft", "approved", SFOC_STATUSES)["valid"]

    def test_sfoc_terminal_states(self):
        assert SFOC_STATUSES.get("expired").is_terminal
        assert SFOC_STATUSES.get("cancelled").is_terminal

    def test_checklist_item_flow(self):
        assert validate_transition("not_started", "uploaded", DOCUMENT_STATUSES)["valid"]
        assert not validate_transition("not_started", "approved", DOCUMENT_STATUSES)["valid"]

    def test_compliance_rejected_reopens(self):
        assert validate_transition("rejected", "in-progress", COMPLIANCE_STATUSES)["valid"]
        assert COMPLIANCE_STATUSES.get("approved").is_terminal

    def test_master_hazard_archive_and_republish(self):
        assert validate_transition("published", "archived", MASTER_HAZARD_STATUSES)["valid"]
        assert validate_transition("archived", "published", MASTER_HAZARD_STATUSES)["valid"]
        assert not validate_transition("published", "draft", MASTER_HAZARD_STATUSES)["valid"]
