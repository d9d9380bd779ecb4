"""
Tests for services/helpers/scoped_queries.py

These guard organization isolation: a record from one operator must be
invisible to every other operator.

Scenarios covered:
  1. ValueError when called with no scope parameter at all
  2. ValueError when the provided scope field does not exist on the model
  3. NotFoundError when PK is correct but the organization does not match
  4. Correct entity returned when PK + scope both match
  5. Parent scoping (application_id) for checklist documents
  6. get_scoped_or_none returns None instead of raising NotFoundError
"""

import pytest

from rpas_compliance.core.exceptions import NotFoundError
from rpas_compliance.models import db
from rpas_compliance.models.permit import Permit
from rpas_compliance.models.sfoc import SFOCApplication, SFOCDocument
from rpas_compliance.services.helpers.scoped_queries import get_scoped, get_scoped_or_none


def _make_permit(organization_id, name="Crown land access"):
    permit = Permit(organization_id=organization_id, name=name)
    db.session.add(permit)
    db.session.flush()
    return permit


def _make_application_with_document(organization_id):
    application = SFOCApplication(organization_id=organization_id, name="Pipeline survey")
    db.session.add(application)
    db.session.flush()
    document = SFOCDocument(
        organization_id=organization_id,
        application_id=application.id,
        requirement_id="conops",
        category="operations",
        label="Concept of Operations",
    )
    db.session.add(document)
    db.session.flush()
    return application, document


class TestScopeRequired:
    def test_no_scope_raises(self):
        with pytest.raises(ValueError, match="requires at least one scope filter"):
            get_scoped(Permit, "missing")

    def test_all_none_is_no_scope(self):
        with pytest.raises(ValueError, match="Permit"):
            get_scoped(Permit, "missing", organization_id=None, application_id=None, hazard_id=None)

    def test_scope_column_must_exist(self, organization):
        permit = _make_permit(organization)
        with pytest.raises(ValueError, match="has no scope column"):
            get_scoped(Permit, permit.id, hazard_id="h-1")

    def test_or_none_still_requires_scope(self):
        with pytest.raises(ValueError):
            get_scoped_or_none(Permit, "missing")


class TestIsolation:
    def test_found_in_own_organization(self, organization):
        permit = _make_permit(organization)
        assert get_scoped(Permit, permit.id, organization_id=organization) is permit

    def test_other_organization_sees_not_found(self, organization, other_organization):
        permit = _make_permit(organization)
        with pytest.raises(NotFoundError):
            get_scoped(Permit, permit.id, organization_id=other_organization)

    def test_missing_pk(self, organization):
        with pytest.raises(NotFoundError):
            get_scoped(Permit, "no-such-id", organization_id=organization)

    def test_parent_scope(self, organization):
        application, document = _make_application_with_document(organization)
        assert get_scoped(SFOCDocument, document.id, application_id=application.id) is document
        with pytest.raises(NotFoundError):
            get_scoped(SFOCDocument, document.id, application_id="another-application")

    def test_combined_scopes(self, organization, other_organization):
        application, document = _make_application_with_document(organization)
        found = get_scoped(SFOCDocument, document.id,
                           organization_id=organization, application_id=application.id)
        assert found is document
        with pytest.raises(NotFoundError):
            get_scoped(SFOCDocument, document.id,
                       organization_id=other_organization, application_id=application.id)


class TestScopedOrNone:
    def test_returns_none(self, organization, other_organization):
        permit = _make_permit(organization)
        assert get_scoped_or_none(Permit, permit.id, organization_id=other_organization) is None

    def test_returns_entity(self, organization):
        permit = _make_permit(organization)
        assert get_scoped_or_none(Permit, permit.id, organization_id=organization) is permit
