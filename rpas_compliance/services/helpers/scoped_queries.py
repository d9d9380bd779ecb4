"""
Organization-scoped query helpers.

Every get-by-id on an organization-owned model MUST go through these
helpers instead of ``db.session.get(Model, pk)``. A direct ``get`` skips
the organization filter and would let one operator read another's SFOC
applications.

Usage:
    # Scope by organization_id (OrganizationModel subclasses)
    application = get_scoped(SFOCApplication, app_id, organization_id=org_id)

    # Scope by parent (checklist items and communications)
    item = get_scoped(SFOCDocument, item_id, application_id=app_id)

    # When None is an acceptable outcome
    hazard = get_scoped_or_none(FormalHazard, hazard_id, organization_id=org_id)

Each keyword maps directly to a column on the model. A keyword naming a
column the model lacks raises ValueError at call time so the bug surfaces
during development rather than as an unscoped lookup in production.
"""

import logging

from sqlalchemy import select

from rpas_compliance.core.exceptions import NotFoundError
from rpas_compliance.models import db

logger = logging.getLogger(__name__)

_SCOPE_KWARGS = ("organization_id", "application_id", "hazard_id")


def get_scoped(
    model,
    pk,
    *,
    organization_id: int | None = None,
    application_id: str | None = None,
    hazard_id: str | None = None,
):
    """Fetch a single entity by PK with a mandatory scope filter.

    Cross-organization access is indistinguishable from a missing record:
    both raise NotFoundError (HTTP 404).

    Raises:
        ValueError: no scope given, or a scope names a column the model
                    does not have.
        NotFoundError: the entity does not exist in the given scope.
    """
    provided_scopes = {
        "organization_id": organization_id,
        "application_id": application_id,
        "hazard_id": hazard_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(_SCOPE_KWARGS)}). Unscoped lookups are forbidden."
        )

    missing_fields = [field for field in provided_scopes if not hasattr(model, field)]
    if missing_fields:
        raise ValueError(
            f"{model.__name__} has no scope column(s) {sorted(missing_fields)}; "
            "refusing to perform a partially scoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s",
                     model.__name__, pk, provided_scopes)
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(
    model,
    pk,
    *,
    organization_id: int | None = None,
    application_id: str | None = None,
    hazard_id: str | None = None,
):
    """Same as get_scoped but returns None instead of raising NotFoundError.

    Still enforces the scope requirement.
    """
    try:
        return get_scoped(
            model,
            pk,
            organization_id=organization_id,
            application_id=application_id,
            hazard_id=hazard_id,
        )
    except NotFoundError:
        return None
