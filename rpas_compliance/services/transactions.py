"""
Optimistic read-modify-write.

Models that take part declare a ``row_version`` column registered as the
mapper's ``version_id_col``; SQLAlchemy then issues
``UPDATE ... WHERE id = :id AND row_version = :seen`` and raises
``StaleDataError`` when another writer got there first.

``run_optimistic`` turns that into a bounded retry loop:

    def work():
        app = get_scoped(SFOCApplication, app_id, organization_id=org_id)
        enforce_transition(app.status, new_status, SFOC_STATUSES)
        app.status = new_status
        return app

    app = run_optimistic(work, resource="SFOCApplication", resource_id=app_id)

``work`` must re-read everything it depends on: after a conflict the
session is rolled back, every loaded instance is expired, and the next
attempt sees the committed state.
"""

import logging
from collections.abc import Callable

from flask import current_app, has_app_context
from sqlalchemy.orm.exc import StaleDataError

from rpas_compliance.core.exceptions import ConcurrentUpdateError
from rpas_compliance.models import db

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3


def _configured_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("OPTIMISTIC_TX_ATTEMPTS", DEFAULT_ATTEMPTS))
    return DEFAULT_ATTEMPTS


def run_optimistic(
    work: Callable,
    *,
    resource: str,
    resource_id: str | None = None,
    attempts: int | None = None,
):
    """Run ``work()`` and commit, retrying on version conflicts.

    Any other exception rolls back and propagates unchanged.

    Raises:
        ConcurrentUpdateError: every attempt lost the race.
    """
    attempts = attempts or _configured_attempts()
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            logger.info("Version conflict on %s id=%s (attempt %d/%d)",
                        resource, resource_id, attempt, attempts)
        except Exception:
            db.session.rollback()
            raise

    logger.warning("Giving up on %s id=%s after %d conflicting attempts",
                   resource, resource_id, attempts)
    raise ConcurrentUpdateError(resource, resource_id, attempts)
