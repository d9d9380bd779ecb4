"""
In-process change feed.

Callers subscribe to a collection (table name) within an organization and
receive a fresh snapshot of that collection after every commit that wrote
to it:

    handle = change_feed.subscribe("sfoc_applications", org_id, on_change)
    ...
    handle.unsubscribe()   # mandatory on teardown

Writes are captured at flush time and delivered only after the enclosing
transaction commits; rolled-back work is never announced. Snapshots are
loaded on a separate session so subscribers never see uncommitted state.
Platform catalogs (master hazards, compliance templates) have no
organization; subscribe to them with ``organization_id=None``.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import event, select
from sqlalchemy.orm import Session

from rpas_compliance.models import db
from rpas_compliance.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

_PENDING_KEY = "rpas_pending_changes"


@dataclass(eq=False)
class Subscription:
    feed: "ChangeFeed"
    collection: str
    organization_id: int | None
    callback: Callable[[list[dict]], None]
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        if self.active:
            self.feed._remove(self)
            self.active = False


class ChangeFeed:
    """Registry of snapshot subscribers, fed by SQLAlchemy session events."""

    def __init__(self):
        self._subscriptions: dict[tuple[str, int | None], list[Subscription]] = {}
        self._lock = threading.Lock()
        self._installed = False

    # ── Wiring ────────────────────────────────────────────────────────

    def init_app(self, app) -> None:
        if self._installed:
            return
        event.listen(db.session, "after_flush", self._collect)
        event.listen(db.session, "after_commit", self._dispatch)
        event.listen(db.session, "after_rollback", self._discard)
        self._installed = True
        app.extensions["rpas_change_feed"] = self

    # ── Public API ────────────────────────────────────────────────────

    def subscribe(
        self,
        collection: str,
        organization_id: int | None,
        callback: Callable[[list[dict]], None],
        *,
        deliver_initial: bool = True,
    ) -> Subscription:
        _model_for(collection)  # fail fast on unknown collections
        sub = Subscription(self, collection, organization_id, callback)
        with self._lock:
            self._subscriptions.setdefault((collection, organization_id), []).append(sub)
        if deliver_initial:
            self._deliver(sub, self.snapshot(collection, organization_id))
        return sub

    def subscriber_count(self, collection: str | None = None) -> int:
        with self._lock:
            return sum(
                len(subs) for (coll, _), subs in self._subscriptions.items()
                if collection is None or coll == collection
            )

    def snapshot(self, collection: str, organization_id: int | None) -> list[dict]:
        return retry_with_backoff(
            lambda: _load_snapshot(collection, organization_id),
            max_retries=2,
            delay=0.2,
        )

    # ── Internals ─────────────────────────────────────────────────────

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get((sub.collection, sub.organization_id), [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscriptions.pop((sub.collection, sub.organization_id), None)

    def _collect(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, set())
        for obj in (*session.new, *session.dirty, *session.deleted):
            table = getattr(obj, "__tablename__", None)
            if table:
                pending.add((table, getattr(obj, "organization_id", None)))

    def _discard(self, session) -> None:
        session.info.pop(_PENDING_KEY, None)

    def _dispatch(self, session) -> None:
        pending = session.info.pop(_PENDING_KEY, None)
        if not pending:
            return
        with self._lock:
            targets = {key: list(self._subscriptions.get(key, [])) for key in pending}
        for (collection, organization_id), subs in targets.items():
            if not subs:
                continue
            snapshot = self.snapshot(collection, organization_id)
            for sub in subs:
                self._deliver(sub, snapshot)

    def _deliver(self, sub: Subscription, snapshot: list[dict]) -> None:
        if not sub.active:
            return
        try:
            sub.callback(snapshot)
        except Exception:
            # The write is already committed; a broken listener must not fail it
            logger.exception("Subscriber for %s (organization=%s) raised",
                             sub.collection, sub.organization_id)


def _model_for(collection: str):
    for mapper in db.Model.registry.mappers:
        if getattr(mapper.class_, "__tablename__", None) == collection:
            return mapper.class_
    raise KeyError(f"Unknown collection: {collection}")


def _load_snapshot(collection: str, organization_id: int | None) -> list[dict]:
    model = _model_for(collection)
    stmt = select(model)
    if hasattr(model, "organization_id"):
        stmt = stmt.where(model.organization_id == organization_id)
    if hasattr(model, "created_at"):
        stmt = stmt.order_by(model.created_at.desc())
    with Session(db.engine) as session:
        return [row.to_dict() for row in session.scalars(stmt)]


change_feed = ChangeFeed()
