"""
Tests for services/transactions.py

Scenarios covered:
  1. A conflict on every attempt gives up with ConcurrentUpdateError
  2. A single conflict is retried and the second result returned
  3. Unrelated exceptions propagate after one attempt
  4. Successful work is committed and bumps row_version
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from rpas_compliance.core.exceptions import ConcurrentUpdateError
from rpas_compliance.models import db
from rpas_compliance.models.sfoc import SFOCApplication
from rpas_compliance.services.transactions import run_optimistic


class TestRunOptimistic:
    def test_gives_up_after_configured_attempts(self):
        calls = []

        def work():
            calls.append(1)
            raise StaleDataError("row changed underneath")

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            run_optimistic(work, resource="SFOCApplication", resource_id="abc")

        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.resource_id == "abc"

    def test_explicit_attempts(self):
        calls = []

        def work():
            calls.append(1)
            raise StaleDataError("row changed underneath")

        with pytest.raises(ConcurrentUpdateError):
            run_optimistic(work, resource="Permit", attempts=5)
        assert len(calls) == 5

    def test_retries_once_then_succeeds(self):
        calls = []

        def work():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("row changed underneath")
            return "ok"

        assert run_optimistic(work, resource="Permit") == "ok"
        assert len(calls) == 2

    def test_other_errors_propagate_unchanged(self):
        calls = []

        def work():
            calls.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            run_optimistic(work, resource="Permit")
        assert len(calls) == 1

    def test_commits_and_bumps_row_version(self, organization):
        application = SFOCApplication(organization_id=organization, name="Pipeline survey")
        db.session.add(application)
        db.session.commit()
        assert application.row_version == 1

        def work():
            application.name = "Pipeline survey (north)"
            return application

        run_optimistic(work, resource="SFOCApplication", resource_id=application.id)
        db.session.expire_all()
        refreshed = db.session.get(SFOCApplication, application.id)
        assert refreshed.name == "Pipeline survey (north)"
        assert refreshed.row_version == 2
