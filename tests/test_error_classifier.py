"""
Tests for error classification and opt-in retry.

Covers:
    - classify_error taxonomy for domain, database and transport errors
    - retry_with_backoff: delays, retry exhaustion, non-retryable errors
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import NotFound, TooManyRequests

from rpas_compliance.core.exceptions import (
    ConcurrentUpdateError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from rpas_compliance.services.retry import is_retryable, retry_with_backoff
from rpas_compliance.utils.errors import E, classify_error


class TestClassifyError:
    @pytest.mark.parametrize("exc,kind,status", [
        (NotFoundError("Permit", "p1"), "not_found", 404),
        (ValidationError("bad"), "validation", 422),
        (ConflictError("Organization", "slug", "x"), "conflict", 409),
        (InvalidTransitionError("sfoc_application", "draft", "approved"), "conflict", 409),
        (ConcurrentUpdateError("SFOCApplication", "a1", 3), "conflict", 409),
        (IntegrityError("INSERT", {}, Exception("unique")), "conflict", 409),
        (OperationalError("SELECT", {}, Exception("database is locked")), "server", 503),
        (TimeoutError("read timed out"), "network", 504),
        (ConnectionError("refused"), "network", 503),
        (PermissionError("no"), "permission", 403),
        (NotFound(), "not_found", 404),
        (TooManyRequests(), "rate_limit", 429),
        (RuntimeError("boom"), "unknown", 500),
    ])
    def test_kinds(self, exc, kind, status):
        info = classify_error(exc)
        assert info.kind == kind
        assert info.status == status

    def test_none(self):
        assert classify_error(None).kind == "unknown"

    def test_status_attribute_is_honoured(self):
        class UpstreamError(Exception):
            status = 502
        assert classify_error(UpstreamError("bad gateway")).kind == "server"

    def test_timeout_in_message(self):
        assert classify_error(RuntimeError("Gateway Timeout")).code == E.TIMEOUT

    def test_transition_code(self):
        assert classify_error(InvalidTransitionError("x", "a", "b")).code == E.CONFLICT_STATE

    def test_retryable_kinds(self):
        assert is_retryable(ConnectionError())
        assert is_retryable(OperationalError("SELECT", {}, Exception("gone")))
        assert not is_retryable(ValidationError("bad"))
        assert not is_retryable(NotFoundError("Permit"))

    def test_to_dict(self):
        payload = classify_error(TimeoutError()).to_dict()
        assert payload["retryable"] is True
        assert payload["code"] == E.TIMEOUT


class TestRetryWithBackoff:
    def test_success_first_try(self):
        sleeps = []
        assert retry_with_backoff(lambda: 42, sleep=sleeps.append) == 42
        assert sleeps == []

    def test_retries_transient_then_succeeds(self):
        calls = {"n": 0}
        sleeps = []

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise ConnectionError("reset")
            return "ok"

        assert retry_with_backoff(flaky, delay=1.0, backoff=2.0, sleep=sleeps.append) == "ok"
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        sleeps = []

        def always_down():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            retry_with_backoff(always_down, max_retries=2, delay=0.5, sleep=sleeps.append)
        assert sleeps == [0.5, 1.0]

    def test_non_retryable_raises_immediately(self):
        calls = {"n": 0}

        def invalid():
            calls["n"] += 1
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            retry_with_backoff(invalid, sleep=lambda _: None)
        assert calls["n"] == 1

    def test_custom_predicate(self):
        calls = {"n": 0}

        def fn():
            calls["n"] += 1
            if calls["n"] == 1:
                raise KeyError("once")
            return calls["n"]

        result = retry_with_backoff(fn, should_retry=lambda e: isinstance(e, KeyError),
                                    sleep=lambda _: None)
        assert result == 2
