"""Tests for expiry-window calculations."""

from datetime import date, datetime, timedelta, timezone

import pytest

from rpas_compliance.services.expiry import (
    as_utc,
    days_until_expiry,
    is_expired,
    is_expiring_soon,
    permit_status,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestDaysUntilExpiry:
    def test_none_expiry(self):
        assert days_until_expiry(None, NOW) is None

    def test_rounds_partial_days_up(self):
        assert days_until_expiry(NOW + timedelta(hours=1), NOW) == 1
        assert days_until_expiry(NOW + timedelta(days=10, hours=3), NOW) == 11

    def test_past_is_non_positive(self):
        assert days_until_expiry(NOW - timedelta(days=2), NOW) == -2

    def test_date_is_midnight_utc(self):
        assert days_until_expiry(date(2026, 3, 11), NOW) == 10

    def test_naive_datetime_is_utc(self):
        assert as_utc(datetime(2026, 3, 1, 12, 0)) == NOW


class TestWindows:
    def test_expiring_soon_bounds(self):
        assert is_expiring_soon(NOW + timedelta(days=60), NOW)
        assert not is_expiring_soon(NOW + timedelta(days=61), NOW)
        assert not is_expiring_soon(NOW - timedelta(days=1), NOW)

    def test_custom_warning_window(self):
        assert is_expiring_soon(NOW + timedelta(days=20), NOW, warning_days=30)
        assert not is_expiring_soon(NOW + timedelta(days=20), NOW, warning_days=10)

    def test_expired(self):
        assert is_expired(NOW - timedelta(minutes=1), NOW)
        assert not is_expired(NOW + timedelta(days=1), NOW)
        assert not is_expired(None, NOW)


class TestPermitStatus:
    @pytest.mark.parametrize("offset,expected", [
        (timedelta(days=-1), "expired"),
        (timedelta(days=5), "expiring_soon"),
        (timedelta(days=30), "expiring_soon"),
        (timedelta(days=31), "active"),
    ])
    def test_derived_from_expiry(self, offset, expected):
        assert permit_status(NOW + offset, "active", NOW) == expected

    def test_no_expiry_is_active(self):
        assert permit_status(None, None, NOW) == "active"

    def test_suspended_survives(self):
        assert permit_status(NOW - timedelta(days=100), "suspended", NOW) == "suspended"

    def test_expired_permit_can_recover_after_renewal(self):
        assert permit_status(NOW + timedelta(days=365), "expired", NOW) == "active"
