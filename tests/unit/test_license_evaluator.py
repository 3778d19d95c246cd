"""
Tests for license state evaluation: calendar arithmetic, expiry, the
expiring-soon window and day counting.
"""

from datetime import datetime, timezone

import pytest

from agenda.domain.entities import Business, BusinessLicense
from agenda.services.license_evaluator import (
    compute_end_date,
    days_remaining,
    evaluate_business,
    is_expired,
    is_expiring_soon,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def one_month_license(start=utc(2024, 1, 15, 12), is_active=True):
    return BusinessLicense(
        type="1month",
        start_date=start,
        end_date=compute_end_date(start, "1month"),
        is_active=is_active,
        renewal_count=1,
    )


class TestComputeEndDate:
    def test_month_end_overflow_clamps_to_last_day(self):
        """Jan 31 plus one month lands on Feb 29 in a leap year."""
        assert compute_end_date(utc(2024, 1, 31), "1month") == utc(2024, 2, 29)

    def test_fifteen_days(self):
        assert compute_end_date(utc(2024, 1, 15), "15days") == utc(2024, 1, 30)

    def test_three_and_six_months(self):
        assert compute_end_date(utc(2024, 1, 15), "3months") == utc(2024, 4, 15)
        assert compute_end_date(utc(2024, 1, 15), "6months") == utc(2024, 7, 15)

    def test_one_year_from_leap_day(self):
        assert compute_end_date(utc(2024, 2, 29), "1year") == utc(2025, 2, 28)

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            compute_end_date(utc(2024, 1, 15), "2weeks")


class TestExpiry:
    def test_scenario_end_date(self):
        license = one_month_license()
        assert license.end_date == utc(2024, 2, 15, 12)

    def test_two_days_before_end_is_expiring_soon(self):
        license = one_month_license()
        now = utc(2024, 2, 13, 12)

        assert is_expired(license, now) is False
        assert is_expiring_soon(license, now) is True
        assert days_remaining(license, now) == 2

    def test_partial_days_round_up(self):
        license = one_month_license()
        assert days_remaining(license, utc(2024, 2, 14, 0)) == 2

    def test_well_before_end_is_not_expiring_soon(self):
        license = one_month_license()
        now = utc(2024, 2, 1, 12)
        assert is_expiring_soon(license, now) is False
        assert days_remaining(license, now) == 14

    def test_after_end_is_expired(self):
        license = one_month_license()
        now = utc(2024, 2, 16, 12)
        assert is_expired(license, now) is True
        assert days_remaining(license, now) == -1

    def test_exact_end_instant_is_not_yet_expired(self):
        license = one_month_license()
        assert is_expired(license, utc(2024, 2, 15, 12)) is False

    def test_inactive_license_is_expired_whatever_the_date(self):
        license = one_month_license(is_active=False)
        now = utc(2024, 1, 20)

        assert is_expired(license, now) is True
        assert is_expiring_soon(license, now) is False
        assert days_remaining(license, now) == 0

    def test_missing_license(self):
        now = utc(2024, 1, 20)
        assert is_expired(None, now) is True
        assert is_expiring_soon(None, now) is False
        assert days_remaining(None, now) == 0


class TestEvaluateBusiness:
    def test_missing_business_is_invalid(self):
        status = evaluate_business(None, "ghost", utc(2024, 1, 20))

        assert status.is_valid is False
        assert status.is_expired is True
        assert status.license is None
        assert status.business_id == "ghost"

    def test_valid_license(self):
        business = Business(id="b1", license=one_month_license(), is_active=True)
        status = evaluate_business(business, "b1", utc(2024, 1, 20))

        assert status.is_valid is True
        assert status.is_expired is False
        assert status.days_remaining == 27

    def test_deactivated_business_invalidates_license(self):
        business = Business(id="b1", license=one_month_license(), is_active=False)
        status = evaluate_business(business, "b1", utc(2024, 1, 20))

        assert status.is_valid is False
        assert status.is_expired is False

    def test_unset_active_flag_does_not_invalidate(self):
        business = Business(id="b1", license=one_month_license(), is_active=None)
        assert evaluate_business(business, "b1", utc(2024, 1, 20)).is_valid is True

    def test_business_without_license(self):
        business = Business(id="b1", is_active=True)
        status = evaluate_business(business, "b1", utc(2024, 1, 20))

        assert status.is_valid is False
        assert status.is_expired is True
        assert status.license is None
