"""
License state evaluation.

Pure functions over a ``BusinessLicense`` (or None) and an instant. Durations
are calendar additions (python-dateutil ``relativedelta``), not fixed
second counts: a one-month license started on the 31st ends on the last day
of the next month when that month is shorter.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from agenda.core.config import utc_now
from agenda.domain.entities import (
    LICENSE_15_DAYS,
    LICENSE_1_MONTH,
    LICENSE_1_YEAR,
    LICENSE_3_MONTHS,
    LICENSE_6_MONTHS,
    Business,
    BusinessLicense,
    LicenseStatus,
)

EXPIRING_SOON_WINDOW = timedelta(days=3)
ONE_DAY_SECONDS = 24 * 60 * 60

LICENSE_DURATIONS = {
    LICENSE_15_DAYS: relativedelta(days=15),
    LICENSE_1_MONTH: relativedelta(months=1),
    LICENSE_3_MONTHS: relativedelta(months=3),
    LICENSE_6_MONTHS: relativedelta(months=6),
    LICENSE_1_YEAR: relativedelta(years=1),
}


def compute_end_date(start_date: datetime, license_type: str) -> datetime:
    """Add the calendar duration of ``license_type`` to ``start_date``."""
    try:
        return start_date + LICENSE_DURATIONS[license_type]
    except KeyError:
        raise ValueError(f"Invalid license type: {license_type}") from None


def is_expired(license: Optional[BusinessLicense], now: Optional[datetime] = None) -> bool:
    if license is None or not license.is_active:
        return True
    return (now or utc_now()) > license.end_date


def is_expiring_soon(
    license: Optional[BusinessLicense], now: Optional[datetime] = None
) -> bool:
    if license is None or not license.is_active:
        return False
    return license.end_date <= (now or utc_now()) + EXPIRING_SOON_WINDOW


def days_remaining(license: Optional[BusinessLicense], now: Optional[datetime] = None) -> int:
    """Whole days left, rounded up. Negative once past ``end_date``; is_expired decides validity."""
    if license is None or not license.is_active:
        return 0
    delta = license.end_date - (now or utc_now())
    return math.ceil(delta.total_seconds() / ONE_DAY_SECONDS)


def evaluate_business(
    business: Optional[Business],
    business_id: Optional[str],
    now: Optional[datetime] = None,
) -> LicenseStatus:
    """Status snapshot for a business record (None when the business is gone)."""
    if business is None:
        return LicenseStatus.invalid(business_id)

    now = now or utc_now()
    license = business.license
    expired = is_expired(license, now)
    return LicenseStatus(
        is_valid=(
            not expired
            and business.is_active is not False
            and license is not None
            and license.is_active
        ),
        is_expired=expired,
        is_expiring_soon=is_expiring_soon(license, now),
        days_remaining=days_remaining(license, now),
        license=license,
        business_id=business_id,
    )
