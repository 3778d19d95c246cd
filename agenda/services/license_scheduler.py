"""
License Sweep Scheduler - periodic background license expiry checks.

Runs ``LicenseService.sweep_all_licenses`` once at start and then every
``LICENSE_SWEEP_INTERVAL_SECONDS`` as an APScheduler interval job. Intervals
missed while the process was down are not replayed.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional, Set, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from agenda.core.config import get_license_sweep_disabled, get_license_sweep_interval
from agenda.core.exceptions import AgendaError
from agenda.services.license_evaluator import days_remaining, is_expired, is_expiring_soon

logger = logging.getLogger(__name__)


class LicenseSweepScheduler:
    def __init__(
        self,
        license_service,
        interval_seconds: Optional[int] = None,
        disabled: Optional[bool] = None,
        notification_service=None,
    ) -> None:
        self.license_service = license_service
        self.notification_service = notification_service
        self.interval_seconds = interval_seconds or get_license_sweep_interval()
        self.disabled = get_license_sweep_disabled() if disabled is None else disabled
        self._scheduler: Optional[BackgroundScheduler] = None
        self._notified: Set[Tuple[str, date]] = set()
        self.last_run_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> bool:
        """Start the background loop. Returns False when muted or already running."""
        if self.disabled:
            logger.info(
                "License sweep muted due to TESTING or DISABLE_LICENSE_SWEEP."
            )
            return False
        if self.running:
            return False

        self._scheduler = BackgroundScheduler(daemon=True)
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="license_sweep",
            name="Sweep expired business licenses",
            next_run_time=datetime.now(timezone.utc),
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "License sweep scheduler started",
            extra={"context": {"interval_seconds": self.interval_seconds}},
        )
        return True

    def stop(self, wait: bool = True) -> None:
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("License sweep scheduler stopped")

    def run_once(self):
        """One sweep plus expiring-soon reminders; errors are logged, never raised."""
        try:
            logger.info(
                "Starting scheduled license sweep",
                extra={"context": {"job": "license_sweep"}},
            )
            blocked = self.license_service.sweep_all_licenses()
            self.last_run_at = self.license_service.clock()
        except Exception as e:
            logger.error(
                "Error in scheduled license sweep",
                extra={"context": {"job": "license_sweep", "error": str(e)}},
                exc_info=True,
            )
            return []

        if self.notification_service is not None:
            try:
                self._notify_owners(blocked)
            except AgendaError as e:
                logger.warning(
                    "Could not send license notifications",
                    extra={"context": {"job": "license_sweep", "error": str(e)}},
                )
        return blocked

    def _notify_owners(self, blocked) -> None:
        """Expired notice for businesses just blocked; one expiring reminder per business per day."""
        now = self.license_service.clock()
        today = now.date()
        businesses = self.license_service.business_repo.get_all()
        for business_id in blocked:
            business = businesses.get(business_id)
            if business is not None and business.owner_id:
                self.notification_service.notify_license_expired(business_id, business.owner_id)
        for business_id, business in businesses.items():
            license = business.license
            if license is None or is_expired(license, now):
                continue
            if not is_expiring_soon(license, now):
                continue
            if (business_id, today) in self._notified:
                continue
            self.notification_service.notify_license_expiring(
                business_id, business.owner_id, days_remaining(license, now)
            )
            self._notified.add((business_id, today))
