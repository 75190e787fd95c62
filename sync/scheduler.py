"""Decides which attendee sync strategy an invocation should run."""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from processor.models import GlobalSyncState, SyncMode

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Pure scheduling rules, evaluated against an explicit clock value.

    One full sync per local calendar day, not before FULL_SYNC_HOUR; a delta
    sync whenever more than DELTA_INTERVAL has passed since the last run.
    """

    FULL_SYNC_HOUR = 7
    DELTA_INTERVAL = timedelta(minutes=15)

    def __init__(self, timezone_name: str = 'Europe/Bucharest'):
        """
        Initialize the scheduler.

        Args:
            timezone_name: IANA zone the daily full sync is scheduled in
        """
        self.tz = ZoneInfo(timezone_name)

    def local_now(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz)

    def local_date(self, now: datetime) -> date:
        """Calendar date of the given instant in the scheduling time zone."""
        return self.local_now(now).date()

    def should_run_full_sync(self, last_full_sync_date: Optional[date], now: datetime) -> bool:
        local = self.local_now(now)
        return last_full_sync_date != local.date() and local.hour >= self.FULL_SYNC_HOUR

    def should_run_delta_sync(self, last_delta_run_utc: Optional[datetime], now: datetime) -> bool:
        if last_delta_run_utc is None:
            return True
        if last_delta_run_utc.tzinfo is None:
            last_delta_run_utc = last_delta_run_utc.replace(tzinfo=timezone.utc)
        return self.local_now(now) - last_delta_run_utc > self.DELTA_INTERVAL

    def decide(self, state: GlobalSyncState, now: datetime) -> SyncMode:
        """
        Pick the strategy for this invocation; full takes precedence over delta.

        A state with no recorded full sync is a first run and always gets a
        full sync, regardless of the hour.
        """
        if state.last_full_sync_date is None:
            logger.info("No full sync recorded yet, running first full sync")
            return SyncMode.FULL
        if self.should_run_full_sync(state.last_full_sync_date, now):
            return SyncMode.FULL
        if self.should_run_delta_sync(state.last_delta_sync_utc, now):
            return SyncMode.DELTA
        return SyncMode.NONE
