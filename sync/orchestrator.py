"""Top-level coordinator for event, attendee and payment synchronization."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from processor.event_processor import EventProcessor
from processor.models import (
    AttendeeFetchResult,
    EventRecord,
    GlobalSyncState,
    SyncMode,
    SyncOutcome,
)
from sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

BUSY_MESSAGE = 'Sync already in progress'


class SyncOrchestrator:
    """
    Runs one sync pass at a time.

    Refreshes the event list, runs a full or delta attendee sync as the
    scheduler decides, then backfills payments for every cached order.
    """

    RELEVANT_DAYS_BACK = 90
    MAX_WORKERS = 3

    def __init__(
        self,
        store,
        gateway,
        reconciler,
        scheduler: Optional[SyncScheduler] = None,
        processor: Optional[EventProcessor] = None,
        relevant_days_back: int = RELEVANT_DAYS_BACK,
        max_workers: int = MAX_WORKERS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            store: CacheStore
            gateway: TicketingGateway for events and attendees
            reconciler: OrderReconciler for payment backfill
            scheduler: Scheduling rules (default: Europe/Bucharest)
            processor: Event normalizer
            relevant_days_back: Trailing window of events whose attendees are synced
            max_workers: Attendee fetches issued concurrently
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.gateway = gateway
        self.reconciler = reconciler
        self.scheduler = scheduler or SyncScheduler()
        self.processor = processor or EventProcessor()
        self.relevant_days_back = relevant_days_back
        self.max_workers = max_workers
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def run_sync(self, now: Optional[datetime] = None) -> SyncOutcome:
        """
        Run one sync pass unless another is in progress.

        Args:
            now: Aware UTC time to evaluate the schedule against (default: clock)

        Returns:
            SyncOutcome; overlapping calls get success=False immediately
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Sync requested while another sync is running, rejecting")
            return SyncOutcome(success=False, message=BUSY_MESSAGE)

        try:
            return self._run(now or self.clock())
        except Exception as e:
            logger.error(
                f"Sync failed: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return SyncOutcome(success=False, message=f"Sync failed: {e}")
        finally:
            self._lock.release()

    def _run(self, now: datetime) -> SyncOutcome:
        window_start = now - timedelta(days=self.relevant_days_back)

        # Event list failure aborts the whole run
        events = self._refresh_events(now, window_start)

        relevant = [e for e in events if e.start_datetime >= window_start]
        upcoming = [e for e in relevant if e.start_datetime >= now]

        global_state = self.store.get_global_sync_state()
        mode = self.scheduler.decide(global_state, now)
        logger.info(
            f"Sync mode: {mode.value}",
            extra={'relevant_events': len(relevant), 'upcoming_events': len(upcoming)}
        )

        statistics: Dict[str, int] = {
            'events_refreshed': len(events),
            'relevant_events': len(relevant),
            'events_synced': 0,
            'events_failed': 0,
        }

        if mode == SyncMode.FULL:
            synced, failed = self._full_sync(relevant, now)
            self.store.save_global_sync_state(GlobalSyncState(
                last_full_sync_date=self.scheduler.local_date(now),
                last_delta_sync_utc=now
            ))
        elif mode == SyncMode.DELTA:
            synced, failed = self._delta_sync(upcoming, now)
            self.store.save_global_sync_state(GlobalSyncState(
                last_full_sync_date=global_state.last_full_sync_date,
                last_delta_sync_utc=now
            ))
        else:
            synced, failed = 0, 0

        statistics['events_synced'] = synced
        statistics['events_failed'] = failed
        statistics['payments_upserted'] = self._backfill_payments(relevant)

        if mode == SyncMode.NONE:
            message = f"Events refreshed ({len(events)}); attendee sync not due"
        else:
            message = f"{mode.value.capitalize()} sync complete: {synced} of {synced + failed} events synced"

        logger.info(message, extra=statistics)
        return SyncOutcome(success=True, message=message, mode=mode, statistics=statistics)

    def _refresh_events(self, now: datetime, window_start: datetime) -> List[EventRecord]:
        logger.info("Refreshing events list")
        raw_events = self.gateway.list_events(start_date=window_start)

        existing = {e.wp_event_id: e for e in self.store.get_all_events().values()}
        events = self.processor.process_events(raw_events, existing, synced_at=now)
        self.store.save_events(events)
        return events

    def _full_sync(self, events: List[EventRecord], now: datetime) -> Tuple[int, int]:
        """Replace every relevant event's attendee cache with a complete fetch."""
        logger.info(f"Starting full attendee sync for {len(events)} events")
        results, failed = self._fetch_attendees([(e, None) for e in events])

        synced = 0
        for event, result in results:
            try:
                self.store.replace_attendees(event.wp_event_id, result.records)
                self.store.update_sync_state(
                    event.wp_event_id,
                    last_full_sync_utc=now,
                    last_seen_total=result.observed_total
                )
                self.store.add_snapshot(event.wp_event_id, len(result.records), captured_at=now)
                synced += 1
            except Exception as e:
                failed += 1
                self._log_event_failure(event, e)

        return synced, failed

    def _delta_sync(self, events: List[EventRecord], now: datetime) -> Tuple[int, int]:
        """Merge attendees changed since each upcoming event's last sync."""
        logger.info(f"Starting delta attendee sync for {len(events)} upcoming events")
        jobs = []
        for event in events:
            state = self.store.get_sync_state(event.wp_event_id)
            jobs.append((event, state.last_delta_sync_utc or state.last_full_sync_utc))

        results, failed = self._fetch_attendees(jobs)

        synced = 0
        for event, result in results:
            try:
                if result.records:
                    merged = self.store.merge_attendees(event.wp_event_id, result.records)
                    self.store.add_snapshot(event.wp_event_id, len(merged), captured_at=now)
                self.store.update_sync_state(
                    event.wp_event_id,
                    last_delta_sync_utc=now,
                    last_seen_total=result.observed_total
                )
                synced += 1
            except Exception as e:
                failed += 1
                self._log_event_failure(event, e)

        return synced, failed

    def _log_event_failure(self, event: EventRecord, error: Exception) -> None:
        logger.error(
            f"Attendee sync failed for event {event.wp_event_id}: {error}",
            extra={'error_type': type(error).__name__}
        )

    def _fetch_attendees(
        self,
        jobs: List[Tuple[EventRecord, Optional[datetime]]]
    ) -> Tuple[List[Tuple[EventRecord, AttendeeFetchResult]], int]:
        """
        Fetch attendees for several events concurrently.

        A failure for one event is logged and does not affect the others.

        Returns:
            Tuple of (successful (event, result) pairs in job order, failure count)
        """
        results: Dict[int, AttendeeFetchResult] = {}
        failed = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.gateway.list_attendees, event.wp_event_id, since): event
                for event, since in jobs
            }
            for future in as_completed(futures):
                event = futures[future]
                try:
                    results[event.wp_event_id] = future.result()
                except Exception as e:
                    failed += 1
                    self._log_event_failure(event, e)

        ordered = [(event, results[event.wp_event_id]) for event, _ in jobs if event.wp_event_id in results]
        return ordered, failed

    def _backfill_payments(self, events: List[EventRecord]) -> int:
        """Reconcile every order referenced by cached attendees of the given events."""
        order_ids: Set[str] = set()
        for event in events:
            for attendee in self.store.get_attendees(event.wp_event_id):
                if attendee.order_id:
                    order_ids.add(attendee.order_id)

        if not order_ids:
            return 0

        try:
            result = self.reconciler.sync_payments_for_orders(sorted(order_ids))
        except Exception as e:
            logger.error(
                f"Payment backfill failed: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return 0
        return result.upserted
