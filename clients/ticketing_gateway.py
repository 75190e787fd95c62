"""Gateway for the Tribe Events and Tribe Tickets REST endpoints."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from clients.wordpress_client import WordPressClient
from processor.attendee_processor import normalize_attendees
from processor.models import AttendeeFetchResult, RawEvent

logger = logging.getLogger(__name__)


class TicketingGateway:
    """Fetches events and their attendees from the ticketing site."""

    EVENTS_PATH = 'wp-json/tribe/events/v1/events'
    ATTENDEES_PATH = 'wp-json/tribe/tickets/v1/attendees'
    EVENTS_PAGE_SIZE = 50
    ATTENDEES_PAGE_SIZE = 100

    def __init__(self, client: WordPressClient):
        """
        Initialize the gateway.

        Args:
            client: Authenticated WordPress client
        """
        self.client = client

    def list_events(self, start_date: Optional[datetime] = None) -> List[RawEvent]:
        """
        Fetch the full event list.

        Args:
            start_date: Earliest event start to include; the API default
                (upcoming only) applies when omitted

        Returns:
            List of RawEvent objects

        Raises:
            TransportError: If any page cannot be fetched
        """
        params: Dict[str, Any] = {}
        if start_date is not None:
            params['start_date'] = start_date.strftime('%Y-%m-%d %H:%M:%S')

        logger.info("Fetching events list")
        items, _ = self.client.get_all_pages(
            self.EVENTS_PATH,
            params,
            per_page=self.EVENTS_PAGE_SIZE
        )

        events = []
        for item in items:
            event = self._parse_event(item)
            if event:
                events.append(event)

        logger.info(f"Fetched {len(events)} events")
        return events

    def list_attendees(self, event_id: int, since: Optional[datetime] = None) -> AttendeeFetchResult:
        """
        Fetch attendees of one event, all of them or only those changed since a timestamp.

        Args:
            event_id: External event id
            since: Return only attendees modified at or after this time (delta mode)

        Returns:
            AttendeeFetchResult with normalized records and the reported total

        Raises:
            TransportError: If any page cannot be fetched
        """
        params: Dict[str, Any] = {'post_id': event_id}
        if since is not None:
            params['after'] = _format_utc(since)

        items, total = self.client.get_all_pages(
            self.ATTENDEES_PATH,
            params,
            per_page=self.ATTENDEES_PAGE_SIZE
        )

        records = normalize_attendees(items, event_id)
        mode = 'delta' if since is not None else 'full'
        logger.info(f"Fetched {len(records)} attendees for event {event_id} ({mode})")
        return AttendeeFetchResult(records=records, observed_total=total)

    def _parse_event(self, item: Dict[str, Any]) -> Optional[RawEvent]:
        """
        Convert one events endpoint item into a RawEvent.

        Returns:
            RawEvent or None if the item has no numeric id
        """
        try:
            wp_event_id = int(item['id'])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping event without numeric id: {item.get('id')!r}")
            return None

        cost_details = item.get('cost_details') or {}
        cost_values = cost_details.get('values') if isinstance(cost_details, dict) else None

        capacity = item.get('capacity') or item.get('global_stock_cap')
        try:
            capacity = int(capacity) if capacity else None
        except (TypeError, ValueError):
            capacity = None

        return RawEvent(
            wp_event_id=wp_event_id,
            title=item.get('title') or '',
            description=item.get('description') or '',
            start_date=item.get('start_date'),
            start_date_details=item.get('start_date_details'),
            end_date=item.get('end_date'),
            cost=item.get('cost'),
            cost_values=[str(v) for v in (cost_values or [])],
            capacity=capacity
        )


def _format_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
