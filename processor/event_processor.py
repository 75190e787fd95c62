"""Event processor for validating and normalizing ticketing events."""
import html
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from processor.description_extractor import extract_wines_and_foods
from processor.models import EventRecord, EventType, RawEvent

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r'\d+(?:[.,]\d+)?')

# Checked in order; the first keyword found in title + description wins
EVENT_KEYWORDS = {
    'degustare': EventType.DEGUSTARE,
    'tasting': EventType.DEGUSTARE,
    'masterclass': EventType.MASTERCLASS,
    'pairing': EventType.PAIRING,
    'cina': EventType.PAIRING,
    'whisky': EventType.WHISKY,
    'whiskey': EventType.WHISKY,
    'rum': EventType.ROM,
    'rom': EventType.ROM,
    'cocktail': EventType.COCKTAIL,
    'special': EventType.SPECIAL,
}


def classify_event(title: str, description: str) -> EventType:
    """Classify an event by the first matching keyword."""
    text = f"{title} {description}".lower()
    for keyword, event_type in EVENT_KEYWORDS.items():
        if keyword in text:
            return event_type
    return EventType.ALTUL


class EventProcessor:
    """Processor for validating and normalizing event data."""

    MAX_TITLE_LENGTH = 200

    def __init__(self, timezone_name: str = 'Europe/Bucharest'):
        """
        Initialize the processor.

        Args:
            timezone_name: Time zone the ticketing site reports local times in
        """
        self.tz = ZoneInfo(timezone_name)

    def process_events(
        self,
        raw_events: List[RawEvent],
        existing: Dict[int, EventRecord],
        synced_at: Optional[datetime] = None
    ) -> List[EventRecord]:
        """
        Process and validate raw event data.

        Args:
            raw_events: Events from the ticketing gateway
            existing: Cached events keyed by external event id
            synced_at: Refresh timestamp recorded on every event

        Returns:
            List of EventRecord objects; existing events keep their internal id
        """
        synced_at = synced_at or datetime.now(timezone.utc)
        processed_events = []
        seen = set()

        for event in raw_events:
            if event.wp_event_id in seen:
                logger.debug(f"Skipping duplicate event {event.wp_event_id}")
                continue
            seen.add(event.wp_event_id)
            try:
                processed_event = self._process_single_event(
                    event, existing.get(event.wp_event_id), synced_at
                )
                if processed_event:
                    processed_events.append(processed_event)
            except Exception as e:
                logger.warning(
                    f"Failed to process event {event.wp_event_id} '{event.title}': {e}"
                )
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def _process_single_event(
        self,
        event: RawEvent,
        previous: Optional[EventRecord],
        synced_at: datetime
    ) -> Optional[EventRecord]:
        """
        Process a single event.

        Returns:
            EventRecord or None if validation fails
        """
        title = html.unescape(event.title or '').strip()
        if not title:
            logger.warning(f"Event {event.wp_event_id} missing required field: title")
            return None

        start = self._normalize_start(event)
        if start is None:
            logger.warning(
                f"Invalid start date for event '{title}': {event.start_date}"
            )
            return None

        end = self._parse_datetime(event.end_date) if event.end_date else None
        description = event.description or ''
        extracted = extract_wines_and_foods(description)

        return EventRecord(
            id=previous.id if previous else uuid.uuid4().hex,
            wp_event_id=event.wp_event_id,
            title=title[:self.MAX_TITLE_LENGTH],
            description=description,
            start_datetime=start,
            end_datetime=end,
            price=self._parse_price(event),
            capacity=event.capacity or None,
            event_type=previous.event_type if previous else classify_event(title, description),
            wine_focus=previous.wine_focus if previous else '',
            extracted_wines=extracted.wines,
            extracted_menu=extracted.foods,
            last_synced_at=synced_at
        )

    def _normalize_start(self, event: RawEvent) -> Optional[datetime]:
        """Prefer the nested start_date_details, fall back to the start_date string."""
        details = event.start_date_details
        if details:
            try:
                return datetime(
                    int(details['year']),
                    int(details['month']),
                    int(details['day']),
                    int(details.get('hour') or 0),
                    int(details.get('minutes') or 0),
                    tzinfo=self.tz
                )
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Unusable start_date_details for event {event.wp_event_id}")

        if event.start_date:
            return self._parse_datetime(event.start_date)
        return None

    def _parse_datetime(self, value: str) -> Optional[datetime]:
        """
        Parse a local date/time string into an aware datetime.

        Returns:
            Datetime in the site time zone or None if parsing fails
        """
        datetime_formats = [
            '%Y-%m-%d %H:%M:%S',
            '%Y-%m-%d %H:%M',
            '%Y-%m-%dT%H:%M:%S',
            '%Y-%m-%d',
        ]

        value = value.strip()
        for fmt in datetime_formats:
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=self.tz)
            except ValueError:
                continue

        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=self.tz)

    def _parse_price(self, event: RawEvent) -> float:
        """List price from cost_details values, else the cost string, else 0."""
        for candidate in (event.cost_values[0] if event.cost_values else None, event.cost):
            if candidate in (None, ''):
                continue
            match = _NUMBER_RE.search(str(candidate))
            if match:
                return float(match.group(0).replace(',', '.'))
        return 0.0
