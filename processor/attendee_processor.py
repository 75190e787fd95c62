"""Normalization of raw Tribe Tickets attendee payloads."""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from processor.models import AttendeeRecord

logger = logging.getLogger(__name__)

NameResolver = Callable[[Dict[str, Any]], Optional[str]]

FALLBACK_NAME = 'N/A'


def normalize_text(value: Any) -> str:
    """Trim a value to a string, treating None and a literal "N/A" as empty."""
    if value is None:
        return ''
    text = str(value).strip()
    if text.upper() == 'N/A':
        return ''
    return text


def prettify_email_local_part(email: Any) -> str:
    """
    Turn the local part of an email address into a display name.

    jane.doe_smith@example.com -> "Jane Doe Smith". Returns "N/A" when the
    email is empty.
    """
    address = normalize_text(email)
    if not address:
        return FALLBACK_NAME

    local = address.split('@')[0]
    spaced = re.sub(r'[._-]', ' ', local)
    spaced = re.sub(r'\s+', ' ', spaced).strip()
    if not spaced:
        return local

    return ' '.join(word[:1].upper() + word[1:].lower() for word in spaced.split(' '))


def resolve_title(item: Dict[str, Any]) -> Optional[str]:
    return normalize_text(item.get('title')) or None


def resolve_composite_name(item: Dict[str, Any]) -> Optional[str]:
    for key in ('purchaser_name', 'full_name', 'name'):
        name = normalize_text(item.get(key))
        if name:
            return name
    return None


def resolve_billing_name(item: Dict[str, Any]) -> Optional[str]:
    # Both parts are required; a lone first or last name is not used
    first = normalize_text(item.get('billing_first_name'))
    last = normalize_text(item.get('billing_last_name'))
    if first and last:
        return f"{first} {last}"
    return None


def resolve_email_name(item: Dict[str, Any]) -> Optional[str]:
    return prettify_email_local_part(item.get('email') or item.get('purchaser_email'))


NAME_RESOLVERS: tuple = (
    resolve_title,
    resolve_composite_name,
    resolve_billing_name,
    resolve_email_name,
)


def first_non_empty(resolvers: Iterable[NameResolver], item: Dict[str, Any]) -> Optional[str]:
    """Return the first non-empty value produced by the resolvers, in order."""
    for resolver in resolvers:
        value = resolver(item)
        if value:
            return value
    return None


def resolve_display_name(item: Dict[str, Any]) -> str:
    """Resolve an attendee display name using the ordered resolver chain."""
    return first_non_empty(NAME_RESOLVERS, item) or FALLBACK_NAME


def _optional_id(value: Any) -> Optional[str]:
    if value is None or value == '' or value == 0:
        return None
    return str(value)


def _parse_price(item: Dict[str, Any]) -> float:
    ticket = item.get('ticket')
    raw_price = ticket.get('raw_price') if isinstance(ticket, dict) else None
    try:
        return float(raw_price or 0)
    except (TypeError, ValueError):
        return 0.0


def normalize_attendee(item: Dict[str, Any], event_id: int, now: Optional[datetime] = None) -> AttendeeRecord:
    """
    Convert one raw attendee payload into an AttendeeRecord.

    Args:
        item: Attendee object from the attendees endpoint
        event_id: Event the attendees were requested for
        now: Timestamp used when the payload carries no created/modified time

    Returns:
        Normalized AttendeeRecord
    """
    fallback_time = (now or datetime.now(timezone.utc)).isoformat()

    try:
        resolved_event_id = int(item.get('post_id') or item.get('event_id') or event_id)
    except (TypeError, ValueError):
        resolved_event_id = event_id

    return AttendeeRecord(
        attendee_id=str(item.get('id')),
        event_id=resolved_event_id,
        ticket_id=_optional_id(item.get('ticket_id')),
        order_id=_optional_id(item.get('order_id') or item.get('order')),
        full_name=resolve_display_name(item),
        email=item.get('purchaser_email') or item.get('email') or '',
        created_utc=item.get('date_utc') or fallback_time,
        modified_utc=item.get('modified_utc') or fallback_time,
        checked_in=bool(item.get('checkin_status')) or bool(item.get('checked_in')),
        provider=item.get('provider') or 'unknown',
        is_purchaser=bool(item.get('is_purchaser')),
        price=_parse_price(item),
        raw_payload=item
    )


def normalize_attendees(items: List[Dict[str, Any]], event_id: int, now: Optional[datetime] = None) -> List[AttendeeRecord]:
    """
    Normalize a list of raw attendee payloads, oldest purchase first.

    Items without an id cannot be merged and are skipped.
    """
    records = []
    for item in items:
        if item.get('id') in (None, ''):
            logger.warning(f"Skipping attendee without id for event {event_id}")
            continue
        records.append(normalize_attendee(item, event_id, now))

    records.sort(key=lambda r: r.created_utc)
    return records
