"""Staff-entered reservations: validation and cache-backed CRUD."""
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from processor.errors import ValidationError
from processor.models import (
    QUALIFYING_MANUAL_STATUSES,
    ManualAttendee,
    ManualSource,
    ManualStatus,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'wp_event_id', 'name', 'phone', 'email', 'quantity',
    'source', 'status', 'notes', 'ticket_price',
)


def _validate_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and coerce manual attendee fields.

    Raises:
        ValidationError: On the first invalid field
    """
    clean: Dict[str, Any] = {}

    if 'wp_event_id' in data:
        try:
            clean['wp_event_id'] = int(data['wp_event_id'])
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid event id: {data['wp_event_id']!r}")

    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            raise ValidationError("Name is required")
        clean['name'] = name

    if 'quantity' in data:
        quantity = data['quantity']
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity must be a whole number of at least 1, got {quantity!r}")
        clean['quantity'] = quantity

    if 'source' in data:
        try:
            clean['source'] = ManualSource(data['source'])
        except ValueError:
            raise ValidationError(f"Unknown source: {data['source']!r}")

    if 'status' in data:
        try:
            clean['status'] = ManualStatus(data['status'])
        except ValueError:
            raise ValidationError(f"Unknown status: {data['status']!r}")

    if 'ticket_price' in data:
        price = data['ticket_price']
        if price is not None:
            try:
                price = float(price)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid ticket price: {price!r}")
            if price < 0:
                raise ValidationError("Ticket price cannot be negative")
        clean['ticket_price'] = price

    for key in ('phone', 'email', 'notes'):
        if key in data:
            value = (data[key] or '').strip()
            clean[key] = value or None

    return clean


class ManualAttendeeService:
    """Creates, edits and removes manual reservations in the cache."""

    def __init__(self, store):
        self.store = store

    def add(self, data: Dict[str, Any], created_by_user_id: str = '') -> ManualAttendee:
        """
        Add a manual reservation.

        Args:
            data: Fields of the reservation; wp_event_id and name are required,
                quantity defaults to 1, source to phone, status to reserved
            created_by_user_id: Staff member entering the reservation

        Returns:
            The stored ManualAttendee

        Raises:
            ValidationError: If the input is malformed
        """
        for required in ('wp_event_id', 'name'):
            if data.get(required) in (None, ''):
                raise ValidationError(f"Field '{required}' is required")

        fields = {
            'quantity': 1,
            'source': ManualSource.PHONE.value,
            'status': ManualStatus.RESERVED.value,
        }
        fields.update({k: v for k, v in data.items() if k in EDITABLE_FIELDS})
        clean = _validate_fields(fields)

        attendee = ManualAttendee(
            id=uuid.uuid4().hex,
            created_by_user_id=created_by_user_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            **clean
        )
        self.store.put_manual_attendee(attendee)
        logger.info(f"Added manual attendee {attendee.id} to event {attendee.wp_event_id}")
        return attendee

    def update(self, attendee_id: str, changes: Dict[str, Any]) -> ManualAttendee:
        """
        Apply changes to an existing reservation.

        Raises:
            ValidationError: If the reservation does not exist or a change is invalid
        """
        current = self.store.get_manual_attendee(attendee_id)
        if current is None:
            raise ValidationError(f"Manual attendee {attendee_id} not found")

        clean = _validate_fields({k: v for k, v in changes.items() if k in EDITABLE_FIELDS})
        updated = replace(current, **clean)
        self.store.put_manual_attendee(updated)
        return updated

    def remove(self, attendee_id: str) -> None:
        """
        Delete a reservation.

        Raises:
            ValidationError: If the reservation does not exist
        """
        if not self.store.delete_manual_attendee(attendee_id):
            raise ValidationError(f"Manual attendee {attendee_id} not found")
        logger.info(f"Removed manual attendee {attendee_id}")

    def list_by_event(self, wp_event_id: int) -> List[ManualAttendee]:
        return self.store.list_manual_attendees(wp_event_id)

    def list_all(self) -> List[ManualAttendee]:
        return self.store.list_manual_attendees()

    def sum_quantity_by_event(self, wp_event_id: int, attendees: Optional[List[ManualAttendee]] = None) -> int:
        """Seats taken by reservations that are not cancelled or no-shows."""
        attendees = attendees if attendees is not None else self.list_by_event(wp_event_id)
        return sum(
            a.quantity for a in attendees
            if a.wp_event_id == wp_event_id and a.status in QUALIFYING_MANUAL_STATUSES
        )
