"""Occupancy and revenue aggregation over cached event data."""
from typing import Iterable, List, Optional

from processor.models import (
    QUALIFYING_MANUAL_STATUSES,
    AttendeeRecord,
    EventRecord,
    EventTotals,
    ManualAttendee,
    PaymentRecord,
)

DEFAULT_CAPACITY = 36


def compute_event_totals(
    event: EventRecord,
    attendees: List[AttendeeRecord],
    manual_attendees: Iterable[ManualAttendee],
    payments: Iterable[PaymentRecord],
    default_capacity: int = DEFAULT_CAPACITY
) -> EventTotals:
    """
    Combine online attendees, manual reservations and payments into event totals.

    Online revenue is the sum of paid line totals when payment records exist,
    otherwise online count times the list price. Manual revenue uses each
    reservation's override price, else the list price.

    Args:
        event: The event
        attendees: Cached online attendee records of the event
        manual_attendees: Manual reservations (other events' are ignored)
        payments: Payment records (other events' are ignored)
        default_capacity: Capacity used when the event has none

    Returns:
        EventTotals for the event
    """
    list_price = event.price or 0

    qualifying = [
        a for a in manual_attendees
        if a.wp_event_id == event.wp_event_id and a.status in QUALIFYING_MANUAL_STATUSES
    ]
    event_payments = [p for p in payments if p.wp_event_id == event.wp_event_id]

    online_count = len(attendees)
    manual_count = sum(a.quantity for a in qualifying)
    total = online_count + manual_count

    capacity = event.capacity or default_capacity
    occupancy = round(total / capacity * 100) if capacity > 0 else 0

    if event_payments:
        online_revenue = sum(float(p.line_total_paid or 0) for p in event_payments)
        revenue_source = 'payments'
    else:
        online_revenue = online_count * list_price
        revenue_source = 'list_price'

    manual_revenue = 0.0
    for attendee in qualifying:
        price = attendee.ticket_price if attendee.ticket_price is not None else list_price
        manual_revenue += (price or 0) * attendee.quantity

    return EventTotals(
        online_count=online_count,
        manual_count=manual_count,
        total=total,
        capacity=capacity,
        remaining=capacity - total,
        occupancy_percent=occupancy,
        overbooked=total > capacity,
        online_revenue=float(online_revenue),
        manual_revenue=float(manual_revenue),
        total_revenue=float(online_revenue + manual_revenue),
        revenue_source=revenue_source
    )


def event_totals_from_cache(store, event: EventRecord, default_capacity: Optional[int] = None) -> EventTotals:
    """
    Compute totals for an event from the current cache contents.

    Without an explicit default capacity the stored app settings supply it.
    """
    if default_capacity is None:
        default_capacity = store.get_settings().default_capacity
    return compute_event_totals(
        event,
        store.get_attendees(event.wp_event_id),
        store.list_manual_attendees(event.wp_event_id),
        store.get_payments(event.wp_event_id),
        default_capacity=default_capacity
    )
