"""Data models for event, attendee and payment synchronization."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    """Event classification derived from title and description keywords."""
    DEGUSTARE = 'degustare vin'
    MASTERCLASS = 'masterclass'
    PAIRING = 'pairing'
    WHISKY = 'whisky'
    ROM = 'rom'
    COCKTAIL = 'cocktail'
    SPECIAL = 'special'
    ALTUL = 'altul'


class ManualSource(str, Enum):
    """Channel a manual reservation came in through."""
    PHONE = 'phone'
    EMAIL = 'email'
    WALK_IN = 'walk-in'
    SOCIAL = 'social media'
    INFLUENCER = 'influencer'
    IALOC = 'ialoc'


class ManualStatus(str, Enum):
    """Lifecycle status of a manual reservation."""
    RESERVED = 'reserved'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no-show'
    ARRIVED = 'arrived'


# Statuses that count towards occupancy and revenue
QUALIFYING_MANUAL_STATUSES = frozenset({
    ManualStatus.RESERVED,
    ManualStatus.CONFIRMED,
    ManualStatus.ARRIVED,
})


class NoteTag(str, Enum):
    """Reason a staff note attributes an event's performance to."""
    PRICE = 'pret'
    DAY_TIME = 'zi-ora'
    THEME = 'tema'
    COMMUNICATION = 'comunicare'
    WEATHER = 'vreme'
    COMPETITION = 'concurenta'
    SHORT_LEAD_TIME = 'lead-time mic'
    FORMAT = 'format'
    OTHER = 'altul'


class SyncMode(str, Enum):
    """Attendee sync strategy selected for one invocation."""
    FULL = 'full'
    DELTA = 'delta'
    NONE = 'none'


class PageShape(str, Enum):
    """Shape of a paginated list response."""
    ARRAY = 'array'
    ENVELOPE = 'envelope'


@dataclass
class Page:
    """One page of a list endpoint, resolved from either response shape."""
    shape: PageShape
    items: List[Dict[str, Any]]
    total: Optional[int] = None
    total_pages: Optional[int] = None


@dataclass
class RawEvent:
    """Event as returned by the ticketing API."""
    wp_event_id: int
    title: str
    description: str
    start_date: Optional[str]
    start_date_details: Optional[Dict[str, Any]]
    end_date: Optional[str]
    cost: Optional[str]
    cost_values: List[str]
    capacity: Optional[int]


@dataclass
class EventRecord:
    """Normalized event stored in the cache."""
    id: str
    wp_event_id: int
    title: str
    description: str
    start_datetime: datetime
    end_datetime: Optional[datetime]
    price: float
    capacity: Optional[int]
    event_type: EventType
    wine_focus: str
    extracted_wines: List[str]
    extracted_menu: List[str]
    last_synced_at: datetime


@dataclass
class AttendeeRecord:
    """Normalized ticket purchase belonging to one event."""
    attendee_id: str
    event_id: int
    ticket_id: Optional[str]
    order_id: Optional[str]
    full_name: str
    email: str
    created_utc: str
    modified_utc: str
    checked_in: bool
    provider: str
    is_purchaser: bool
    price: float
    raw_payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AttendeeFetchResult:
    """Attendees fetched for one event plus the remote total, if reported."""
    records: List[AttendeeRecord]
    observed_total: Optional[int] = None


@dataclass
class ManualAttendee:
    """Reservation entered by staff rather than sold online."""
    id: str
    wp_event_id: int
    name: str
    quantity: int
    source: ManualSource
    status: ManualStatus
    created_by_user_id: str
    created_at: str
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    ticket_price: Optional[float] = None


@dataclass
class PaymentRecord:
    """Paid amounts for one order, keyed by (order id, line item id)."""
    wp_event_id: int
    wp_order_id: str
    wp_order_item_id: str
    qty: int
    currency: str
    line_total_paid: float
    unit_price_paid: float
    line_subtotal: float
    discount_allocated: float
    coupon_codes: str
    order_total: float
    paid_at: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncState:
    """Per-event attendee sync bookkeeping."""
    last_full_sync_utc: Optional[datetime] = None
    last_delta_sync_utc: Optional[datetime] = None
    last_seen_total: Optional[int] = None


@dataclass
class GlobalSyncState:
    """Scheduler bookkeeping shared by all events."""
    last_full_sync_date: Optional[date] = None
    last_delta_sync_utc: Optional[datetime] = None


@dataclass
class AttendeeSnapshot:
    """Online attendee count captured at one point in time."""
    captured_utc: str
    total_online: int


@dataclass
class EventTotals:
    """Occupancy and revenue figures for one event."""
    online_count: int
    manual_count: int
    total: int
    capacity: int
    remaining: int
    occupancy_percent: int
    overbooked: bool
    online_revenue: float
    manual_revenue: float
    total_revenue: float
    revenue_source: str


@dataclass
class AppSettings:
    """Dashboard settings persisted alongside the cache."""
    site_url: str = ''
    sync_interval_minutes: int = 5
    capacity_override: bool = False
    default_capacity: int = 36


@dataclass
class EventLabels:
    """Drinks and theme classification for one event."""
    event_id: int
    drinks_label: str
    theme_label: str
    confidence: float
    reasoning: str
    source: str
    model: str
    updated_at: str


@dataclass
class PostEventReview:
    """Staff review written after an event took place."""
    event_id: int
    ratings: Dict[str, int]
    tags: List[str]
    recap: str
    created_at: str
    updated_at: str
    notes: Optional[str] = None


@dataclass
class EventNote:
    """Free-form staff note on an event, tagged with the reasons it concerns."""
    id: str
    wp_event_id: int
    tags: List[NoteTag]
    comment: str
    created_at: str
    added_by_user_id: Optional[str] = None


@dataclass
class EventSaveResult:
    """Result of persisting the refreshed event list."""
    added: int
    updated: int
    errors: list[str]


@dataclass
class ReconcileResult:
    """Counters from one payment reconciliation pass."""
    requested: int = 0
    already_synced: int = 0
    fetched: int = 0
    resolved: int = 0
    skipped: int = 0
    upserted: int = 0


@dataclass
class SyncOutcome:
    """Result of one orchestrator invocation."""
    success: bool
    message: str
    mode: Optional[SyncMode] = None
    statistics: Dict[str, Any] = field(default_factory=dict)
