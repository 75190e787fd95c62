"""DynamoDB-backed cache for events, attendees, sync state, payments and manual records."""
import json
import logging
import uuid
from dataclasses import asdict, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.errors import StorageError, ValidationError
from processor.models import (
    AppSettings,
    AttendeeRecord,
    AttendeeSnapshot,
    EventLabels,
    EventNote,
    EventRecord,
    EventSaveResult,
    EventType,
    GlobalSyncState,
    ManualAttendee,
    ManualSource,
    ManualStatus,
    NoteTag,
    PaymentRecord,
    PostEventReview,
    SyncState,
)

logger = logging.getLogger(__name__)

# Partition keys of the single-table layout
PK_EVENT = 'EVENT'
PK_SYNC_STATE = 'SYNC_STATE'
PK_SNAPSHOTS = 'SNAPSHOTS'
PK_MANUAL = 'MANUAL'
PK_PAYMENT = 'PAYMENT'
PK_SETTINGS = 'SETTINGS'
PK_LABELS = 'LABELS'
PK_REVIEW = 'REVIEW'
PK_NOTE = 'NOTE'
GLOBAL_SYNC_SK = 'GLOBAL'


def attendees_pk(event_id: int) -> str:
    return f"ATTENDEES#{event_id}"


def payment_sk(order_id: str, order_item_id: str) -> str:
    return f"{order_id}#{order_item_id}"


class CacheStore:
    """Durable key-value cache on a single DynamoDB table keyed by pk/sk."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    MAX_SNAPSHOTS = 400
    DEFAULT_CAPACITY = 36

    def __init__(self, table_name: str, region_name: Optional[str] = None,
                 default_capacity: int = DEFAULT_CAPACITY):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table (string keys pk, sk)
            region_name: Optional AWS region override
            default_capacity: Capacity reported by settings that were never saved
        """
        self.table_name = table_name
        self.default_capacity = default_capacity
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized CacheStore for table: {table_name}")

    # --- low level helpers ---

    def _query_partition(self, pk: str) -> List[Dict[str, Any]]:
        """Read every item of one partition, following pagination."""
        try:
            response = self.table.query(KeyConditionExpression=Key('pk').eq(pk))
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    KeyConditionExpression=Key('pk').eq(pk),
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            return items

        except ClientError as e:
            logger.error(f"Error querying partition {pk}: {e}")
            raise

    def _get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={'pk': pk, 'sk': sk})
        except ClientError as e:
            logger.error(f"Error reading item {pk}/{sk}: {e}")
            raise
        return response.get('Item')

    def _put_item(self, item: Dict[str, Any]) -> None:
        try:
            self.table.put_item(Item=_to_dynamo(item))
        except ClientError as e:
            logger.error(f"Error writing item {item.get('pk')}/{item.get('sk')}: {e}")
            raise

    def _batch_put(self, items: List[Dict[str, Any]]) -> int:
        """
        Write items in batches of 25.

        Returns:
            Count of successfully written items
        """
        success_count = 0

        for i in range(0, len(items), self.BATCH_SIZE):
            batch = items[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer(overwrite_by_pkeys=['pk', 'sk']) as writer:
                    for item in batch:
                        writer.put_item(Item=_to_dynamo(item))
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                # Continue processing remaining batches
                continue

        return success_count

    def _batch_delete(self, keys: List[Dict[str, str]]) -> int:
        success_count = 0

        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.delete_item(Key=key)
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        return success_count

    # --- events ---

    def get_all_events(self) -> Dict[str, EventRecord]:
        """
        Retrieve all cached events.

        Returns:
            Dictionary mapping internal id to EventRecord objects
        """
        events = {}
        for item in self._query_partition(PK_EVENT):
            event = self._item_to_event(item)
            if event:
                events[event.id] = event

        logger.info(f"Retrieved {len(events)} events from cache")
        return events

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        item = self._get_item(PK_EVENT, event_id)
        return self._item_to_event(item) if item else None

    def get_event_by_wp_id(self, wp_event_id: int) -> Optional[EventRecord]:
        for event in self.get_all_events().values():
            if event.wp_event_id == wp_event_id:
                return event
        return None

    def save_events(self, events: List[EventRecord]) -> EventSaveResult:
        """
        Write refreshed events, updating existing ones in place.

        Events missing from the refresh are kept so past events stay
        available for history and revenue views.

        Args:
            events: Events produced by the latest refresh

        Returns:
            EventSaveResult with counts of added and updated events
        """
        logger.info(f"Saving {len(events)} refreshed events")
        errors: List[str] = []

        existing_events = self.get_all_events()

        events_to_add = [e for e in events if e.id not in existing_events]
        events_to_update = [
            e for e in events
            if e.id in existing_events and self._events_differ(e, existing_events[e.id])
        ]

        to_write = events_to_add + events_to_update
        write_count = self._batch_put([self._event_to_item(e) for e in to_write])
        if write_count < len(to_write):
            errors.append(f"{len(to_write) - write_count} events could not be written")

        added_count = min(write_count, len(events_to_add))
        updated_count = write_count - added_count

        logger.info(f"Events saved: {added_count} added, {updated_count} updated")
        return EventSaveResult(added=added_count, updated=updated_count, errors=errors)

    def _event_to_item(self, event: EventRecord) -> Dict[str, Any]:
        return {
            'pk': PK_EVENT,
            'sk': event.id,
            'wp_event_id': event.wp_event_id,
            'title': event.title,
            'description': event.description,
            'start_datetime': event.start_datetime.isoformat(),
            'end_datetime': event.end_datetime.isoformat() if event.end_datetime else None,
            'price': event.price,
            'capacity': event.capacity,
            'event_type': event.event_type.value,
            'wine_focus': event.wine_focus,
            'extracted_wines': list(event.extracted_wines),
            'extracted_menu': list(event.extracted_menu),
            'last_synced_at': event.last_synced_at.isoformat(),
        }

    def _item_to_event(self, item: Dict[str, Any]) -> Optional[EventRecord]:
        try:
            return EventRecord(
                id=item['sk'],
                wp_event_id=int(item['wp_event_id']),
                title=item['title'],
                description=item.get('description') or '',
                start_datetime=datetime.fromisoformat(item['start_datetime']),
                end_datetime=_parse_dt(item.get('end_datetime')),
                price=float(item.get('price') or 0),
                capacity=int(item['capacity']) if item.get('capacity') is not None else None,
                event_type=EventType(item.get('event_type') or EventType.ALTUL.value),
                wine_focus=item.get('wine_focus') or '',
                extracted_wines=list(item.get('extracted_wines') or []),
                extracted_menu=list(item.get('extracted_menu') or []),
                last_synced_at=datetime.fromisoformat(item['last_synced_at'])
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to EventRecord: {e}")
            return None

    def _events_differ(self, event1: EventRecord, event2: EventRecord) -> bool:
        """Compare two events on every field except the sync timestamp."""
        return replace(event1, last_synced_at=event2.last_synced_at) != event2

    # --- attendees ---

    def get_attendees(self, event_id: int) -> List[AttendeeRecord]:
        """Cached attendees of one event, oldest purchase first."""
        records = [self._item_to_attendee(item) for item in self._query_partition(attendees_pk(event_id))]
        records.sort(key=lambda r: r.created_utc)
        return records

    def replace_attendees(self, event_id: int, records: List[AttendeeRecord]) -> int:
        """
        Overwrite the attendee cache of one event with a complete fetch.

        New records are written before stale ones are removed.

        Returns:
            Count of written records

        Raises:
            StorageError: If any record could not be written or removed
        """
        pk = attendees_pk(event_id)
        new_ids = {r.attendee_id for r in records}
        stale = [
            {'pk': pk, 'sk': item['sk']}
            for item in self._query_partition(pk)
            if item['sk'] not in new_ids
        ]

        written = self._write_attendees(event_id, records)

        if stale:
            removed = self._batch_delete(stale)
            if removed < len(stale):
                raise StorageError(
                    f"Removed only {removed} of {len(stale)} stale attendees for event {event_id}"
                )
            logger.info(f"Removed {removed} attendees no longer reported for event {event_id}")

        return written

    def merge_attendees(self, event_id: int, records: List[AttendeeRecord]) -> List[AttendeeRecord]:
        """
        Merge a delta batch into the attendee cache keyed by attendee id.

        Incoming records replace cached ones with the same id; all others are kept.

        Returns:
            The merged attendee list

        Raises:
            StorageError: If any incoming record could not be written
        """
        self._write_attendees(event_id, records)
        return self.get_attendees(event_id)

    def _write_attendees(self, event_id: int, records: List[AttendeeRecord]) -> int:
        written = self._batch_put([self._attendee_to_item(event_id, r) for r in records])
        if written < len(records):
            raise StorageError(
                f"Wrote only {written} of {len(records)} attendees for event {event_id}"
            )
        return written

    def find_event_ids_for_orders(self, order_ids: Iterable[str]) -> Dict[str, int]:
        """
        Map order ids to event ids using cached attendees.

        Returns:
            Dictionary of order id to event id for the orders found
        """
        wanted = {str(o) for o in order_ids}
        if not wanted:
            return {}

        mapping: Dict[str, int] = {}
        try:
            kwargs = {'FilterExpression': Attr('record_type').eq('attendee')}
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning cached attendees: {e}")
            raise

        for item in items:
            order_id = item.get('order_id')
            if order_id and order_id in wanted and order_id not in mapping:
                mapping[order_id] = int(item['event_id'])

        return mapping

    def _attendee_to_item(self, event_id: int, record: AttendeeRecord) -> Dict[str, Any]:
        item = asdict(record)
        item['raw_payload'] = json.dumps(record.raw_payload, default=str)
        item.update({'pk': attendees_pk(event_id), 'sk': record.attendee_id, 'record_type': 'attendee'})
        return item

    def _item_to_attendee(self, item: Dict[str, Any]) -> AttendeeRecord:
        raw = item.get('raw_payload')
        return AttendeeRecord(
            attendee_id=item['sk'],
            event_id=int(item['event_id']),
            ticket_id=item.get('ticket_id'),
            order_id=item.get('order_id'),
            full_name=item.get('full_name') or '',
            email=item.get('email') or '',
            created_utc=item.get('created_utc') or '',
            modified_utc=item.get('modified_utc') or '',
            checked_in=bool(item.get('checked_in')),
            provider=item.get('provider') or 'unknown',
            is_purchaser=bool(item.get('is_purchaser')),
            price=float(item.get('price') or 0),
            raw_payload=json.loads(raw) if raw else {}
        )

    # --- sync state ---

    def get_sync_state(self, event_id: int) -> SyncState:
        item = self._get_item(PK_SYNC_STATE, str(event_id))
        if not item:
            return SyncState()
        return SyncState(
            last_full_sync_utc=_parse_dt(item.get('last_full_sync_utc')),
            last_delta_sync_utc=_parse_dt(item.get('last_delta_sync_utc')),
            last_seen_total=int(item['last_seen_total']) if item.get('last_seen_total') is not None else None
        )

    def update_sync_state(self, event_id: int, **changes: Any) -> SyncState:
        """Apply field changes to the sync state of one event and persist it."""
        state = replace(self.get_sync_state(event_id), **changes)
        self._put_item({
            'pk': PK_SYNC_STATE,
            'sk': str(event_id),
            'last_full_sync_utc': _format_dt(state.last_full_sync_utc),
            'last_delta_sync_utc': _format_dt(state.last_delta_sync_utc),
            'last_seen_total': state.last_seen_total,
        })
        return state

    def get_global_sync_state(self) -> GlobalSyncState:
        item = self._get_item(PK_SYNC_STATE, GLOBAL_SYNC_SK)
        if not item:
            return GlobalSyncState()
        full_date = item.get('last_full_sync_date')
        return GlobalSyncState(
            last_full_sync_date=date.fromisoformat(full_date) if full_date else None,
            last_delta_sync_utc=_parse_dt(item.get('last_delta_sync_utc'))
        )

    def save_global_sync_state(self, state: GlobalSyncState) -> None:
        self._put_item({
            'pk': PK_SYNC_STATE,
            'sk': GLOBAL_SYNC_SK,
            'last_full_sync_date': state.last_full_sync_date.isoformat() if state.last_full_sync_date else None,
            'last_delta_sync_utc': _format_dt(state.last_delta_sync_utc),
        })

    # --- snapshots ---

    def get_snapshots(self, event_id: int) -> List[AttendeeSnapshot]:
        item = self._get_item(PK_SNAPSHOTS, str(event_id))
        if not item:
            return []
        return [
            AttendeeSnapshot(captured_utc=s['captured_utc'], total_online=int(s['total_online']))
            for s in item.get('snapshots', [])
        ]

    def add_snapshot(self, event_id: int, total_online: int, captured_at: Optional[datetime] = None) -> List[AttendeeSnapshot]:
        """
        Append an attendee count snapshot, dropping the oldest beyond 400.

        Returns:
            The stored snapshot list
        """
        captured_at = captured_at or datetime.now(timezone.utc)
        snapshots = self.get_snapshots(event_id)
        snapshots.append(AttendeeSnapshot(captured_utc=captured_at.isoformat(), total_online=total_online))
        snapshots = snapshots[-self.MAX_SNAPSHOTS:]

        self._put_item({
            'pk': PK_SNAPSHOTS,
            'sk': str(event_id),
            'snapshots': [asdict(s) for s in snapshots],
        })
        return snapshots

    # --- manual attendees ---

    def list_manual_attendees(self, event_id: Optional[int] = None) -> List[ManualAttendee]:
        attendees = [self._item_to_manual(item) for item in self._query_partition(PK_MANUAL)]
        if event_id is not None:
            attendees = [a for a in attendees if a.wp_event_id == event_id]
        attendees.sort(key=lambda a: a.created_at)
        return attendees

    def get_manual_attendee(self, attendee_id: str) -> Optional[ManualAttendee]:
        item = self._get_item(PK_MANUAL, str(attendee_id))
        return self._item_to_manual(item) if item else None

    def put_manual_attendee(self, attendee: ManualAttendee) -> ManualAttendee:
        """Insert or replace a manual attendee."""
        item = asdict(attendee)
        item.update({
            'pk': PK_MANUAL,
            'sk': attendee.id,
            'source': attendee.source.value,
            'status': attendee.status.value,
        })
        self._put_item(item)
        return attendee

    def delete_manual_attendee(self, attendee_id: str) -> bool:
        """
        Delete a manual attendee.

        Returns:
            True if a record was deleted, False if none existed
        """
        try:
            response = self.table.delete_item(
                Key={'pk': PK_MANUAL, 'sk': str(attendee_id)},
                ReturnValues='ALL_OLD'
            )
        except ClientError as e:
            logger.error(f"Error deleting manual attendee {attendee_id}: {e}")
            raise
        return 'Attributes' in response

    def _item_to_manual(self, item: Dict[str, Any]) -> ManualAttendee:
        price = item.get('ticket_price')
        return ManualAttendee(
            id=item['sk'],
            wp_event_id=int(item['wp_event_id']),
            name=item['name'],
            quantity=int(item['quantity']),
            source=ManualSource(item['source']),
            status=ManualStatus(item['status']),
            created_by_user_id=item.get('created_by_user_id') or '',
            created_at=item.get('created_at') or '',
            phone=item.get('phone'),
            email=item.get('email'),
            notes=item.get('notes'),
            ticket_price=float(price) if price is not None else None
        )

    # --- payments ---

    def get_existing_order_ids(self, order_ids: Iterable[str]) -> Set[str]:
        """Subset of the given order ids that already have a payment record."""
        wanted = {str(o) for o in order_ids}
        if not wanted:
            return set()
        stored = {item['wp_order_id'] for item in self._query_partition(PK_PAYMENT)}
        return wanted & stored

    def upsert_payments(self, payments: List[PaymentRecord]) -> int:
        """
        Upsert payment records keyed by (order id, order item id).

        Returns:
            Count of written records
        """
        if not payments:
            return 0

        items = []
        for payment in payments:
            item = asdict(payment)
            item['raw'] = json.dumps(payment.raw, default=str)
            item.update({'pk': PK_PAYMENT, 'sk': payment_sk(payment.wp_order_id, payment.wp_order_item_id)})
            items.append(item)

        count = self._batch_put(items)
        logger.info(f"Upserted {count} payment records")
        return count

    def get_payments(self, event_id: Optional[int] = None) -> List[PaymentRecord]:
        payments = [self._item_to_payment(item) for item in self._query_partition(PK_PAYMENT)]
        if event_id is not None:
            payments = [p for p in payments if p.wp_event_id == event_id]
        return payments

    def _item_to_payment(self, item: Dict[str, Any]) -> PaymentRecord:
        raw = item.get('raw')
        return PaymentRecord(
            wp_event_id=int(item['wp_event_id']),
            wp_order_id=item['wp_order_id'],
            wp_order_item_id=item['wp_order_item_id'],
            qty=int(item['qty']),
            currency=item.get('currency') or '',
            line_total_paid=float(item.get('line_total_paid') or 0),
            unit_price_paid=float(item.get('unit_price_paid') or 0),
            line_subtotal=float(item.get('line_subtotal') or 0),
            discount_allocated=float(item.get('discount_allocated') or 0),
            coupon_codes=item.get('coupon_codes') or '',
            order_total=float(item.get('order_total') or 0),
            paid_at=item.get('paid_at'),
            raw=json.loads(raw) if raw else {}
        )

    # --- settings, labels, reviews ---

    def get_settings(self) -> AppSettings:
        item = self._get_item(PK_SETTINGS, 'APP')
        if not item:
            return AppSettings(default_capacity=self.default_capacity)
        return AppSettings(
            site_url=item.get('site_url') or '',
            sync_interval_minutes=int(item.get('sync_interval_minutes') or 5),
            capacity_override=bool(item.get('capacity_override')),
            default_capacity=int(item['default_capacity']) if item.get('default_capacity') is not None else self.default_capacity
        )

    def save_settings(self, settings: AppSettings) -> None:
        item = asdict(settings)
        item.update({'pk': PK_SETTINGS, 'sk': 'APP'})
        self._put_item(item)

    def get_labels(self, event_id: int) -> Optional[EventLabels]:
        item = self._get_item(PK_LABELS, str(event_id))
        if not item:
            return None
        return EventLabels(
            event_id=int(item['event_id']),
            drinks_label=item['drinks_label'],
            theme_label=item['theme_label'],
            confidence=float(item.get('confidence') or 0),
            reasoning=item.get('reasoning') or '',
            source=item.get('source') or '',
            model=item.get('model') or '',
            updated_at=item.get('updated_at') or ''
        )

    def save_labels(self, labels: EventLabels) -> EventLabels:
        item = asdict(labels)
        item.update({'pk': PK_LABELS, 'sk': str(labels.event_id)})
        self._put_item(item)
        return labels

    def get_review(self, event_id: int) -> Optional[PostEventReview]:
        item = self._get_item(PK_REVIEW, str(event_id))
        if not item:
            return None
        return PostEventReview(
            event_id=int(item['event_id']),
            ratings={k: int(v) for k, v in (item.get('ratings') or {}).items()},
            tags=list(item.get('tags') or []),
            recap=item.get('recap') or '',
            created_at=item.get('created_at') or '',
            updated_at=item.get('updated_at') or '',
            notes=item.get('notes')
        )

    def save_review(self, review: PostEventReview) -> PostEventReview:
        """Store a review, keeping the original creation time of an existing one."""
        existing = self.get_review(review.event_id)
        if existing:
            review = replace(review, created_at=existing.created_at)
        item = asdict(review)
        item.update({'pk': PK_REVIEW, 'sk': str(review.event_id)})
        self._put_item(item)
        return review

    def add_event_note(
        self,
        wp_event_id: int,
        tags: Iterable[Any],
        comment: str,
        added_by_user_id: Optional[str] = None
    ) -> EventNote:
        """
        Store a new staff note on an event.

        Args:
            wp_event_id: Event the note is about
            tags: NoteTag members or their string values
            comment: Free-form text
            added_by_user_id: Author, if known

        Returns:
            The stored note with its generated id and creation time

        Raises:
            ValidationError: If a tag is not a known NoteTag
        """
        try:
            note_tags = [NoteTag(tag) for tag in tags]
        except ValueError as e:
            raise ValidationError(f"Unknown note tag: {e}") from e

        note = EventNote(
            id=uuid.uuid4().hex,
            wp_event_id=int(wp_event_id),
            tags=note_tags,
            comment=(comment or '').strip(),
            created_at=datetime.now(timezone.utc).isoformat(),
            added_by_user_id=added_by_user_id
        )
        item = asdict(note)
        item.update({'pk': PK_NOTE, 'sk': note.id, 'tags': [t.value for t in note_tags]})
        self._put_item(item)
        logger.info(f"Added note {note.id} to event {note.wp_event_id}")
        return note

    def get_event_notes(self, wp_event_id: int) -> List[EventNote]:
        """Notes of one event, oldest first."""
        notes = [
            EventNote(
                id=item['sk'],
                wp_event_id=int(item['wp_event_id']),
                tags=[NoteTag(t) for t in item.get('tags') or []],
                comment=item.get('comment') or '',
                created_at=item.get('created_at') or '',
                added_by_user_id=item.get('added_by_user_id')
            )
            for item in self._query_partition(PK_NOTE)
            if int(item['wp_event_id']) == wp_event_id
        ]
        return sorted(notes, key=lambda n: n.created_at)


def _to_dynamo(value: Any) -> Any:
    """Convert floats to Decimal recursively; DynamoDB rejects float values."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
