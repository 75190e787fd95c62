"""Shared fixtures for the sync tests."""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import boto3
import pytest
from moto import mock_aws

from processor.models import AttendeeRecord, EventRecord, EventType
from storage.cache_store import CacheStore

TABLE_NAME = 'test-event-dashboard-cache'
BUCHAREST = ZoneInfo('Europe/Bucharest')


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table():
    """Create a mock single-table cache keyed by pk/sk."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'pk', 'KeyType': 'HASH'},
                {'AttributeName': 'sk', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'pk', 'AttributeType': 'S'},
                {'AttributeName': 'sk', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def cache_store(dynamodb_table):
    """CacheStore bound to the mock table."""
    return CacheStore(TABLE_NAME, region_name='us-east-1')


def make_event(wp_event_id=101, start=None, price=100.0, capacity=36, **overrides):
    """Build an EventRecord with sensible defaults."""
    start = start or datetime(2030, 5, 10, 19, 0, tzinfo=BUCHAREST)
    fields = dict(
        id=f"evt-{wp_event_id}",
        wp_event_id=wp_event_id,
        title=f"Degustare {wp_event_id}",
        description='',
        start_datetime=start,
        end_datetime=None,
        price=price,
        capacity=capacity,
        event_type=EventType.DEGUSTARE,
        wine_focus='',
        extracted_wines=[],
        extracted_menu=[],
        last_synced_at=datetime(2030, 1, 1, tzinfo=timezone.utc)
    )
    fields.update(overrides)
    return EventRecord(**fields)


def make_attendee(attendee_id, event_id=101, order_id=None, name='Guest', created='2030-01-01T10:00:00', **overrides):
    """Build an AttendeeRecord with sensible defaults."""
    fields = dict(
        attendee_id=str(attendee_id),
        event_id=event_id,
        ticket_id='7',
        order_id=order_id,
        full_name=name,
        email='guest@example.com',
        created_utc=created,
        modified_utc=created,
        checked_in=False,
        provider='woo',
        is_purchaser=True,
        price=100.0,
        raw_payload={'id': attendee_id}
    )
    fields.update(overrides)
    return AttendeeRecord(**fields)
