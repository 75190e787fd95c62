"""Unit tests for ManualAttendeeService."""
import pytest

from processor.errors import ValidationError
from processor.manual_attendees import ManualAttendeeService
from processor.models import ManualSource, ManualStatus


@pytest.fixture
def service(cache_store):
    return ManualAttendeeService(cache_store)


class TestAdd:
    """Test cases for adding reservations."""

    def test_add_applies_defaults(self, service, cache_store):
        """Test quantity, source and status defaults."""
        attendee = service.add({'wp_event_id': '101', 'name': '  Ana Pop '}, created_by_user_id='staff-1')

        assert attendee.wp_event_id == 101
        assert attendee.name == 'Ana Pop'
        assert attendee.quantity == 1
        assert attendee.source == ManualSource.PHONE
        assert attendee.status == ManualStatus.RESERVED
        assert attendee.created_by_user_id == 'staff-1'
        assert cache_store.get_manual_attendee(attendee.id) == attendee

    def test_add_with_all_fields(self, service):
        """Test every editable field is accepted."""
        attendee = service.add({
            'wp_event_id': 101,
            'name': 'Ion',
            'quantity': 4,
            'source': 'influencer',
            'status': 'confirmed',
            'phone': '0722000000',
            'email': 'ion@example.com',
            'notes': 'Window table',
            'ticket_price': '80',
        })

        assert attendee.quantity == 4
        assert attendee.source == ManualSource.INFLUENCER
        assert attendee.ticket_price == 80.0
        assert attendee.notes == 'Window table'

    @pytest.mark.parametrize('data', [
        {'name': 'No event'},
        {'wp_event_id': 101},
        {'wp_event_id': 101, 'name': '   '},
        {'wp_event_id': 'abc', 'name': 'Bad event'},
        {'wp_event_id': 101, 'name': 'Zero', 'quantity': 0},
        {'wp_event_id': 101, 'name': 'Float', 'quantity': 1.5},
        {'wp_event_id': 101, 'name': 'Source', 'source': 'carrier pigeon'},
        {'wp_event_id': 101, 'name': 'Status', 'status': 'maybe'},
        {'wp_event_id': 101, 'name': 'Price', 'ticket_price': -5},
    ])
    def test_add_rejects_invalid_input(self, service, data):
        """Test malformed reservations raise ValidationError."""
        with pytest.raises(ValidationError):
            service.add(data)


class TestUpdateRemove:
    """Test cases for editing and deleting reservations."""

    def test_update_changes_fields(self, service, cache_store):
        """Test an update is validated and persisted."""
        attendee = service.add({'wp_event_id': 101, 'name': 'Ana'})

        updated = service.update(attendee.id, {'status': 'arrived', 'quantity': 3, 'id': 'ignored'})

        assert updated.id == attendee.id
        assert updated.status == ManualStatus.ARRIVED
        assert cache_store.get_manual_attendee(attendee.id).quantity == 3

    def test_update_unknown_raises(self, service):
        """Test updating a missing reservation fails."""
        with pytest.raises(ValidationError):
            service.update('missing', {'quantity': 2})

    def test_remove(self, service):
        """Test a reservation can be removed once."""
        attendee = service.add({'wp_event_id': 101, 'name': 'Ana'})

        service.remove(attendee.id)

        assert service.list_by_event(101) == []
        with pytest.raises(ValidationError):
            service.remove(attendee.id)


def test_sum_quantity_by_event(service):
    """Test only qualifying reservations of the event are counted."""
    service.add({'wp_event_id': 101, 'name': 'A', 'quantity': 2})
    service.add({'wp_event_id': 101, 'name': 'B', 'quantity': 3, 'status': 'cancelled'})
    service.add({'wp_event_id': 101, 'name': 'C', 'quantity': 1, 'status': 'arrived'})
    service.add({'wp_event_id': 202, 'name': 'D', 'quantity': 5})

    assert service.sum_quantity_by_event(101) == 3
    assert service.sum_quantity_by_event(202) == 5
    assert len(service.list_all()) == 4
