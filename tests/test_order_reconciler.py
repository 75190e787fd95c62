"""Unit tests for OrderReconciler."""
from unittest.mock import Mock

import pytest

from processor.errors import TransportError
from processor.order_reconciler import OrderReconciler, build_payment_record, event_id_from_product

from conftest import make_attendee


def order(order_id, product_id=77, total='150.00', subtotal='200.00', quantity=2, **extra):
    data = {
        'id': order_id,
        'status': 'completed',
        'currency': 'RON',
        'total': total,
        'date_paid': '2030-01-05T10:00:00',
        'line_items': [
            {'id': order_id * 10, 'product_id': product_id, 'quantity': quantity,
             'total': total, 'subtotal': subtotal, 'sku': 'TKT', 'name': 'Bilet'},
        ],
        'coupon_lines': [{'code': 'SPRING25'}],
    }
    data.update(extra)
    return data


@pytest.fixture
def orders_client():
    client = Mock()
    client.get_orders.side_effect = lambda ids: [order(int(i)) for i in ids]
    client.get_products.return_value = []
    return client


class TestBuildPaymentRecord:
    """Test cases for aggregating an order into a payment record."""

    def test_aggregates_line_items(self):
        """Test quantities and amounts are summed over all line items."""
        data = order(900)
        data['line_items'].append({'id': 9001, 'product_id': 78, 'quantity': 1, 'total': '50', 'subtotal': '50'})

        payment = build_payment_record(data, 101, 'attendees')

        assert payment.wp_order_id == '900'
        assert payment.wp_order_item_id == '9000'
        assert payment.qty == 3
        assert payment.line_total_paid == 200.0
        assert payment.line_subtotal == 250.0
        assert payment.discount_allocated == 50.0
        assert payment.unit_price_paid == 66.67
        assert payment.coupon_codes == 'SPRING25'
        assert payment.raw['resolved_by'] == 'attendees'

    def test_zero_quantity_counts_as_one(self):
        """Test a line item without quantity counts as a single ticket."""
        payment = build_payment_record(order(900, quantity=0), 101, 'attendees')

        assert payment.qty == 1
        assert payment.unit_price_paid == 150.0

    def test_order_without_line_items(self):
        """Test orders with no line items produce no record."""
        assert build_payment_record({'id': 1, 'line_items': []}, 101, 'attendees') is None

    def test_currency_defaults_to_ron(self):
        """Test a missing currency falls back to RON."""
        payment = build_payment_record(order(900, currency=None), 101, 'attendees')

        assert payment.currency == 'RON'


def test_event_id_from_product_meta():
    """Test the event id is read from known product meta keys in order."""
    product = {'id': 77, 'meta_data': [
        {'key': '_unrelated', 'value': 'x'},
        {'key': '_tribe_tickets_event_id', 'value': '202'},
        {'key': 'event_id', 'value': '303'},
    ]}

    assert event_id_from_product(product) == 202
    assert event_id_from_product({'id': 78, 'meta_data': [{'key': '_event_id', 'value': '0'}]}) is None


class TestOrderReconciler:
    """Test cases for payment reconciliation."""

    def test_resolves_through_cached_attendees(self, cache_store, orders_client):
        """Test orders referenced by cached attendees are mapped to their event."""
        cache_store.replace_attendees(101, [make_attendee(1, order_id='900')])

        result = OrderReconciler(cache_store, orders_client).sync_payments_for_orders(['900'])

        assert result.requested == 1
        assert result.fetched == 1
        assert result.upserted == 1
        payments = cache_store.get_payments(101)
        assert payments[0].line_total_paid == 150.0
        assert payments[0].raw['resolved_by'] == 'attendees'
        orders_client.get_products.assert_not_called()

    def test_second_run_fetches_nothing(self, cache_store, orders_client):
        """Test reconciliation is idempotent once payments exist."""
        cache_store.replace_attendees(101, [make_attendee(1, order_id='900')])
        reconciler = OrderReconciler(cache_store, orders_client)

        reconciler.sync_payments_for_orders(['900', '900'])
        orders_client.get_orders.reset_mock()
        result = reconciler.sync_payments_for_orders(['900'])

        orders_client.get_orders.assert_not_called()
        assert result.already_synced == 1
        assert result.upserted == 0
        assert len(cache_store.get_payments()) == 1

    def test_falls_back_to_product_meta(self, cache_store, orders_client):
        """Test orders without cached attendees are mapped through product metadata."""
        orders_client.get_products.return_value = [
            {'id': 77, 'meta_data': [{'key': '_tribe_wooticket_for_event', 'value': '505'}]}
        ]

        result = OrderReconciler(cache_store, orders_client).sync_payments_for_orders(['901'])

        assert result.upserted == 1
        payments = cache_store.get_payments(505)
        assert payments[0].raw['resolved_by'] == 'product_meta'
        orders_client.get_products.assert_called_once_with(['77'])

    def test_unresolved_orders_are_skipped(self, cache_store, orders_client):
        """Test orders mapped to no event are counted as skipped."""
        result = OrderReconciler(cache_store, orders_client).sync_payments_for_orders(['902'])

        assert result.skipped == 1
        assert result.upserted == 0
        assert cache_store.get_payments() == []

    def test_failed_chunk_does_not_block_others(self, cache_store):
        """Test one failing order chunk is logged while other chunks are ingested."""
        client = Mock()

        def get_orders(ids):
            if '901' in ids:
                raise TransportError('timeout')
            return [order(int(i)) for i in ids]

        client.get_orders.side_effect = get_orders
        cache_store.replace_attendees(101, [
            make_attendee(1, order_id='900'),
            make_attendee(2, order_id='901'),
        ])

        result = OrderReconciler(cache_store, client, chunk_size=1).sync_payments_for_orders(['900', '901'])

        assert result.fetched == 1
        assert result.upserted == 1
        assert [p.wp_order_id for p in cache_store.get_payments()] == ['900']

    def test_empty_ids(self, cache_store, orders_client):
        """Test empty and missing ids are ignored."""
        result = OrderReconciler(cache_store, orders_client).sync_payments_for_orders([None, '', 0])

        assert result.requested == 0
        orders_client.get_orders.assert_not_called()

    def test_orders_are_chunked(self, cache_store, orders_client):
        """Test missing orders are requested in chunks."""
        ids = [str(i) for i in range(1, 46)]

        OrderReconciler(cache_store, orders_client, chunk_size=20).sync_payments_for_orders(ids)

        chunk_sizes = sorted(len(call[0][0]) for call in orders_client.get_orders.call_args_list)
        assert chunk_sizes == [5, 20, 20]
