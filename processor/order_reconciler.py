"""Maps WooCommerce orders to events and ingests their payment lines."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional

from processor.models import PaymentRecord, ReconcileResult

logger = logging.getLogger(__name__)

# Product meta keys known to carry the event a ticket product belongs to
EVENT_META_KEYS = (
    '_tribe_wooticket_for_event',
    '_tribe_tickets_event_id',
    '_event_id',
    'event_id',
)

DEFAULT_CURRENCY = 'RON'


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_event_id(value: Any) -> Optional[int]:
    try:
        event_id = int(value)
    except (TypeError, ValueError):
        return None
    return event_id if event_id > 0 else None


def event_id_from_product(product: Dict[str, Any]) -> Optional[int]:
    """Read an event id from a product's meta_data, trying known keys in order."""
    meta = {m.get('key'): m.get('value') for m in product.get('meta_data') or [] if isinstance(m, dict)}
    for key in EVENT_META_KEYS:
        event_id = _to_event_id(meta.get(key))
        if event_id:
            return event_id
    return None


def build_payment_record(order: Dict[str, Any], event_id: int, resolved_by: str) -> Optional[PaymentRecord]:
    """
    Aggregate all line items of an order into one payment record.

    Returns:
        PaymentRecord keyed by the order's first line item, or None if the
        order has no line items
    """
    line_items = [item for item in order.get('line_items') or [] if isinstance(item, dict)]
    if not line_items:
        return None

    qty = 0
    line_total = 0.0
    line_subtotal = 0.0
    for item in line_items:
        try:
            qty += int(item.get('quantity')) or 1
        except (TypeError, ValueError):
            qty += 1
        line_total += _to_float(item.get('total'))
        line_subtotal += _to_float(item.get('subtotal'))

    coupon_codes = ','.join(
        c.get('code', '') for c in order.get('coupon_lines') or [] if isinstance(c, dict)
    )

    return PaymentRecord(
        wp_event_id=event_id,
        wp_order_id=str(order['id']),
        wp_order_item_id=str(line_items[0].get('id')),
        qty=qty,
        currency=order.get('currency') or DEFAULT_CURRENCY,
        line_total_paid=round(line_total, 2),
        unit_price_paid=round(line_total / qty, 2) if qty > 0 else 0.0,
        line_subtotal=round(line_subtotal, 2),
        discount_allocated=round(line_subtotal - line_total, 2),
        coupon_codes=coupon_codes,
        order_total=_to_float(order.get('total')),
        paid_at=order.get('date_paid') or order.get('date_paid_gmt') or order.get('date_created'),
        raw={
            'items': [{'sku': i.get('sku'), 'name': i.get('name')} for i in line_items],
            'status': order.get('status'),
            'resolved_by': resolved_by,
        }
    )


class OrderReconciler:
    """Resolves the event of each order and persists its payment record."""

    CHUNK_SIZE = 20
    MAX_WORKERS = 3

    def __init__(self, store, orders_client, chunk_size: int = CHUNK_SIZE, max_workers: int = MAX_WORKERS):
        """
        Initialize the reconciler.

        Args:
            store: CacheStore holding attendees and payments
            orders_client: WooCommerceClient used for orders and products
            chunk_size: Orders fetched per request
            max_workers: Order chunks fetched concurrently
        """
        self.store = store
        self.orders_client = orders_client
        self.chunk_size = chunk_size
        self.max_workers = max_workers

    def sync_payments_for_orders(self, order_ids: Iterable[Any]) -> ReconcileResult:
        """
        Fetch and persist payment records for orders not synced yet.

        Orders whose event cannot be resolved are logged and skipped.

        Args:
            order_ids: Candidate order ids; duplicates and empty ids are ignored

        Returns:
            ReconcileResult counters
        """
        unique_ids = list(dict.fromkeys(str(o) for o in order_ids if o not in (None, '', 0)))
        result = ReconcileResult(requested=len(unique_ids))
        if not unique_ids:
            return result

        existing = self.store.get_existing_order_ids(unique_ids)
        missing = [order_id for order_id in unique_ids if order_id not in existing]
        result.already_synced = len(existing)

        if not missing:
            logger.info(f"All {len(unique_ids)} orders already have payments, nothing to sync")
            return result

        logger.info(f"Syncing payments for {len(missing)} of {len(unique_ids)} orders")

        orders = self._fetch_orders(missing)
        result.fetched = len(orders)
        if not orders:
            return result

        event_ids = self._resolve_event_ids(orders)

        payments: List[PaymentRecord] = []
        for order in orders:
            order_id = str(order['id'])
            resolution = event_ids.get(order_id)
            if resolution is None:
                logger.warning(f"Could not map order {order_id} to an event, skipping")
                result.skipped += 1
                continue

            event_id, resolved_by = resolution
            payment = build_payment_record(order, event_id, resolved_by)
            if payment is None:
                logger.warning(f"Order {order_id} has no line items, skipping")
                result.skipped += 1
                continue
            payments.append(payment)

        result.resolved = len(payments)
        result.upserted = self.store.upsert_payments(payments)

        logger.info(
            f"Payment sync complete: {result.upserted} upserted, {result.skipped} skipped"
        )
        return result

    def _fetch_orders(self, order_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch orders chunk by chunk; a failed chunk is logged and skipped."""
        chunks = [
            order_ids[i:i + self.chunk_size]
            for i in range(0, len(order_ids), self.chunk_size)
        ]

        orders: List[Dict[str, Any]] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self.orders_client.get_orders, chunk): chunk for chunk in chunks}
            for future in as_completed(futures):
                chunk = futures[future]
                try:
                    orders.extend(o for o in future.result() if isinstance(o, dict) and o.get('id') is not None)
                except Exception as e:
                    logger.error(
                        f"Failed to fetch order chunk {chunk[0]}..{chunk[-1]}: {e}",
                        extra={'error_type': type(e).__name__}
                    )

        # Keep request order so results do not depend on completion order
        position = {order_id: i for i, order_id in enumerate(order_ids)}
        orders.sort(key=lambda o: position.get(str(o['id']), len(position)))
        return orders

    def _resolve_event_ids(self, orders: List[Dict[str, Any]]) -> Dict[str, tuple]:
        """
        Resolve each order's event: cached attendees first, product metadata second.

        Returns:
            Dictionary of order id to (event id, strategy name)
        """
        order_ids = [str(o['id']) for o in orders]
        resolved: Dict[str, tuple] = {
            order_id: (event_id, 'attendees')
            for order_id, event_id in self.store.find_event_ids_for_orders(order_ids).items()
        }

        unresolved = [o for o in orders if str(o['id']) not in resolved]
        if not unresolved:
            return resolved

        product_ids = list(dict.fromkeys(
            str(item['product_id'])
            for order in unresolved
            for item in order.get('line_items') or []
            if isinstance(item, dict) and item.get('product_id')
        ))
        if not product_ids:
            return resolved

        try:
            products = self.orders_client.get_products(product_ids)
        except Exception as e:
            logger.error(
                f"Failed to fetch {len(product_ids)} products for order mapping: {e}",
                extra={'error_type': type(e).__name__}
            )
            return resolved

        product_events = {}
        for product in products:
            event_id = event_id_from_product(product)
            if event_id:
                product_events[str(product.get('id'))] = event_id

        for order in unresolved:
            for item in order.get('line_items') or []:
                event_id = product_events.get(str(item.get('product_id')))
                if event_id:
                    resolved[str(order['id'])] = (event_id, 'product_meta')
                    break

        return resolved
