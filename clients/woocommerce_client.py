"""Client for the WooCommerce orders and products REST endpoints."""
import logging
from typing import Any, Dict, Iterable, List

from clients.wordpress_client import WordPressClient

logger = logging.getLogger(__name__)


class WooCommerceClient:
    """Fetches orders and products by id."""

    ORDERS_PATH = 'wp-json/wc/v3/orders'
    PRODUCTS_PATH = 'wp-json/wc/v3/products'
    MAX_IDS_PER_REQUEST = 100  # WooCommerce per_page limit

    def __init__(self, client: WordPressClient):
        """
        Initialize the client.

        Args:
            client: WordPress client authenticated with the consumer key and secret
        """
        self.client = client

    def get_orders(self, order_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """
        Fetch order objects for the given ids.

        Raises:
            TransportError: If a request fails
        """
        return self._get_by_ids(self.ORDERS_PATH, order_ids, {'status': 'any'})

    def get_products(self, product_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """
        Fetch product objects (including meta_data) for the given ids.

        Raises:
            TransportError: If a request fails
        """
        return self._get_by_ids(self.PRODUCTS_PATH, product_ids, {})

    def _get_by_ids(self, path: str, ids: Iterable[str], extra: Dict[str, Any]) -> List[Dict[str, Any]]:
        unique_ids = list(dict.fromkeys(str(i) for i in ids))
        results: List[Dict[str, Any]] = []

        for i in range(0, len(unique_ids), self.MAX_IDS_PER_REQUEST):
            batch = unique_ids[i:i + self.MAX_IDS_PER_REQUEST]
            params = dict(extra)
            params.update({'include': ','.join(batch), 'per_page': len(batch)})
            page = self.client.get_page(path, params)
            results.extend(page.items)

        logger.debug(f"Fetched {len(results)} of {len(unique_ids)} requested objects from {path}")
        return results
