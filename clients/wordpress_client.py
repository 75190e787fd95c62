"""HTTP client for the WordPress REST API (Tribe Events, Tribe Tickets, WooCommerce)."""
import logging
import re
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.auth import HTTPBasicAuth

from processor.errors import ConfigurationError, TransportError
from processor.models import Page, PageShape

logger = logging.getLogger(__name__)


class WordPressClient:
    """Authenticated GET client with pagination over both WordPress list shapes."""

    DEFAULT_PAGE_SIZE = 100
    MAX_ERROR_BODY = 200
    ENVELOPE_KEYS = ('events', 'attendees', 'orders', 'products', 'items', 'data')

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: int = 30,
        max_retries: int = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Site root, e.g. https://example.com
            username: Basic auth user (application password user or consumer key)
            password: Basic auth secret (application password or consumer secret)
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request; 1 disables retrying
            session: Optional requests session shared by every calling thread;
                without one each thread gets its own session

        Raises:
            ConfigurationError: If the base URL or credentials are missing
        """
        if not base_url:
            raise ConfigurationError("WordPress base URL is not configured")
        if not username or not password:
            raise ConfigurationError("WordPress credentials are not configured")

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._secrets = [password]
        self._auth = HTTPBasicAuth(username, password)
        self._shared_session = session
        self._local = threading.local()

    @property
    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _redact(self, text: str) -> str:
        """Remove credentials from text destined for logs or exceptions."""
        for secret in self._secrets:
            if secret:
                text = text.replace(secret, '[REDACTED]')
        return re.sub(r'Basic\s+[A-Za-z0-9+/=]+', '[Auth Header]', text)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Tuple[Any, Dict[str, str]]:
        """
        Perform one GET request.

        Args:
            path: API path relative to the site root
            params: Query parameters; None values are dropped

        Returns:
            Tuple of (decoded JSON body, lower-cased response headers)

        Raises:
            TransportError: On connection failure, non-2xx status or invalid JSON
        """
        url = self._build_url(path)
        query = {k: v for k, v in (params or {}).items() if v is not None}
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                return self._request(url, query)
            except TransportError as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    raise

    def _request(self, url: str, query: Dict[str, Any]) -> Tuple[Any, Dict[str, str]]:
        try:
            response = self._session.get(
                url,
                params=query,
                auth=self._auth,
                headers={'Accept': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(self._redact(f"Request to {url} failed: {e}"), url=url) from e

        if not response.ok:
            body = response.text[:self.MAX_ERROR_BODY]
            raise TransportError(
                self._redact(
                    f"WP API Error: {response.status_code} {response.reason} "
                    f"for {url}. Details: {body}"
                ),
                status_code=response.status_code,
                url=url
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON returned by {url}: {e}",
                status_code=response.status_code,
                url=url
            ) from e

        headers = {k.lower(): v for k, v in response.headers.items()}
        return data, headers

    def get_page(self, path: str, params: Optional[Dict[str, Any]] = None) -> Page:
        """
        Fetch one page of a list endpoint and resolve its shape.

        Args:
            path: API path relative to the site root
            params: Query parameters including page and per_page

        Returns:
            Page with items and whatever totals the response reported
        """
        data, headers = self.get(path, params)
        return self._parse_page(data, headers)

    def _parse_page(self, data: Any, headers: Dict[str, str]) -> Page:
        """
        Resolve a list response into a Page.

        Bare arrays carry their totals in X-WP-Total / X-WP-TotalPages headers;
        objects carry a list field plus total / total_pages body fields.
        """
        if isinstance(data, list):
            return Page(
                shape=PageShape.ARRAY,
                items=data,
                total=_to_int(headers.get('x-wp-total')),
                total_pages=_to_int(headers.get('x-wp-totalpages'))
            )

        if isinstance(data, dict):
            return Page(
                shape=PageShape.ENVELOPE,
                items=self._envelope_items(data),
                total=_to_int(data.get('total', headers.get('x-wp-total'))),
                total_pages=_to_int(data.get('total_pages', headers.get('x-wp-totalpages')))
            )

        logger.warning(f"Unrecognized list response of type {type(data).__name__}")
        return Page(shape=PageShape.ENVELOPE, items=[])

    def _envelope_items(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Pick the payload list out of an object response.

        Known payload keys win; otherwise the first list of objects is used.
        """
        for key in self.ENVELOPE_KEYS:
            if isinstance(data.get(key), list):
                return data[key]

        lists = [value for value in data.values() if isinstance(value, list)]
        for value in lists:
            if value and all(isinstance(item, dict) for item in value):
                return value
        return lists[0] if lists else []

    def get_all_pages(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        per_page: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Fetch every page of a list endpoint.

        Stops on an empty page, a page shorter than per_page, or once the
        reported page count is reached.

        Returns:
            Tuple of (all items, total reported by the last page or None)
        """
        items: List[Dict[str, Any]] = []
        total: Optional[int] = None
        page_number = 1

        while True:
            query = dict(params or {})
            query.update({'page': page_number, 'per_page': per_page})
            page = self.get_page(path, query)

            if page.total is not None:
                total = page.total
            items.extend(page.items)

            if len(page.items) < per_page:
                break
            if page.total_pages is not None and page_number >= page.total_pages:
                break
            page_number += 1

        logger.debug(f"Fetched {len(items)} items from {path} over {page_number} page(s)")
        return items, total


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
