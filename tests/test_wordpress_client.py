"""Unit tests for WordPressClient."""
import threading

import pytest
import requests
import responses
from responses import matchers

from clients.wordpress_client import WordPressClient
from processor.errors import ConfigurationError, TransportError
from processor.models import PageShape

BASE_URL = 'https://shop.example.com'
PATH = 'wp-json/tribe/tickets/v1/attendees'


@pytest.fixture
def client():
    return WordPressClient(BASE_URL, 'admin', 's3cret-app-pass', timeout=5)


class TestWordPressClient:
    """Test cases for WordPressClient class."""

    def test_missing_credentials_raise_configuration_error(self):
        """Test construction fails fast without URL or credentials."""
        with pytest.raises(ConfigurationError):
            WordPressClient('', 'admin', 'pass')
        with pytest.raises(ConfigurationError):
            WordPressClient(BASE_URL, 'admin', '')

    @responses.activate
    def test_get_page_array_shape_reads_headers(self, client):
        """Test a bare array page takes its totals from X-WP-Total headers."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json=[{'id': 1}, {'id': 2}],
            headers={'X-WP-Total': '2', 'X-WP-TotalPages': '1'},
            status=200
        )

        page = client.get_page(PATH, {'page': 1})

        assert page.shape == PageShape.ARRAY
        assert [item['id'] for item in page.items] == [1, 2]
        assert page.total == 2
        assert page.total_pages == 1

    @responses.activate
    def test_get_page_envelope_shape_reads_body(self, client):
        """Test an object page takes its list field and body totals."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json={'attendees': [{'id': 9}], 'total': 41, 'total_pages': 3},
            status=200
        )

        page = client.get_page(PATH)

        assert page.shape == PageShape.ENVELOPE
        assert page.items == [{'id': 9}]
        assert page.total == 41
        assert page.total_pages == 3

    @responses.activate
    def test_envelope_prefers_payload_key_over_earlier_lists(self, client):
        """Test a metadata list placed before the payload field is not taken as the page items."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json={
                'links': ['https://shop.example.com/next'],
                'rest_url': 'https://shop.example.com/wp-json',
                'attendees': [{'id': 9}, {'id': 10}],
                'total': 2,
            },
            status=200
        )

        page = client.get_page(PATH)

        assert page.items == [{'id': 9}, {'id': 10}]
        assert page.total == 2

    @responses.activate
    def test_envelope_with_unknown_key_uses_list_of_objects(self, client):
        """Test an unfamiliar payload key is found by skipping lists of plain values."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json={'warnings': ['deprecated'], 'tickets': [{'id': 3}]},
            status=200
        )

        assert client.get_page(PATH).items == [{'id': 3}]

    @responses.activate
    def test_get_all_pages_follows_total_pages(self, client):
        """Test pagination continues until the reported page count is reached."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json={'attendees': [{'id': 1}, {'id': 2}], 'total': 3, 'total_pages': 2},
            match=[matchers.query_param_matcher({'page': '1', 'per_page': '2'})]
        )
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json={'attendees': [{'id': 3}], 'total': 3, 'total_pages': 2},
            match=[matchers.query_param_matcher({'page': '2', 'per_page': '2'})]
        )

        items, total = client.get_all_pages(PATH, per_page=2)

        assert [item['id'] for item in items] == [1, 2, 3]
        assert total == 3
        assert len(responses.calls) == 2

    @responses.activate
    def test_get_all_pages_stops_on_short_page(self, client):
        """Test a page shorter than per_page ends pagination without totals."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            json=[{'id': 1}],
            status=200
        )

        items, total = client.get_all_pages(PATH, per_page=100)

        assert items == [{'id': 1}]
        assert total is None
        assert len(responses.calls) == 1

    @responses.activate
    def test_get_all_pages_stops_on_empty_page(self, client):
        """Test an empty first page yields no items."""
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", json=[], status=200)

        items, total = client.get_all_pages(PATH)

        assert items == []
        assert len(responses.calls) == 1

    @responses.activate
    def test_http_error_raises_transport_error_without_secret(self, client):
        """Test a non-2xx status becomes a TransportError with credentials redacted."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            body='forbidden for s3cret-app-pass',
            status=403
        )

        with pytest.raises(TransportError) as exc_info:
            client.get(PATH)

        assert exc_info.value.status_code == 403
        assert '403' in str(exc_info.value)
        assert 's3cret-app-pass' not in str(exc_info.value)
        assert '[REDACTED]' in str(exc_info.value)

    @responses.activate
    def test_connection_error_raises_transport_error(self, client):
        """Test network failures are wrapped in TransportError."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/{PATH}",
            body=requests.exceptions.ConnectionError('connection refused')
        )

        with pytest.raises(TransportError) as exc_info:
            client.get(PATH)

        assert exc_info.value.status_code is None

    @responses.activate
    def test_invalid_json_raises_transport_error(self, client):
        """Test an unparseable body is reported as a transport failure."""
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", body='<html>oops</html>', status=200)

        with pytest.raises(TransportError):
            client.get(PATH)

    @responses.activate
    def test_no_retry_by_default(self, client):
        """Test a failed request is attempted only once."""
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", status=500)

        with pytest.raises(TransportError):
            client.get(PATH)

        assert len(responses.calls) == 1

    @responses.activate
    def test_retry_when_enabled(self, monkeypatch):
        """Test the backoff loop retries and then succeeds."""
        monkeypatch.setattr('clients.wordpress_client.time.sleep', lambda _: None)
        client = WordPressClient(BASE_URL, 'admin', 'pass', max_retries=3)
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", status=502)
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", json=[{'id': 1}], status=200)

        data, _ = client.get(PATH)

        assert data == [{'id': 1}]
        assert len(responses.calls) == 2

    @responses.activate
    def test_none_params_are_dropped(self, client):
        """Test query parameters set to None are not sent."""
        responses.add(responses.GET, f"{BASE_URL}/{PATH}", json=[], status=200)

        client.get(PATH, {'post_id': 5, 'after': None})

        assert 'after' not in responses.calls[0].request.url
        assert 'post_id=5' in responses.calls[0].request.url


def test_each_thread_gets_its_own_session():
    """Test worker threads do not share a requests session unless one is injected."""
    client = WordPressClient(BASE_URL, 'admin', 'pass')
    sessions = []
    worker = threading.Thread(target=lambda: sessions.append(client._session))
    worker.start()
    worker.join(5)

    assert client._session is client._session
    assert sessions[0] is not client._session

    shared = requests.Session()
    injected = WordPressClient(BASE_URL, 'admin', 'pass', session=shared)
    worker = threading.Thread(target=lambda: sessions.append(injected._session))
    worker.start()
    worker.join(5)

    assert sessions[1] is shared
    assert injected._session is shared
