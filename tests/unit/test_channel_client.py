"""
Unit tests for the sales channel client.

HTTP is mocked at the requests.Session level; sleeps are patched out.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch
import pytest
import requests

from config import settings
from models.order import ChannelHint
from integrations.channel_client import ChannelClient, ORDERS_ENDPOINT, parse_posting
from exceptions import ChannelError


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = payload if payload is not None else {}
    return response


def postings_payload(postings, has_next=False):
    return {"result": {"postings": postings, "has_next": has_next}}


def raw_posting(number="P-1", **overrides):
    posting = {
        "posting_number": number,
        "order_number": f"ORD-{number}",
        "status": "awaiting_packaging",
        "in_process_at": "2025-01-10T08:00:00Z",
        "products": [{"offer_id": "SKU-A", "quantity": 2, "price": "150.00"}],
    }
    posting.update(overrides)
    return posting


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return ChannelClient(
        base_url="https://channel.test",
        client_id="client-1234",
        api_key="key-5678",
        session=session,
    )


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("integrations.channel_client.time.sleep") as mock_sleep:
        yield mock_sleep


# ===================
# PARSING
# ===================

class TestParsePosting:
    """Tests for parse_posting."""

    def test_basic_fields(self):
        order = parse_posting(raw_posting())

        assert order.external_id == "P-1"
        assert order.order_number == "ORD-P-1"
        assert order.channel_hint == ChannelHint.SELLER_FULFILLED
        assert order.order_date.year == 2025
        assert order.lines[0].sku == "SKU-A"
        assert order.lines[0].unit_price == Decimal("150.00")
        assert order.total_amount == Decimal("300.00")

    def test_price_from_total(self):
        order = parse_posting(raw_posting(products=[
            {"offer_id": "SKU-A", "quantity": 4, "total_price": "100"}
        ]))

        assert order.lines[0].unit_price == Decimal("25")

    def test_fbo_is_channel_fulfilled(self):
        order = parse_posting(raw_posting(delivery_schema="fbo"))

        assert order.channel_hint == ChannelHint.CHANNEL_FULFILLED

    def test_zero_quantity_items_dropped(self):
        order = parse_posting(raw_posting(products=[
            {"offer_id": "SKU-A", "quantity": 0, "price": "1"},
            {"offer_id": "SKU-B", "quantity": 1, "price": "1"},
        ]))

        assert [line.sku for line in order.lines] == ["SKU-B"]


# ===================
# REQUESTS
# ===================

class TestFetchOrdersPage:
    """Tests for fetch_orders_page and retry behaviour."""

    def test_posts_to_orders_endpoint(self, client, session):
        session.post.return_value = make_response(200, postings_payload([raw_posting()], has_next=True))

        page = client.fetch_orders_page(offset=200)

        assert len(page.orders) == 1
        assert page.has_next is True
        args, kwargs = session.post.call_args
        assert args[0] == f"https://channel.test{ORDERS_ENDPOINT}"
        assert kwargs["json"]["offset"] == 200
        assert kwargs["headers"]["Client-Id"] == "client-1234"
        assert kwargs["headers"]["Api-Key"] == "key-5678"

    def test_retries_server_errors(self, client, session, no_sleep):
        session.post.side_effect = [
            make_response(503),
            make_response(502),
            make_response(200, postings_payload([])),
        ]

        page = client.fetch_orders_page()

        assert page.orders == []
        assert session.post.call_count == 3
        base = settings.channel_backoff_base_ms / 1000
        assert [c.args[0] for c in no_sleep.call_args_list] == [base, base * 2]

    def test_retries_network_errors(self, client, session):
        session.post.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            make_response(200, postings_payload([])),
        ]

        client.fetch_orders_page()

        assert session.post.call_count == 2

    def test_unauthorized_not_retried(self, client, session):
        session.post.return_value = make_response(401)

        with pytest.raises(ChannelError) as exc_info:
            client.fetch_orders_page()

        assert session.post.call_count == 1
        assert "401" in exc_info.value.message
        assert exc_info.value.details["http_status"] == 401

    def test_retries_exhausted(self, client, session):
        session.post.return_value = make_response(429)

        with pytest.raises(ChannelError) as exc_info:
            client.fetch_orders_page()

        assert session.post.call_count == settings.channel_max_retries + 1
        assert "429" in exc_info.value.message

    def test_missing_credentials(self, session):
        client = ChannelClient(base_url="https://channel.test", client_id="", api_key="", session=session)

        with pytest.raises(ChannelError):
            client.fetch_orders_page()

        session.post.assert_not_called()

    def test_unparseable_posting_skipped(self, client, session):
        session.post.return_value = make_response(200, postings_payload([
            {"status": "awaiting_packaging"},
            raw_posting("P-2"),
        ]))

        page = client.fetch_orders_page()

        assert [o.external_id for o in page.orders] == ["P-2"]


class TestIterOrderPages:
    """Tests for iter_order_pages."""

    def test_follows_has_next(self, client, session, no_sleep):
        session.post.side_effect = [
            make_response(200, postings_payload([raw_posting("P-1")], has_next=True)),
            make_response(200, postings_payload([raw_posting("P-2")], has_next=False)),
        ]

        pages = list(client.iter_order_pages())

        assert [p.orders[0].external_id for p in pages] == ["P-1", "P-2"]
        offsets = [c.kwargs["json"]["offset"] for c in session.post.call_args_list]
        assert offsets == [0, settings.channel_page_size]
        no_sleep.assert_called_once_with(settings.channel_page_delay_ms / 1000)

    def test_stops_at_offset_cap(self, client, session):
        session.post.return_value = make_response(
            200, postings_payload([raw_posting()], has_next=True)
        )

        with patch.object(settings, "channel_max_offset", settings.channel_page_size):
            pages = list(client.iter_order_pages())

        assert len(pages) == 2
