"""
Sales channel order feed client.

Pulls seller-fulfilled postings page by page. Transient failures
(network errors, 429, 5xx) are retried with exponential backoff; other
HTTP errors fail immediately. Pages are separated by a fixed delay to
respect the channel's rate limits.
"""

import time
from decimal import Decimal, InvalidOperation
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

import requests
import structlog

from config import settings
from models.order import ChannelHint
from models.ingest import ChannelOrder, ChannelOrderLine, ChannelPage
from exceptions import ChannelError

logger = structlog.get_logger(__name__)

ORDERS_ENDPOINT = "/v3/posting/fbs/list"
DEFAULT_LOOKBACK_DAYS = 30

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return "****" + value[-4:]


def _to_decimal(value) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_posting(raw: dict) -> ChannelOrder:
    """
    Map a raw posting into a ChannelOrder.

    Unit price falls back from price to unit_price to total_price / quantity.
    """
    lines = []
    for product in raw.get("products") or []:
        quantity = int(product.get("quantity") or 0)
        if quantity <= 0 or not product.get("offer_id"):
            continue
        price = _to_decimal(product.get("price")) or _to_decimal(product.get("unit_price"))
        if price is None:
            total = _to_decimal(product.get("total_price"))
            price = total / quantity if total is not None else Decimal("0")
        lines.append(ChannelOrderLine(
            sku=str(product["offer_id"]),
            quantity=quantity,
            unit_price=price,
        ))

    schema = str(raw.get("delivery_schema") or "FBS").upper()
    customer = raw.get("customer") or {}

    return ChannelOrder(
        external_id=raw["posting_number"],
        order_number=raw.get("order_number") or raw["posting_number"],
        status=raw.get("status"),
        channel_hint=ChannelHint.CHANNEL_FULFILLED if schema == "FBO" else ChannelHint.SELLER_FULFILLED,
        customer_name=customer.get("name"),
        order_date=_parse_datetime(raw.get("in_process_at") or raw.get("created_at")),
        lines=lines,
    )


class ChannelClient:
    """HTTP client for the channel's posting list."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.channel_api_url).rstrip("/")
        self.client_id = client_id if client_id is not None else settings.channel_client_id
        self.api_key = api_key if api_key is not None else settings.channel_api_key
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Client-Id": self.client_id or "",
            "Api-Key": self.api_key or "",
        }

    def _post(self, endpoint: str, body: dict) -> dict:
        """
        POST with retries.

        Raises:
            ChannelError: If credentials are missing, the channel rejects the
                request, or retries are exhausted
        """
        if not self.client_id or not self.api_key:
            raise ChannelError("Channel credentials are not configured", endpoint=endpoint)

        url = f"{self.base_url}{endpoint}"
        attempts = settings.channel_max_retries + 1

        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                response = self.session.post(
                    url,
                    json=body,
                    headers=self._headers(),
                    timeout=settings.channel_timeout_seconds,
                )
            except requests.exceptions.RequestException as e:
                logger.warning(
                    "channel_request_error",
                    endpoint=endpoint,
                    attempt=attempt,
                    error=str(e)
                )
                if attempt == attempts:
                    raise ChannelError(f"Network error calling channel: {e}", endpoint=endpoint)
                self._backoff(attempt)
                continue

            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.debug(
                "channel_response",
                endpoint=endpoint,
                status=response.status_code,
                elapsed_ms=elapsed_ms,
                client_id=_mask(self.client_id)
            )

            if response.ok:
                return response.json()

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts:
                logger.warning(
                    "channel_request_retry",
                    endpoint=endpoint,
                    status=response.status_code,
                    attempt=attempt
                )
                self._backoff(attempt)
                continue

            raise ChannelError(
                self._error_message(response),
                status_code=response.status_code,
                endpoint=endpoint,
            )

        raise ChannelError("Channel retries exhausted", endpoint=endpoint)

    @staticmethod
    def _backoff(attempt: int) -> None:
        delay_ms = settings.channel_backoff_base_ms * (2 ** (attempt - 1))
        time.sleep(delay_ms / 1000)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        status = response.status_code
        if status == 401:
            return "Channel returned 401: check Client-Id and Api-Key"
        if status == 403:
            return "Channel returned 403: API key lacks access"
        if status == 429:
            return "Channel returned 429: rate limit exceeded"
        if status >= 500:
            return f"Channel returned {status}: server error"
        try:
            detail = response.json().get("message")
        except ValueError:
            detail = None
        return f"Channel returned {status}" + (f": {detail}" if detail else "")

    def fetch_orders_page(
        self,
        offset: int = 0,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> ChannelPage:
        """Fetch one page of postings."""
        now = datetime.now(timezone.utc)
        body = {
            "dir": "ASC",
            "filter": {
                "since": (since or now - timedelta(days=DEFAULT_LOOKBACK_DAYS)).isoformat(),
                "to": (to or now).isoformat(),
            },
            "limit": limit or settings.channel_page_size,
            "offset": offset,
            "with": {"analytics_data": False, "financial_data": True},
        }

        data = self._post(ORDERS_ENDPOINT, body)
        result = data.get("result") or {}
        postings = result.get("postings") or []

        orders = []
        for raw in postings:
            try:
                orders.append(parse_posting(raw))
            except (KeyError, ValueError) as e:
                logger.warning("channel_posting_unparseable", error=str(e), posting=raw.get("posting_number"))

        logger.info(
            "channel_page_fetched",
            offset=offset,
            received=len(postings),
            has_next=bool(result.get("has_next"))
        )
        return ChannelPage(orders=orders, has_next=bool(result.get("has_next")) and len(postings) > 0)

    def iter_order_pages(
        self,
        since: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> Iterator[ChannelPage]:
        """
        Yield pages until the feed is exhausted or the offset cap is hit.

        Sleeps the configured inter-page delay between requests.
        """
        offset = 0
        while True:
            page = self.fetch_orders_page(offset=offset, since=since, to=to)
            yield page

            if not page.has_next:
                return
            offset += settings.channel_page_size
            if offset > settings.channel_max_offset:
                logger.warning("channel_offset_cap_reached", offset=offset)
                return
            time.sleep(settings.channel_page_delay_ms / 1000)


# Singleton instance
_channel_client: Optional[ChannelClient] = None


def get_channel_client() -> ChannelClient:
    """Get or create channel client instance."""
    global _channel_client
    if _channel_client is None:
        _channel_client = ChannelClient()
    return _channel_client
