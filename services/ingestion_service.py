"""
Order ingestion service.

Pulls orders from the sales channel, upserts them with their lines, runs
the fulfillment engine over the lines and recomputes each order's status.

Each page is processed as it arrives. A channel failure aborts the rest
of the sync; orders already processed keep their changes.
"""

from typing import Optional
from datetime import datetime
import structlog

from repositories import FulfillmentRepository, get_repository
from models.order import OrderLineCreate, OrderUpsert
from models.ingest import ChannelOrder, ChannelPage, SyncResult
from integrations.channel_client import ChannelClient, get_channel_client
from services.fulfillment_service import FulfillmentService
from services.order_status_service import OrderStatusService
from exceptions import AppError, ChannelError

logger = structlog.get_logger(__name__)

SKIPPED_SKU_SAMPLE_SIZE = 10


class IngestionService:
    """Channel order sync."""

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        client: Optional[ChannelClient] = None,
        fulfillment: Optional[FulfillmentService] = None,
        status: Optional[OrderStatusService] = None,
    ):
        self.repository = repository or get_repository()
        self.client = client or get_channel_client()
        self.status = status or OrderStatusService(self.repository)
        self.fulfillment = fulfillment or FulfillmentService(self.repository, status=self.status)

    def sync_orders(
        self,
        since: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> SyncResult:
        """
        Pull every page of orders and process it.

        Returns:
            SyncResult with counts; aborted=True if the channel failed mid-sync
        """
        result = SyncResult()
        logger.info("order_sync_started", since=since.isoformat() if since else None)

        try:
            for page in self.client.iter_order_pages(since=since, to=to):
                self._process_page(page, result)
        except ChannelError as e:
            result.aborted = True
            result.abort_reason = e.message
            logger.error(
                "order_sync_aborted",
                error=e.message,
                orders_synced=result.orders_synced
            )

        logger.info(
            "order_sync_finished",
            orders_received=result.orders_received,
            orders_synced=result.orders_synced,
            lines_saved=result.lines_saved,
            lines_skipped=result.lines_skipped_no_product,
            decisions_applied=result.decisions_applied,
            errors=result.errors_count,
            aborted=result.aborted
        )
        return result

    def _process_page(self, page: ChannelPage, result: SyncResult) -> None:
        result.orders_received += len(page.orders)
        skus = list({line.sku for order in page.orders for line in order.lines})
        products = self.repository.get_products_by_sku(skus)

        for channel_order in page.orders:
            try:
                self._process_order(channel_order, products, result)
            except AppError as e:
                result.errors_count += 1
                logger.error(
                    "order_ingest_failed",
                    external_id=channel_order.external_id,
                    error=e.message,
                    code=e.code
                )

    def _process_order(self, channel_order: ChannelOrder, products: dict, result: SyncResult) -> None:
        order = self.repository.upsert_order(OrderUpsert(
            external_id=channel_order.external_id,
            order_number=channel_order.order_number,
            channel_hint=channel_order.channel_hint,
            channel_status=channel_order.status,
            customer_name=channel_order.customer_name,
            total_amount=channel_order.total_amount,
            order_date=channel_order.order_date,
        ))
        result.orders_synced += 1

        line_ids = []
        for item in channel_order.lines:
            product = products.get(item.sku)
            if product is None:
                result.lines_skipped_no_product += 1
                if (
                    item.sku not in result.skipped_skus_sample
                    and len(result.skipped_skus_sample) < SKIPPED_SKU_SAMPLE_SIZE
                ):
                    result.skipped_skus_sample.append(item.sku)
                continue

            existing = self.repository.find_order_line(order.id, product.id)
            if existing is None:
                line = self.repository.create_order_line(order.id, OrderLineCreate(
                    product_id=product.id,
                    quantity=item.quantity,
                    price=item.unit_price,
                ))
            else:
                line = existing
                # Decided lines keep the quantity their reservation/task was made for
                if not existing.is_decided and (
                    existing.quantity != item.quantity or existing.price != item.unit_price
                ):
                    line = self.repository.update_order_line(
                        existing.id, {"quantity": item.quantity, "price": item.unit_price}
                    )
            line_ids.append(line.id)
            result.lines_saved += 1

        batch = self.fulfillment.process_lines(line_ids)
        result.decisions_applied += batch.succeeded
        result.decisions_failed += batch.failed
        result.errors_count += batch.failed

        self.status.recalculate_order(order.id)


# Singleton instance
_ingestion_service: Optional[IngestionService] = None


def get_ingestion_service() -> IngestionService:
    """Get or create ingestion service instance."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService()
    return _ingestion_service
