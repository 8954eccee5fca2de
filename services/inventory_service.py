"""
Finished goods inventory service.

Stock adjustments and shipping. Every change goes through the
repository's guarded writes, so on_hand never drops below reserved.
"""

from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.inventory import FinishedGoodsInventory, InventoryCreate, StockAdjustment
from models.order import (
    FulfillmentStatus,
    FulfillmentType,
    Order,
    OrderFlowStatus,
    is_valid_flow_transition,
)
from services.order_timeline_service import OrderTimelineService
from exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
)

logger = structlog.get_logger(__name__)


class InventoryService:
    """
    Finished goods business logic.

    Handles stock rows, manual adjustments and shipping of reserved units.
    """

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        timeline: Optional[OrderTimelineService] = None,
    ):
        self.repository = repository or get_repository()
        self.timeline = timeline or OrderTimelineService(self.repository)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_inventory(self, product_id: str) -> FinishedGoodsInventory:
        """
        Stock row for a product (zeros if it was never stocked).

        Raises:
            ProductNotFoundError: If the product doesn't exist
        """
        if self.repository.get_product(product_id) is None:
            raise ProductNotFoundError(product_id)
        return self.repository.get_inventory(product_id) or FinishedGoodsInventory(product_id=product_id)

    # ===================
    # WRITE OPERATIONS
    # ===================

    def adjust_stock(self, product_id: str, data: StockAdjustment) -> FinishedGoodsInventory:
        """
        Apply an operator correction to on_hand.

        Args:
            product_id: Product UUID
            data: Signed adjustment and reason

        Returns:
            Updated inventory row

        Raises:
            InvalidQuantityError: If the adjustment is zero
            ProductNotFoundError: If the product doesn't exist
            InsufficientStockError: If on_hand would drop below reserved
        """
        if data.adjustment == 0:
            raise InvalidQuantityError(data.adjustment, field="adjustment")

        current = self.get_inventory(product_id)
        updated = self.repository.adjust_on_hand(product_id, data.adjustment)
        if updated is None:
            logger.warning(
                "stock_adjustment_rejected",
                product_id=product_id,
                adjustment=data.adjustment,
                on_hand=current.on_hand,
                reserved=current.reserved
            )
            raise InsufficientStockError(product_id, requested=-data.adjustment, available=current.available)

        logger.info(
            "stock_adjusted",
            product_id=product_id,
            adjustment=data.adjustment,
            reason=data.reason,
            on_hand=updated.on_hand
        )
        return updated

    def create_inventory(self, data: InventoryCreate) -> FinishedGoodsInventory:
        """
        Start tracking finished goods for a product.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            ConflictError: If the product already has a stock row
        """
        if self.repository.get_product(data.product_id) is None:
            raise ProductNotFoundError(data.product_id)

        created = self.repository.create_inventory(data.product_id, data.on_hand)
        if created is None:
            raise ConflictError(
                "Inventory already exists for this product",
                code="INVENTORY_EXISTS",
                details={"product_id": data.product_id},
            )

        logger.info("inventory_created", product_id=data.product_id, on_hand=data.on_hand)
        return created

    def ship_order(self, order_id: str) -> Order:
        """
        Ship a READY_TO_SHIP order.

        A line still short of its reservation first claims free stock (the
        units may have been produced or counted in outside the task flow).
        Then every line's reservation is consumed, lines are marked shipped
        and the order moves to SHIPPED in one guarded write, followed by a
        timeline entry.

        Raises:
            OrderNotFoundError: If the order doesn't exist
            InvalidStatusTransitionError: If the order cannot move to SHIPPED
            InsufficientStockError: If a line cannot be fully reserved
            ConcurrencyConflictError: If stock or the order changed under us
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.flow_status != OrderFlowStatus.READY_TO_SHIP or not is_valid_flow_transition(
            order.flow_status, OrderFlowStatus.SHIPPED
        ):
            raise InvalidStatusTransitionError(order.flow_status.value, OrderFlowStatus.SHIPPED.value)

        lines = [
            line for line in self.repository.list_order_lines(order_id)
            if line.fulfillment_type != FulfillmentType.EXTERNAL
            and line.fulfillment_status not in (FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED)
        ]
        for line in lines:
            outstanding = line.quantity - line.reserved_quantity
            if outstanding <= 0:
                continue
            if not self.repository.reserve_for_line(line.id, outstanding):
                inventory = self.repository.get_inventory(line.product_id)
                raise InsufficientStockError(
                    line.product_id,
                    requested=outstanding,
                    available=inventory.available if inventory else 0,
                )
            logger.info("stock_claimed_for_shipping", order_id=order_id, line_id=line.id, quantity=outstanding)

        if not self.repository.ship_order(order_id, order.flow_status):
            logger.warning("ship_order_conflict", order_id=order_id)
            raise ConcurrencyConflictError("ship_order", {"order_id": order_id})
        self.timeline.record_transition(order_id, order.flow_status, OrderFlowStatus.SHIPPED)

        logger.info("order_shipped", order_id=order_id, lines=len(lines))
        return self.repository.get_order(order_id)


# Singleton instance
_inventory_service: Optional[InventoryService] = None


def get_inventory_service() -> InventoryService:
    """Get or create inventory service instance."""
    global _inventory_service
    if _inventory_service is None:
        _inventory_service = InventoryService()
    return _inventory_service
