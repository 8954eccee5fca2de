"""
Order status service.

Derives each line's operational status live from stock and material
checks, aggregates an order's flow status as the worst case of its lines,
and records every flow transition on the order timeline.
"""

import threading
from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.order import (
    ChannelHint,
    FulfillmentStatus,
    FulfillmentType,
    LINE_STATUS_SEVERITY,
    OperationalStatus,
    Order,
    OrderFlowStatus,
    OrderLine,
    OrderWithLines,
    TERMINAL_FLOW_STATUSES,
    is_valid_flow_transition,
    map_operational_to_flow,
)
from models.production import TaskStatus
from models.fulfillment import BatchResult
from services.material_availability_service import MaterialAvailabilityService
from services.order_timeline_service import OrderTimelineService
from exceptions import AppError, OrderNotFoundError, RecalculationInProgressError

logger = structlog.get_logger(__name__)

# One full recalculation at a time per process
_recalculation_lock = threading.Lock()


def channel_terminal_status(channel_status: Optional[str]) -> Optional[OperationalStatus]:
    """
    Map a raw channel status to a terminal operational status.

    Returns None while the channel still considers the order open.
    """
    if not channel_status:
        return None
    normalized = channel_status.lower()
    if "delivered" in normalized:
        return OperationalStatus.DONE
    if "delivering" in normalized or "return" in normalized:
        return OperationalStatus.SHIPPED
    if "cancel" in normalized or "arbitration" in normalized:
        return OperationalStatus.BLOCKED
    return None


def aggregate_statuses(statuses: list[OperationalStatus]) -> OperationalStatus:
    """
    Worst-case aggregation of line statuses.

    WAITING_FOR_MATERIALS > WAITING_FOR_PRODUCTION > IN_PRODUCTION >
    READY_TO_SHIP > PENDING. Lines outside that scale (shipped, done,
    blocked) only decide the result when no line is on it; then the first
    line's status is used.
    """
    for status in LINE_STATUS_SEVERITY:
        if status in statuses:
            return status
    if statuses:
        return statuses[0]
    return OperationalStatus.PENDING


class OrderStatusService:
    """Live status derivation and flow status maintenance."""

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        availability: Optional[MaterialAvailabilityService] = None,
        timeline: Optional[OrderTimelineService] = None,
    ):
        self.repository = repository or get_repository()
        self.availability = availability or MaterialAvailabilityService(self.repository)
        self.timeline = timeline or OrderTimelineService(self.repository)

    # ===================
    # LINE STATUS
    # ===================

    def _materials_short(self, product_id: str, quantity: int) -> bool:
        recipe = self.repository.get_active_recipe(product_id)
        if recipe is None or not recipe.materials:
            return True
        return bool(self.availability.find_shortages(recipe, quantity))

    def _is_covered(self, line: OrderLine) -> bool:
        # The line's own reservation counts towards its coverage
        inventory = self.repository.get_inventory(line.product_id)
        available = inventory.available if inventory else 0
        return available + line.reserved_quantity >= line.quantity

    def calculate_line_status(self, order: Order, line: OrderLine) -> OperationalStatus:
        """
        Operational status of one line from current stock and materials.

        Terminal channel statuses win over everything else.
        """
        terminal = channel_terminal_status(order.channel_status)
        if terminal is not None:
            return terminal

        if line.fulfillment_status == FulfillmentStatus.SHIPPED:
            return OperationalStatus.SHIPPED
        if line.fulfillment_status == FulfillmentStatus.CANCELLED:
            return OperationalStatus.BLOCKED

        if line.fulfillment_type in (FulfillmentType.EXTERNAL, FulfillmentType.PENDING):
            return OperationalStatus.PENDING

        outstanding = line.quantity - line.reserved_quantity

        if line.fulfillment_type == FulfillmentType.READY_STOCK:
            if self._is_covered(line):
                return OperationalStatus.READY_TO_SHIP
            if self._materials_short(line.product_id, outstanding):
                return OperationalStatus.WAITING_FOR_MATERIALS
            return OperationalStatus.WAITING_FOR_PRODUCTION

        # PRODUCE_ON_DEMAND
        if self._is_covered(line):
            return OperationalStatus.READY_TO_SHIP

        task = self.repository.get_task_for_line(line.id)
        in_progress = (
            (task is not None and task.status == TaskStatus.IN_PROGRESS)
            or line.fulfillment_status == FulfillmentStatus.IN_PRODUCTION
        )
        # Checked before materials: a started task has already consumed its
        # lots, so a material check here would report a shortage for units
        # that are on the production floor.
        if in_progress:
            return OperationalStatus.IN_PRODUCTION

        if self._materials_short(line.product_id, outstanding):
            return OperationalStatus.WAITING_FOR_MATERIALS
        return OperationalStatus.WAITING_FOR_PRODUCTION

    def calculate_order_status(self, order: Order) -> OperationalStatus:
        """Worst-case operational status over an order's lines."""
        terminal = channel_terminal_status(order.channel_status)
        if terminal is not None:
            return terminal
        lines = self.repository.list_order_lines(order.id)
        return aggregate_statuses([self.calculate_line_status(order, line) for line in lines])

    # ===================
    # FLOW STATUS
    # ===================

    def claim_free_stock(self, order: Order) -> int:
        """
        Reserve free finished stock for lines it now covers.

        A decided line whose unreserved quantity is fully available as free
        stock (produced or counted in outside its task) takes that stock
        all-or-nothing, so a line reported ready to ship is also shippable.
        A pending task of such a line stays queued for the operator to remove.

        Returns:
            Number of lines that claimed stock
        """
        if order.flow_status in TERMINAL_FLOW_STATUSES or channel_terminal_status(order.channel_status):
            return 0

        claimed = 0
        for line in self.repository.list_order_lines(order.id):
            if line.fulfillment_type not in (FulfillmentType.READY_STOCK, FulfillmentType.PRODUCE_ON_DEMAND):
                continue
            if line.fulfillment_status in (FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED):
                continue
            outstanding = line.quantity - line.reserved_quantity
            if outstanding <= 0:
                continue
            inventory = self.repository.get_inventory(line.product_id)
            if inventory is None or inventory.available < outstanding:
                continue
            if not self.repository.reserve_for_line(line.id, outstanding):
                # Taken by another writer in between; the line stays uncovered
                continue

            self.repository.update_order_line(line.id, {
                "fulfillment_status": FulfillmentStatus.READY,
                "fulfillment_notes": None,
            })
            claimed += 1
            logger.info(
                "free_stock_claimed",
                order_id=order.id,
                line_id=line.id,
                product_id=line.product_id,
                quantity=outstanding
            )
        return claimed

    def recalculate_order(self, order_id: str) -> Order:
        """
        Recompute an order's flow status and record the transition.

        Free stock that now covers a line is reserved for it first (see
        claim_free_stock). Disallowed transitions (leaving a terminal
        status, returning to NEW) are skipped. The write is a compare-and-set
        on the status that was read; if another writer got there first,
        nothing is recorded.

        Raises:
            OrderNotFoundError: If the order doesn't exist
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        self.claim_free_stock(order)

        operational = self.calculate_order_status(order)
        new_flow = map_operational_to_flow(operational)
        old_flow = order.flow_status

        if new_flow == old_flow:
            if operational != order.operational_status:
                self.repository.update_order_flow_status(order.id, old_flow, old_flow, operational)
            return self.repository.get_order(order_id)

        if not is_valid_flow_transition(old_flow, new_flow):
            logger.info(
                "flow_transition_skipped",
                order_id=order_id,
                current=old_flow.value,
                computed=new_flow.value
            )
            return order

        if not self.repository.update_order_flow_status(order.id, old_flow, new_flow, operational):
            logger.warning(
                "flow_status_conflict",
                order_id=order_id,
                expected=old_flow.value,
                new=new_flow.value
            )
            return self.repository.get_order(order_id)

        self.timeline.record_transition(order.id, old_flow, new_flow)

        logger.info(
            "order_flow_status_changed",
            order_id=order_id,
            previous_status=old_flow.value,
            new_status=new_flow.value
        )
        return self.repository.get_order(order_id)

    def recalculate_all(self, cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Recompute flow status for every non-terminal order.

        Single-flight: a call while another is running is rejected.
        Setting `cancel_event` stops the pass between orders; orders
        already written stay correct.

        Raises:
            RecalculationInProgressError: If a recalculation is already running
        """
        if not _recalculation_lock.acquire(blocking=False):
            logger.warning("recalculation_rejected")
            raise RecalculationInProgressError()

        result = BatchResult()
        try:
            open_statuses = [s for s in OrderFlowStatus if s not in TERMINAL_FLOW_STATUSES]
            orders = self.repository.list_orders(open_statuses)
            logger.info("recalculation_started", orders=len(orders))

            for order in orders:
                if cancel_event is not None and cancel_event.is_set():
                    result.aborted = True
                    logger.info("recalculation_cancelled", processed=result.processed)
                    break

                result.processed += 1
                try:
                    self.recalculate_order(order.id)
                    result.succeeded += 1
                except AppError as e:
                    result.failed += 1
                    result.errors.append(f"{order.id}: {e.message}")
                    logger.error("order_recalculation_failed", order_id=order.id, error=e.message)

            logger.info(
                "recalculation_finished",
                processed=result.processed,
                succeeded=result.succeeded,
                failed=result.failed,
                aborted=result.aborted
            )
            return result
        finally:
            _recalculation_lock.release()

    # ===================
    # VIEWS
    # ===================

    def get_ready_to_ship_orders(self) -> list[OrderWithLines]:
        """Seller-fulfilled orders whose flow status is READY_TO_SHIP."""
        orders = self.repository.list_orders([OrderFlowStatus.READY_TO_SHIP])
        return [
            OrderWithLines(order=order, lines=self.repository.list_order_lines(order.id))
            for order in orders
            if order.channel_hint == ChannelHint.SELLER_FULFILLED
        ]


# Singleton instance
_order_status_service: Optional[OrderStatusService] = None


def get_order_status_service() -> OrderStatusService:
    """Get or create order status service instance."""
    global _order_status_service
    if _order_status_service is None:
        _order_status_service = OrderStatusService()
    return _order_status_service
