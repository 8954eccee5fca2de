"""
Order timeline service.

Append-only history of order flow transitions, each with a
human-readable reason.
"""

from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.order import OrderFlowStatus, OrderTimeline, TimelineEvent
from exceptions import OrderNotFoundError

logger = structlog.get_logger(__name__)


TRANSITION_REASONS = {
    (OrderFlowStatus.NEW, OrderFlowStatus.NEED_PRODUCTION): "Order needs production, materials are available",
    (OrderFlowStatus.NEW, OrderFlowStatus.NEED_MATERIALS): "Not enough materials to produce the order",
    (OrderFlowStatus.NEW, OrderFlowStatus.READY_TO_SHIP): "Product is in stock and reserved",
    (OrderFlowStatus.NEED_MATERIALS, OrderFlowStatus.NEED_PRODUCTION): "Materials arrived, production can start",
    (OrderFlowStatus.NEED_PRODUCTION, OrderFlowStatus.NEED_MATERIALS): "Materials were used elsewhere before production started",
    (OrderFlowStatus.NEED_PRODUCTION, OrderFlowStatus.IN_PRODUCTION): "Production started",
    (OrderFlowStatus.IN_PRODUCTION, OrderFlowStatus.READY_TO_SHIP): "Production completed, product is in stock",
    (OrderFlowStatus.READY_TO_SHIP, OrderFlowStatus.NEED_PRODUCTION): "Stock was depleted, product must be produced",
    (OrderFlowStatus.READY_TO_SHIP, OrderFlowStatus.SHIPPED): "Order shipped to the customer",
    (OrderFlowStatus.SHIPPED, OrderFlowStatus.DONE): "Order delivered and completed",
    (OrderFlowStatus.NEW, OrderFlowStatus.CANCELLED): "Order was cancelled",
    (OrderFlowStatus.NEED_PRODUCTION, OrderFlowStatus.CANCELLED): "Order was cancelled before production started",
    (OrderFlowStatus.IN_PRODUCTION, OrderFlowStatus.CANCELLED): "Production was cancelled",
}

DEFAULT_REASONS = {
    OrderFlowStatus.NEW: "Order received and awaiting processing",
    OrderFlowStatus.NEED_PRODUCTION: "Product must be produced, materials are available",
    OrderFlowStatus.NEED_MATERIALS: "Not enough materials to produce the order",
    OrderFlowStatus.IN_PRODUCTION: "Product is being produced",
    OrderFlowStatus.READY_TO_SHIP: "Product is in stock, ready to ship",
    OrderFlowStatus.SHIPPED: "Order shipped to the customer",
    OrderFlowStatus.DONE: "Order completed",
    OrderFlowStatus.CANCELLED: "Order was cancelled",
}


def transition_reason(old: Optional[OrderFlowStatus], new: OrderFlowStatus) -> str:
    """Reason text for a flow transition, with a generic fallback."""
    if old is None:
        return DEFAULT_REASONS[new]
    reason = TRANSITION_REASONS.get((old, new))
    if reason:
        return reason
    return f"Status changed from {old.value} to {new.value}"


class OrderTimelineService:
    """Order flow history."""

    def __init__(self, repository: Optional[FulfillmentRepository] = None):
        self.repository = repository or get_repository()

    def record_transition(
        self,
        order_id: str,
        previous_status: Optional[OrderFlowStatus],
        new_status: OrderFlowStatus,
        reason: Optional[str] = None,
    ) -> TimelineEvent:
        """Append one transition. Reason is generated when not given."""
        event = self.repository.append_timeline_event(
            order_id=order_id,
            status=new_status,
            previous_status=previous_status,
            reason=reason or transition_reason(previous_status, new_status),
        )

        logger.info(
            "timeline_event_recorded",
            order_id=order_id,
            previous_status=previous_status.value if previous_status else None,
            new_status=new_status.value
        )
        return event

    def get_timeline(self, order_id: str) -> OrderTimeline:
        """
        Current status, its reason, and the full history (oldest first).

        Raises:
            OrderNotFoundError: If the order doesn't exist
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        events = self.repository.list_timeline(order_id)
        current = [e for e in events if e.status == order.flow_status]
        current_reason = current[-1].reason if current else DEFAULT_REASONS[order.flow_status]

        return OrderTimeline(
            order_id=order_id,
            current_status=order.flow_status,
            current_reason=current_reason,
            events=events,
        )


# Singleton instance
_timeline_service: Optional[OrderTimelineService] = None


def get_order_timeline_service() -> OrderTimelineService:
    """Get or create order timeline service instance."""
    global _timeline_service
    if _timeline_service is None:
        _timeline_service = OrderTimelineService()
    return _timeline_service
