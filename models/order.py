"""
Order schemas and status vocabularies.

Three status layers:
- OrderLine.fulfillment_type / fulfillment_status: how a line is satisfied
  and where it is in that process. The type is decided once.
- OperationalStatus: per-line status derived live from stock and material
  checks.
- OrderFlowStatus: per-order lifecycle stage, the worst case of its lines.
"""

from enum import Enum
from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import BaseSchema, TimestampMixin


# ===================
# ENUMS
# ===================

class ChannelHint(str, Enum):
    """Who ships the order."""
    SELLER_FULFILLED = "FBS"
    CHANNEL_FULFILLED = "FBO"


class FulfillmentType(str, Enum):
    """How an order line will be satisfied."""
    PENDING = "PENDING"
    READY_STOCK = "READY_STOCK"
    PRODUCE_ON_DEMAND = "PRODUCE_ON_DEMAND"
    EXTERNAL = "EXTERNAL"


class FulfillmentStatus(str, Enum):
    """Progress of an order line through fulfillment."""
    PLANNED = "planned"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class OperationalStatus(str, Enum):
    """Live per-line status."""
    PENDING = "PENDING"
    READY_TO_SHIP = "READY_TO_SHIP"
    WAITING_FOR_PRODUCTION = "WAITING_FOR_PRODUCTION"
    IN_PRODUCTION = "IN_PRODUCTION"
    WAITING_FOR_MATERIALS = "WAITING_FOR_MATERIALS"
    BLOCKED = "BLOCKED"
    SHIPPED = "SHIPPED"
    DONE = "DONE"


class OrderFlowStatus(str, Enum):
    """Order lifecycle stage."""
    NEW = "NEW"
    NEED_MATERIALS = "NEED_MATERIALS"
    NEED_PRODUCTION = "NEED_PRODUCTION"
    IN_PRODUCTION = "IN_PRODUCTION"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


# Worst case first. Used to aggregate line statuses into one order status.
LINE_STATUS_SEVERITY = [
    OperationalStatus.WAITING_FOR_MATERIALS,
    OperationalStatus.WAITING_FOR_PRODUCTION,
    OperationalStatus.IN_PRODUCTION,
    OperationalStatus.READY_TO_SHIP,
    OperationalStatus.PENDING,
]

OPERATIONAL_TO_FLOW = {
    OperationalStatus.READY_TO_SHIP: OrderFlowStatus.READY_TO_SHIP,
    OperationalStatus.WAITING_FOR_PRODUCTION: OrderFlowStatus.NEED_PRODUCTION,
    OperationalStatus.WAITING_FOR_MATERIALS: OrderFlowStatus.NEED_MATERIALS,
    OperationalStatus.IN_PRODUCTION: OrderFlowStatus.IN_PRODUCTION,
    OperationalStatus.SHIPPED: OrderFlowStatus.SHIPPED,
    OperationalStatus.DONE: OrderFlowStatus.DONE,
    OperationalStatus.BLOCKED: OrderFlowStatus.CANCELLED,
    OperationalStatus.PENDING: OrderFlowStatus.NEW,
}

# Statuses that move among each other as live checks change
ACTIVE_FLOW_STATUSES = {
    OrderFlowStatus.NEED_MATERIALS,
    OrderFlowStatus.NEED_PRODUCTION,
    OrderFlowStatus.IN_PRODUCTION,
    OrderFlowStatus.READY_TO_SHIP,
}

TERMINAL_FLOW_STATUSES = {OrderFlowStatus.DONE, OrderFlowStatus.CANCELLED}


def map_operational_to_flow(status: OperationalStatus) -> OrderFlowStatus:
    """Map a line/order operational status to the order flow vocabulary."""
    return OPERATIONAL_TO_FLOW.get(status, OrderFlowStatus.NEW)


def is_valid_flow_transition(current: OrderFlowStatus, new: OrderFlowStatus) -> bool:
    """
    Check if an order flow transition is allowed.

    Rules:
    - DONE and CANCELLED are terminal
    - CANCELLED is reachable from any other status
    - NEW is never re-entered
    - Active statuses may move among each other (stock can be depleted
      after an order looked ready)
    - SHIPPED only advances to DONE
    """
    if current == new:
        return True
    if current in TERMINAL_FLOW_STATUSES:
        return False
    if new == OrderFlowStatus.CANCELLED:
        return True
    if new == OrderFlowStatus.NEW:
        return False
    if current == OrderFlowStatus.SHIPPED:
        return new == OrderFlowStatus.DONE
    return True


# ===================
# RECORDS
# ===================

class OrderLine(TimestampMixin, BaseSchema):
    """A product and quantity within an order."""

    id: str = Field(..., description="Line UUID")
    order_id: str = Field(..., description="Parent order UUID")
    product_id: str = Field(..., description="Product UUID")
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    fulfillment_type: FulfillmentType = Field(default=FulfillmentType.PENDING)
    fulfillment_status: FulfillmentStatus = Field(default=FulfillmentStatus.PLANNED)
    fulfillment_notes: Optional[str] = Field(None, description="Human-readable note, set when blocked")
    fulfillment_decided_at: Optional[datetime] = None
    reserved_quantity: int = Field(default=0, ge=0, description="Finished units reserved for this line")
    production_task_id: Optional[str] = None

    @property
    def is_decided(self) -> bool:
        return self.fulfillment_type != FulfillmentType.PENDING


class OrderLineCreate(BaseSchema):
    """Line as ingested from the channel."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class Order(TimestampMixin, BaseSchema):
    """Customer order received from the sales channel."""

    id: str = Field(..., description="Order UUID")
    external_id: str = Field(..., description="Channel posting number")
    order_number: str = Field(default="")
    channel_hint: ChannelHint = Field(default=ChannelHint.SELLER_FULFILLED)
    channel_status: Optional[str] = Field(None, description="Raw status reported by the channel")
    flow_status: OrderFlowStatus = Field(default=OrderFlowStatus.NEW)
    operational_status: OperationalStatus = Field(default=OperationalStatus.PENDING)
    customer_name: Optional[str] = None
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    order_date: Optional[datetime] = None


class OrderUpsert(BaseSchema):
    """Order header as ingested; matched on external_id."""

    external_id: str = Field(..., min_length=1)
    order_number: str = Field(default="")
    channel_hint: ChannelHint = Field(default=ChannelHint.SELLER_FULFILLED)
    channel_status: Optional[str] = None
    customer_name: Optional[str] = None
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    order_date: Optional[datetime] = None


class TimelineEvent(BaseSchema):
    """One order flow transition. Append-only."""

    id: str
    order_id: str
    status: OrderFlowStatus
    previous_status: Optional[OrderFlowStatus] = None
    reason: str
    created_at: datetime


class OrderTimeline(BaseSchema):
    """Current status with its reason and full history."""

    order_id: str
    current_status: OrderFlowStatus
    current_reason: str
    events: list[TimelineEvent] = []


class OrderWithLines(BaseSchema):
    """Order detail view."""

    order: Order
    lines: list[OrderLine]
