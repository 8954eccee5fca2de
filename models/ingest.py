"""
Channel ingestion schemas.

ChannelOrder is the channel-neutral shape the ingestion service consumes;
the channel client maps raw postings into it.
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.order import ChannelHint


class ChannelOrderLine(BaseSchema):
    """Line item as reported by the channel."""

    sku: str = Field(..., min_length=1, description="Seller SKU / offer id")
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)


class ChannelOrder(BaseSchema):
    """Order as reported by the channel."""

    external_id: str = Field(..., min_length=1, description="Posting number")
    order_number: str = Field(default="")
    status: Optional[str] = None
    channel_hint: ChannelHint = Field(default=ChannelHint.SELLER_FULFILLED)
    customer_name: Optional[str] = None
    order_date: Optional[datetime] = None
    lines: list[ChannelOrderLine] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.unit_price * line.quantity for line in self.lines), Decimal("0"))


class ChannelPage(BaseSchema):
    """One page of the channel order feed."""

    orders: list[ChannelOrder] = Field(default_factory=list)
    has_next: bool = False


class SyncResult(BaseSchema):
    """Counts from one ingestion run."""

    orders_received: int = 0
    orders_synced: int = 0
    lines_saved: int = 0
    lines_skipped_no_product: int = 0
    decisions_applied: int = 0
    decisions_failed: int = 0
    errors_count: int = 0
    aborted: bool = False
    abort_reason: Optional[str] = None
    skipped_skus_sample: list[str] = Field(default_factory=list)
