"""
Finished goods inventory schemas.

available = on_hand - reserved, and never negative.
"""

from typing import Optional
from pydantic import Field, model_validator

from models.base import BaseSchema, TimestampMixin


class FinishedGoodsInventory(TimestampMixin, BaseSchema):
    """On-hand and reserved units for one product."""

    product_id: str = Field(..., description="Product UUID")
    on_hand: int = Field(default=0, ge=0, description="Units physically in stock")
    reserved: int = Field(default=0, ge=0, description="Units promised to order lines")

    @model_validator(mode="after")
    def reserved_within_on_hand(self) -> "FinishedGoodsInventory":
        if self.reserved > self.on_hand:
            raise ValueError("reserved cannot exceed on_hand")
        return self

    @property
    def available(self) -> int:
        """Units free to promise."""
        return self.on_hand - self.reserved


class StockAdjustment(BaseSchema):
    """Operator correction of finished goods on hand."""

    adjustment: int = Field(..., description="Signed change in units, non-zero")
    reason: Optional[str] = Field(None, max_length=500)


class InventoryCreate(BaseSchema):
    """Start tracking finished goods for a product."""

    product_id: str = Field(..., min_length=1)
    on_hand: int = Field(default=0, ge=0, description="Opening stock")
