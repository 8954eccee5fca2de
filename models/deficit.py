"""
Material deficit and replenishment schemas.
"""

from enum import Enum
from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import BaseSchema


class ReplenishmentPriority(str, Enum):
    """Replenishment urgency."""
    HIGH = "high"
    NORMAL = "normal"


class ReplenishmentStatus(str, Enum):
    """Purchase request lifecycle."""
    PENDING = "pending"
    ORDERED = "ordered"
    RECEIVED = "received"


class MaterialDeficit(BaseSchema):
    """Aggregated demand vs. availability for one material."""

    material_definition_id: str
    material_name: str
    unit: str
    needed: Decimal
    have: Decimal
    deficit: Decimal = Field(..., ge=0)


class DeficitReport(BaseSchema):
    """All material deficits plus products that cannot be planned at all."""

    deficits: list[MaterialDeficit] = []
    products_without_recipe: list[str] = []


class ReplenishmentItem(BaseSchema):
    """What to buy."""

    material_definition_id: str
    material_name: str
    quantity_needed: Decimal
    unit: str
    priority: ReplenishmentPriority


class ReplenishmentRequestCreate(BaseSchema):
    """Operator request to buy material."""

    material_definition_id: str = Field(..., min_length=1)
    quantity_needed: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)


class ReplenishmentRequest(BaseSchema):
    """Stored purchase request."""

    id: str
    material_definition_id: str
    quantity_needed: Decimal
    status: ReplenishmentStatus = ReplenishmentStatus.PENDING
    priority: ReplenishmentPriority
    notes: Optional[str] = None
    requested_at: datetime
