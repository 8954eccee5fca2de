"""
Material schemas: definitions, warehouses, lots and the movement ledger.

Lot invariant: remaining quantity equals received quantity plus the sum
of signed movements against the lot, and never goes negative. Movements
are append-only.
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

class MaterialType(str, Enum):
    """Kinds of raw material."""
    BLANK = "blank"
    CONSUMABLE = "consumable"
    PACKAGING = "packaging"


class WarehouseType(str, Enum):
    """Physical location types."""
    HOME = "HOME"
    PRODUCTION_CENTER = "PRODUCTION_CENTER"


# Lower value = drawn from first
DEFAULT_WAREHOUSE_PRIORITY = {
    WarehouseType.HOME: 0,
    WarehouseType.PRODUCTION_CENTER: 1,
}


class MovementReason(str, Enum):
    """Why a lot quantity changed."""
    RECEIPT = "receipt"
    PRODUCTION = "production"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    WRITE_OFF = "write_off"


# ===================
# RECORDS
# ===================

class Warehouse(BaseSchema):
    """Named location; priority breaks allocation ties (lower first)."""

    id: str = Field(..., description="Warehouse UUID")
    name: str = Field(..., max_length=100)
    type: WarehouseType = Field(..., description="HOME or PRODUCTION_CENTER")
    priority: int = Field(default=0, ge=0, description="Allocation order, lower is preferred")
    is_active: bool = Field(default=True)


class MaterialDefinition(TimestampMixin, BaseSchema):
    """A kind of material, independent of where or when it was bought."""

    id: str = Field(..., description="Definition UUID")
    name: str = Field(..., min_length=1, max_length=255)
    type: MaterialType = Field(default=MaterialType.BLANK)
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=50)
    material_type: Optional[str] = Field(None, max_length=100, description="Fabric / composition")
    unit: str = Field(default="pcs", max_length=20, description="Unit of measure")


class WarehouseCreate(BaseSchema):
    """Register a warehouse."""

    name: str = Field(..., min_length=1, max_length=100)
    type: WarehouseType
    priority: Optional[int] = Field(None, ge=0, description="Defaults by type: HOME 0, PRODUCTION_CENTER 1")


class MaterialDefinitionCreate(BaseSchema):
    """Create a material definition."""

    name: str = Field(..., min_length=1, max_length=255)
    type: MaterialType = Field(default=MaterialType.BLANK)
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=50)
    material_type: Optional[str] = Field(None, max_length=100)
    unit: str = Field(default="pcs", min_length=1, max_length=20)


class MaterialDefinitionUpdate(BaseSchema):
    """Partial update; only fields that are set are written."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[MaterialType] = None
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=50)
    material_type: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)


class MaterialLot(TimestampMixin, BaseSchema):
    """One received batch of a material at one warehouse."""

    id: str = Field(..., description="Lot UUID")
    material_definition_id: str = Field(..., description="Material definition UUID")
    warehouse_id: str = Field(..., description="Warehouse UUID")
    received_quantity: Decimal = Field(..., ge=0, description="Quantity received")
    remaining_quantity: Decimal = Field(..., ge=0, description="Quantity still on hand")
    cost_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_name: Optional[str] = Field(None, max_length=255)
    received_at: datetime = Field(..., description="When the lot was received (FIFO key)")


class MaterialLotCreate(BaseSchema):
    """Receive a new lot."""

    material_definition_id: str = Field(..., min_length=1)
    warehouse_id: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0, description="Quantity received")
    cost_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_name: Optional[str] = Field(None, max_length=255)
    received_at: Optional[datetime] = Field(None, description="Defaults to now")


class MaterialMovementCreate(BaseSchema):
    """Signed quantity change to write against a lot."""

    material_lot_id: str = Field(..., min_length=1)
    quantity_change: Decimal = Field(..., description="Negative = consumption, positive = addition")
    reason: MovementReason
    production_task_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class MaterialMovement(BaseSchema):
    """Immutable ledger entry."""

    id: str
    material_lot_id: str
    quantity_change: Decimal
    reason: MovementReason
    production_task_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class LotAdjustment(BaseSchema):
    """Operator correction of a lot quantity."""

    quantity_change: Decimal = Field(..., description="Signed change, non-zero")
    reason: MovementReason = Field(default=MovementReason.MANUAL_ADJUSTMENT)
    notes: Optional[str] = Field(None, max_length=500)


# ===================
# AVAILABILITY VIEWS
# ===================

class WarehouseAvailability(BaseSchema):
    """Material on hand in one warehouse."""

    warehouse_id: str
    warehouse_name: str
    warehouse_type: WarehouseType
    quantity: Decimal


class MaterialAvailability(BaseSchema):
    """Availability summary for one material definition."""

    material_definition_id: str
    material_name: str
    unit: str
    total_quantity: Decimal
    lot_count: int
    avg_cost_per_unit: Decimal
    warehouses: list[WarehouseAvailability] = []
