"""
Fulfillment decision and allocation schemas.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field

from models.base import BaseSchema
from models.order import FulfillmentType, OperationalStatus


class MissingMaterial(BaseSchema):
    """A recipe material that cannot cover the requirement."""

    material_definition_id: str
    name: str
    required: Decimal
    available: Decimal
    shortage: Decimal


class FulfillmentDecision(BaseSchema):
    """Outcome of deciding how a line will be fulfilled."""

    type: FulfillmentType
    can_fulfill: bool
    has_materials: bool = False
    needs_production: bool = False
    required_quantity: int
    available_stock: int = 0
    reason: str
    missing_materials: list[MissingMaterial] = Field(default_factory=list)


class LotAllocation(BaseSchema):
    """Quantity drawn from one lot."""

    lot_id: str
    warehouse_id: str
    quantity: Decimal
    cost_per_unit: Decimal = Decimal("0")


class AllocationPlan(BaseSchema):
    """
    Planned draw for one material definition.

    Pure plan; nothing is written until production starts.
    """

    material_definition_id: str
    required: Decimal
    allocations: list[LotAllocation] = Field(default_factory=list)
    shortage: Decimal = Decimal("0")

    @property
    def allocated(self) -> Decimal:
        return sum((a.quantity for a in self.allocations), Decimal("0"))

    @property
    def is_complete(self) -> bool:
        return self.shortage == 0


class ApplyResult(BaseSchema):
    """What applying a decision to a line did."""

    order_line_id: str
    applied: bool
    type: FulfillmentType
    reserved_quantity: int = 0
    production_task_id: Optional[str] = None
    operational_status: Optional[OperationalStatus] = None
    message: str = ""


class BatchResult(BaseSchema):
    """Counts for a batch pass over order lines."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False
    errors: list[str] = Field(default_factory=list)

    def merge(self, other: "BatchResult") -> "BatchResult":
        return BatchResult(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            aborted=self.aborted or other.aborted,
            errors=self.errors + other.errors,
        )
