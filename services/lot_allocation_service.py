"""
Lot allocation service.

Plans which material lots a requirement draws from. Planning only: no
movements are written here.

Order of consumption:
    1. Warehouse priority ascending (home before production center)
    2. received_at ascending (FIFO within a warehouse)
    3. lot id ascending (deterministic tie-break)
"""

from typing import Optional
from decimal import Decimal
import structlog

from repositories import FulfillmentRepository, get_repository
from models.product import Recipe
from models.material import MaterialLot
from models.fulfillment import AllocationPlan, LotAllocation
from exceptions import InvalidQuantityError

logger = structlog.get_logger(__name__)

# Lots in a warehouse we don't know about are drawn last
UNKNOWN_WAREHOUSE_PRIORITY = 10**6


class LotAllocationService:
    """FIFO + warehouse-priority lot selection."""

    def __init__(self, repository: Optional[FulfillmentRepository] = None):
        self.repository = repository or get_repository()

    def _ordered_lots(self, definition_id: str) -> list[MaterialLot]:
        priorities = {w.id: w.priority for w in self.repository.list_warehouses()}
        lots = self.repository.list_lots(definition_id=definition_id, only_available=True)
        return sorted(
            lots,
            key=lambda lot: (
                priorities.get(lot.warehouse_id, UNKNOWN_WAREHOUSE_PRIORITY),
                lot.received_at,
                lot.id,
            )
        )

    def select_lots(self, definition_id: str, required_qty: Decimal) -> AllocationPlan:
        """
        Greedily draw `required_qty` from lots in consumption order.

        Args:
            definition_id: Material definition UUID
            required_qty: Quantity to cover (> 0)

        Returns:
            AllocationPlan; shortage is the part no lot could cover

        Raises:
            InvalidQuantityError: If required_qty <= 0
        """
        required = Decimal(str(required_qty))
        if required <= 0:
            raise InvalidQuantityError(required_qty, field="required_qty")

        remaining = required
        allocations = []
        for lot in self._ordered_lots(definition_id):
            if remaining <= 0:
                break
            take = min(lot.remaining_quantity, remaining)
            allocations.append(LotAllocation(
                lot_id=lot.id,
                warehouse_id=lot.warehouse_id,
                quantity=take,
                cost_per_unit=lot.cost_per_unit,
            ))
            remaining -= take

        plan = AllocationPlan(
            material_definition_id=definition_id,
            required=required,
            allocations=allocations,
            shortage=max(remaining, Decimal("0")),
        )

        logger.debug(
            "lots_selected",
            definition_id=definition_id,
            required=str(required),
            lots=len(allocations),
            shortage=str(plan.shortage)
        )
        return plan

    def plan_recipe(self, recipe: Recipe, quantity: int) -> list[AllocationPlan]:
        """One allocation plan per recipe material for `quantity` units."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        return [
            self.select_lots(item.material_definition_id, item.quantity_required * quantity)
            for item in recipe.materials
        ]


# Singleton instance
_lot_allocation_service: Optional[LotAllocationService] = None


def get_lot_allocation_service() -> LotAllocationService:
    """Get or create lot allocation service instance."""
    global _lot_allocation_service
    if _lot_allocation_service is None:
        _lot_allocation_service = LotAllocationService()
    return _lot_allocation_service
