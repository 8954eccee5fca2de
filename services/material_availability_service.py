"""
Material availability service.

Answers "how much of this material is free to use", in aggregate or per
warehouse, and checks a recipe against current availability.
"""

from typing import Optional
from decimal import Decimal
import structlog

from repositories import FulfillmentRepository, get_repository
from models.product import Recipe
from models.material import MaterialAvailability, WarehouseAvailability
from models.fulfillment import MissingMaterial
from exceptions import MaterialDefinitionNotFoundError

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class MaterialAvailabilityService:
    """
    Material availability over material lots.

    Availability is the sum of remaining quantity over a definition's lots.
    An unknown definition simply has no lots, so it reports 0.
    """

    def __init__(self, repository: Optional[FulfillmentRepository] = None):
        self.repository = repository or get_repository()

    # ===================
    # QUANTITIES
    # ===================

    def available(self, definition_id: str, warehouse_id: Optional[str] = None) -> Decimal:
        """
        Quantity of a material free to use.

        Args:
            definition_id: Material definition UUID
            warehouse_id: Restrict to one warehouse (all warehouses if None)

        Returns:
            Remaining quantity summed over lots, never negative
        """
        lots = self.repository.list_lots(
            definition_id=definition_id,
            warehouse_id=warehouse_id,
            only_available=True,
        )
        total = sum((lot.remaining_quantity for lot in lots), ZERO)
        return max(total, ZERO)

    def available_by_warehouse(self, definition_id: str) -> dict[str, Decimal]:
        """Remaining quantity per warehouse id."""
        totals: dict[str, Decimal] = {}
        for lot in self.repository.list_lots(definition_id=definition_id, only_available=True):
            totals[lot.warehouse_id] = totals.get(lot.warehouse_id, ZERO) + lot.remaining_quantity
        return totals

    def find_shortages(self, recipe: Recipe, quantity: int) -> list[MissingMaterial]:
        """
        Materials of a recipe that cannot cover `quantity` units.

        Sufficiency is judged against the total over all warehouses.
        """
        missing = []
        for item in recipe.materials:
            required = item.quantity_required * quantity
            have = self.available(item.material_definition_id)
            if have < required:
                definition = self.repository.get_material_definition(item.material_definition_id)
                missing.append(MissingMaterial(
                    material_definition_id=item.material_definition_id,
                    name=definition.name if definition else item.material_definition_id,
                    required=required,
                    available=have,
                    shortage=required - have,
                ))

        if missing:
            logger.info(
                "recipe_materials_short",
                recipe_id=recipe.id,
                quantity=quantity,
                missing_count=len(missing)
            )
        return missing

    # ===================
    # SUMMARY VIEWS
    # ===================

    def get_availability(self, definition_id: str) -> MaterialAvailability:
        """
        Availability summary for one material definition.

        Raises:
            MaterialDefinitionNotFoundError: If the definition doesn't exist
        """
        definition = self.repository.get_material_definition(definition_id)
        if definition is None:
            raise MaterialDefinitionNotFoundError(definition_id)

        lots = self.repository.list_lots(definition_id=definition_id, only_available=True)
        warehouses = {w.id: w for w in self.repository.list_warehouses()}

        total = sum((lot.remaining_quantity for lot in lots), ZERO)
        total_cost = sum((lot.remaining_quantity * lot.cost_per_unit for lot in lots), ZERO)
        avg_cost = (total_cost / total).quantize(Decimal("0.01")) if total > 0 else ZERO

        per_warehouse: dict[str, Decimal] = {}
        for lot in lots:
            per_warehouse[lot.warehouse_id] = per_warehouse.get(lot.warehouse_id, ZERO) + lot.remaining_quantity

        breakdown = []
        for warehouse_id, quantity in per_warehouse.items():
            warehouse = warehouses.get(warehouse_id)
            if warehouse is None:
                continue
            breakdown.append(WarehouseAvailability(
                warehouse_id=warehouse_id,
                warehouse_name=warehouse.name,
                warehouse_type=warehouse.type,
                quantity=quantity,
            ))
        breakdown.sort(key=lambda w: warehouses[w.warehouse_id].priority)

        return MaterialAvailability(
            material_definition_id=definition.id,
            material_name=definition.name,
            unit=definition.unit,
            total_quantity=total,
            lot_count=len(lots),
            avg_cost_per_unit=avg_cost,
            warehouses=breakdown,
        )

    def list_availability(self) -> list[MaterialAvailability]:
        """Availability summary for every material definition."""
        summaries = [
            self.get_availability(definition.id)
            for definition in self.repository.list_material_definitions()
        ]
        logger.info("material_availability_listed", count=len(summaries))
        return summaries


# Singleton instance
_availability_service: Optional[MaterialAvailabilityService] = None


def get_material_availability_service() -> MaterialAvailabilityService:
    """Get or create material availability service instance."""
    global _availability_service
    if _availability_service is None:
        _availability_service = MaterialAvailabilityService()
    return _availability_service
