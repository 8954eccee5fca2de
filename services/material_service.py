"""
Material service.

Material definitions and warehouses, receiving lots, manual corrections
and the movement ledger. A lot's remaining quantity only changes through
a movement.
"""

from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.material import (
    DEFAULT_WAREHOUSE_PRIORITY,
    LotAdjustment,
    MaterialDefinition,
    MaterialDefinitionCreate,
    MaterialDefinitionUpdate,
    MaterialLot,
    MaterialLotCreate,
    MaterialMovement,
    MaterialMovementCreate,
    MovementReason,
    Warehouse,
    WarehouseCreate,
)
from exceptions import (
    ConflictError,
    InvalidQuantityError,
    MaterialDefinitionNotFoundError,
    MaterialLotNotFoundError,
    ValidationError,
    WarehouseNotFoundError,
)

logger = structlog.get_logger(__name__)


class MaterialService:
    """Material catalog, warehouses, lots and their ledger."""

    def __init__(self, repository: Optional[FulfillmentRepository] = None):
        self.repository = repository or get_repository()

    # ===================
    # READ OPERATIONS
    # ===================

    def list_definitions(self) -> list[MaterialDefinition]:
        return self.repository.list_material_definitions()

    def list_warehouses(self) -> list[Warehouse]:
        return sorted(self.repository.list_warehouses(), key=lambda w: w.priority)

    def list_lots(
        self,
        definition_id: Optional[str] = None,
        warehouse_id: Optional[str] = None,
        only_available: bool = False,
    ) -> list[MaterialLot]:
        return self.repository.list_lots(
            definition_id=definition_id,
            warehouse_id=warehouse_id,
            only_available=only_available,
        )

    def get_lot(self, lot_id: str) -> MaterialLot:
        """
        Raises:
            MaterialLotNotFoundError: If the lot doesn't exist
        """
        lot = self.repository.get_lot(lot_id)
        if lot is None:
            raise MaterialLotNotFoundError(lot_id)
        return lot

    def list_movements(
        self,
        lot_id: Optional[str] = None,
        production_task_id: Optional[str] = None,
    ) -> list[MaterialMovement]:
        if lot_id:
            self.get_lot(lot_id)
        return self.repository.list_movements(lot_id=lot_id, production_task_id=production_task_id)

    # ===================
    # WRITE OPERATIONS
    # ===================

    def receive_lot(self, data: MaterialLotCreate) -> MaterialLot:
        """
        Receive a new lot; writes its RECEIPT movement.

        Raises:
            MaterialDefinitionNotFoundError: If the definition doesn't exist
            WarehouseNotFoundError: If the warehouse doesn't exist
        """
        if self.repository.get_material_definition(data.material_definition_id) is None:
            raise MaterialDefinitionNotFoundError(data.material_definition_id)
        if self.repository.get_warehouse(data.warehouse_id) is None:
            raise WarehouseNotFoundError(data.warehouse_id)

        lot = self.repository.create_lot(data)

        logger.info(
            "material_lot_received",
            lot_id=lot.id,
            definition_id=lot.material_definition_id,
            warehouse_id=lot.warehouse_id,
            quantity=str(lot.received_quantity),
            cost_per_unit=str(lot.cost_per_unit)
        )
        return lot

    def adjust_lot(self, lot_id: str, data: LotAdjustment) -> MaterialMovement:
        """
        Operator correction of a lot, written as a signed movement.

        Raises:
            InvalidQuantityError: If the change is zero
            ValidationError: If the reason is reserved for system movements
            MaterialLotNotFoundError: If the lot doesn't exist
            ConflictError: If the lot would go negative
        """
        if data.quantity_change == 0:
            raise InvalidQuantityError(data.quantity_change, field="quantity_change")
        if data.reason in (MovementReason.RECEIPT, MovementReason.PRODUCTION):
            raise ValidationError(
                f"Reason '{data.reason.value}' cannot be used for manual adjustments",
                details={"reason": data.reason.value},
            )

        lot = self.get_lot(lot_id)
        movement = self.repository.apply_lot_movement(MaterialMovementCreate(
            material_lot_id=lot_id,
            quantity_change=data.quantity_change,
            reason=data.reason,
            notes=data.notes,
        ))
        if movement is None:
            logger.warning(
                "lot_adjustment_rejected",
                lot_id=lot_id,
                change=str(data.quantity_change),
                remaining=str(lot.remaining_quantity)
            )
            raise ConflictError(
                "Adjustment would make the lot quantity negative",
                code="LOT_QUANTITY_NEGATIVE",
                details={
                    "lot_id": lot_id,
                    "remaining_quantity": str(lot.remaining_quantity),
                    "quantity_change": str(data.quantity_change),
                },
            )

        logger.info(
            "material_lot_adjusted",
            lot_id=lot_id,
            change=str(data.quantity_change),
            reason=data.reason.value
        )
        return movement

    # ===================
    # DEFINITIONS AND WAREHOUSES
    # ===================

    def get_definition(self, definition_id: str) -> MaterialDefinition:
        """
        Raises:
            MaterialDefinitionNotFoundError: If the definition doesn't exist
        """
        definition = self.repository.get_material_definition(definition_id)
        if definition is None:
            raise MaterialDefinitionNotFoundError(definition_id)
        return definition

    def create_definition(self, data: MaterialDefinitionCreate) -> MaterialDefinition:
        """
        Create a material definition.

        A definition with the same name, size, color and material type is
        reused instead of duplicated.
        """
        key = (data.name.strip().lower(), data.size, data.color, data.material_type)
        for existing in self.repository.list_material_definitions():
            if (existing.name.strip().lower(), existing.size, existing.color, existing.material_type) == key:
                logger.info("material_definition_reused", definition_id=existing.id, name=existing.name)
                return existing

        definition = self.repository.create_material_definition(data)
        logger.info("material_definition_created", definition_id=definition.id, name=definition.name)
        return definition

    def update_definition(self, definition_id: str, data: MaterialDefinitionUpdate) -> MaterialDefinition:
        """
        Raises:
            MaterialDefinitionNotFoundError: If the definition doesn't exist
            ValidationError: If no field is set
        """
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields to update", details={"definition_id": definition_id})
        self.get_definition(definition_id)

        updated = self.repository.update_material_definition(definition_id, fields)
        if updated is None:
            raise MaterialDefinitionNotFoundError(definition_id)

        logger.info("material_definition_updated", definition_id=definition_id, fields=sorted(fields))
        return updated

    def delete_definition(self, definition_id: str) -> None:
        """
        Hard delete a definition nothing depends on.

        Raises:
            MaterialDefinitionNotFoundError: If the definition doesn't exist
            ConflictError: If a recipe uses it or a lot still holds stock
        """
        self.get_definition(definition_id)

        if self.repository.is_material_in_recipes(definition_id):
            raise ConflictError(
                "Material is used in a recipe",
                code="MATERIAL_IN_USE",
                details={"definition_id": definition_id},
            )
        if self.repository.list_lots(definition_id=definition_id, only_available=True):
            raise ConflictError(
                "Material still has stock in lots",
                code="MATERIAL_HAS_STOCK",
                details={"definition_id": definition_id},
            )

        if not self.repository.delete_material_definition(definition_id):
            raise MaterialDefinitionNotFoundError(definition_id)
        logger.info("material_definition_deleted", definition_id=definition_id)

    def create_warehouse(self, data: WarehouseCreate) -> Warehouse:
        """Register a warehouse; priority defaults by type (HOME before PRODUCTION_CENTER)."""
        priority = data.priority if data.priority is not None else DEFAULT_WAREHOUSE_PRIORITY[data.type]
        warehouse = self.repository.create_warehouse(data, priority)
        logger.info(
            "warehouse_created",
            warehouse_id=warehouse.id,
            type=warehouse.type.value,
            priority=warehouse.priority
        )
        return warehouse


# Singleton instance
_material_service: Optional[MaterialService] = None


def get_material_service() -> MaterialService:
    """Get or create material service instance."""
    global _material_service
    if _material_service is None:
        _material_service = MaterialService()
    return _material_service
