"""
Material deficit service.

Aggregates the material demand of every in-flight order and compares it
with current availability. Deficits are per material, not per order.
"""

import math
from typing import Optional
from decimal import Decimal
import structlog

from config import settings
from repositories import FulfillmentRepository, get_repository
from models.order import FulfillmentStatus, FulfillmentType, OrderFlowStatus, OrderLine
from models.production import TaskStatus
from models.deficit import (
    DeficitReport,
    MaterialDeficit,
    ReplenishmentItem,
    ReplenishmentPriority,
    ReplenishmentRequest,
    ReplenishmentRequestCreate,
)
from services.material_availability_service import MaterialAvailabilityService
from exceptions import MaterialDefinitionNotFoundError

logger = structlog.get_logger(__name__)

DEMAND_FLOW_STATUSES = [
    OrderFlowStatus.NEED_PRODUCTION,
    OrderFlowStatus.NEED_MATERIALS,
    OrderFlowStatus.IN_PRODUCTION,
]


def _priority_for(deficit: Decimal) -> ReplenishmentPriority:
    if deficit > settings.replenishment_high_priority_threshold:
        return ReplenishmentPriority.HIGH
    return ReplenishmentPriority.NORMAL


class DeficitService:
    """Material shortfall and replenishment reporting."""

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        availability: Optional[MaterialAvailabilityService] = None,
    ):
        self.repository = repository or get_repository()
        self.availability = availability or MaterialAvailabilityService(self.repository)

    def _production_started(self, line: OrderLine) -> bool:
        if line.fulfillment_status in (
            FulfillmentStatus.IN_PRODUCTION,
            FulfillmentStatus.SHIPPED,
            FulfillmentStatus.CANCELLED,
        ):
            return True
        task = self.repository.get_task_for_line(line.id)
        return task is not None and task.status != TaskStatus.PENDING

    def _product_demand(self) -> dict[str, int]:
        """Outstanding units per product that still need materials."""
        demand: dict[str, int] = {}
        for order in self.repository.list_orders(DEMAND_FLOW_STATUSES):
            for line in self.repository.list_order_lines(order.id):
                if line.fulfillment_type not in (
                    FulfillmentType.READY_STOCK,
                    FulfillmentType.PRODUCE_ON_DEMAND,
                ):
                    continue
                # Materials of started tasks are already consumed
                if self._production_started(line):
                    continue
                outstanding = line.quantity - line.reserved_quantity
                if outstanding > 0:
                    demand[line.product_id] = demand.get(line.product_id, 0) + outstanding
        return demand

    def get_material_deficits(self) -> DeficitReport:
        """
        Needed vs. available for every material in current demand.

        Every material with demand gets a record; deficit = max(0, needed - have).
        Products without an active recipe are listed separately.
        """
        needed: dict[str, Decimal] = {}
        without_recipe = []

        for product_id, units in self._product_demand().items():
            recipe = self.repository.get_active_recipe(product_id)
            if recipe is None or not recipe.materials:
                without_recipe.append(product_id)
                continue
            for item in recipe.materials:
                needed[item.material_definition_id] = (
                    needed.get(item.material_definition_id, Decimal("0"))
                    + item.quantity_required * units
                )

        deficits = []
        for definition_id, quantity in needed.items():
            definition = self.repository.get_material_definition(definition_id)
            have = self.availability.available(definition_id)
            deficits.append(MaterialDeficit(
                material_definition_id=definition_id,
                material_name=definition.name if definition else definition_id,
                unit=definition.unit if definition else "pcs",
                needed=quantity,
                have=have,
                deficit=max(quantity - have, Decimal("0")),
            ))
        deficits.sort(key=lambda d: (-d.deficit, d.material_name))

        logger.info(
            "material_deficits_calculated",
            materials=len(deficits),
            short=sum(1 for d in deficits if d.deficit > 0),
            products_without_recipe=len(without_recipe)
        )
        return DeficitReport(deficits=deficits, products_without_recipe=sorted(without_recipe))

    def get_replenishment_needs(self) -> list[ReplenishmentItem]:
        """What to buy: every positive deficit, rounded up to whole units."""
        items = []
        for deficit in self.get_material_deficits().deficits:
            if deficit.deficit <= 0:
                continue
            items.append(ReplenishmentItem(
                material_definition_id=deficit.material_definition_id,
                material_name=deficit.material_name,
                quantity_needed=Decimal(math.ceil(deficit.deficit)),
                unit=deficit.unit,
                priority=_priority_for(deficit.deficit),
            ))
        return items

    def create_replenishment_requests(
        self,
        requests: Optional[list[ReplenishmentRequestCreate]] = None,
    ) -> list[ReplenishmentRequest]:
        """
        Store purchase requests (status pending).

        With no explicit requests, one is created per current replenishment need.

        Raises:
            MaterialDefinitionNotFoundError: If a request names an unknown material
        """
        if requests is None:
            requests = [
                ReplenishmentRequestCreate(
                    material_definition_id=item.material_definition_id,
                    quantity_needed=item.quantity_needed,
                )
                for item in self.get_replenishment_needs()
            ]

        for request in requests:
            if self.repository.get_material_definition(request.material_definition_id) is None:
                raise MaterialDefinitionNotFoundError(request.material_definition_id)

        created = self.repository.create_replenishment_requests(
            [(request, _priority_for(request.quantity_needed)) for request in requests]
        )
        logger.info("replenishment_requests_created", count=len(created))
        return created


# Singleton instance
_deficit_service: Optional[DeficitService] = None


def get_deficit_service() -> DeficitService:
    """Get or create deficit service instance."""
    global _deficit_service
    if _deficit_service is None:
        _deficit_service = DeficitService()
    return _deficit_service
