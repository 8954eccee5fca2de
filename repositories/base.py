"""
Data access interface for the fulfillment core.

Services receive a FulfillmentRepository instance instead of reaching for
a global client, so the allocation and decision logic can run against the
in-memory store in tests and against Supabase in production.

Methods documented as GUARDED must be implemented as a single conditional
write (or one database transaction). They report a lost precondition by
returning False / None, never by writing partially.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from models.product import Product, Recipe, RecipeCreate, RecipeUpdate
from models.material import (
    MaterialDefinition,
    MaterialDefinitionCreate,
    MaterialLot,
    MaterialLotCreate,
    MaterialMovement,
    MaterialMovementCreate,
    Warehouse,
    WarehouseCreate,
)
from models.inventory import FinishedGoodsInventory
from models.order import (
    FulfillmentStatus,
    FulfillmentType,
    OperationalStatus,
    Order,
    OrderFlowStatus,
    OrderLine,
    OrderLineCreate,
    OrderUpsert,
    TimelineEvent,
)
from models.production import ProductionTask, ProductionTaskCreate, TaskStatus
from models.deficit import ReplenishmentPriority, ReplenishmentRequest, ReplenishmentRequestCreate


class FulfillmentRepository(ABC):
    """Typed records in, typed records out."""

    # ===================
    # CATALOG
    # ===================

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def get_products_by_sku(self, skus: list[str]) -> dict[str, Product]:
        """Map of sku -> product for the skus that exist."""

    @abstractmethod
    def get_active_recipe(self, product_id: str) -> Optional[Recipe]:
        ...

    @abstractmethod
    def create_recipe(self, data: RecipeCreate) -> Recipe:
        """Insert a new active recipe, deactivating the previous one in the same transaction."""

    @abstractmethod
    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        ...

    @abstractmethod
    def update_recipe(self, recipe_id: str, data: RecipeUpdate) -> Optional[Recipe]:
        """Rename and replace the materials of a recipe in one transaction."""

    @abstractmethod
    def deactivate_recipe(self, recipe_id: str) -> Optional[Recipe]:
        ...

    @abstractmethod
    def get_material_definition(self, definition_id: str) -> Optional[MaterialDefinition]:
        ...

    @abstractmethod
    def list_material_definitions(self) -> list[MaterialDefinition]:
        ...

    @abstractmethod
    def create_material_definition(self, data: MaterialDefinitionCreate) -> MaterialDefinition:
        ...

    @abstractmethod
    def update_material_definition(self, definition_id: str, fields: dict[str, Any]) -> Optional[MaterialDefinition]:
        ...

    @abstractmethod
    def delete_material_definition(self, definition_id: str) -> bool:
        """Hard delete. False if the definition is missing."""

    @abstractmethod
    def is_material_in_recipes(self, definition_id: str) -> bool:
        """Whether any recipe, active or not, lists the material."""

    # ===================
    # WAREHOUSES AND LOTS
    # ===================

    @abstractmethod
    def list_warehouses(self) -> list[Warehouse]:
        ...

    @abstractmethod
    def get_warehouse(self, warehouse_id: str) -> Optional[Warehouse]:
        ...

    @abstractmethod
    def create_warehouse(self, data: WarehouseCreate, priority: int) -> Warehouse:
        ...

    @abstractmethod
    def list_lots(
        self,
        definition_id: Optional[str] = None,
        warehouse_id: Optional[str] = None,
        only_available: bool = False,
    ) -> list[MaterialLot]:
        ...

    @abstractmethod
    def get_lot(self, lot_id: str) -> Optional[MaterialLot]:
        ...

    @abstractmethod
    def create_lot(self, data: MaterialLotCreate) -> MaterialLot:
        """Insert a lot and its RECEIPT movement together."""

    @abstractmethod
    def apply_lot_movement(self, movement: MaterialMovementCreate) -> Optional[MaterialMovement]:
        """
        GUARDED. Append a movement and update the lot's remaining quantity.

        Returns None if the lot is missing or the change would drive it negative.
        """

    @abstractmethod
    def list_movements(
        self,
        lot_id: Optional[str] = None,
        production_task_id: Optional[str] = None,
    ) -> list[MaterialMovement]:
        ...

    # ===================
    # FINISHED GOODS
    # ===================

    @abstractmethod
    def get_inventory(self, product_id: str) -> Optional[FinishedGoodsInventory]:
        ...

    @abstractmethod
    def create_inventory(self, product_id: str, on_hand: int) -> Optional[FinishedGoodsInventory]:
        """Insert a stock row. None if the product already has one."""

    @abstractmethod
    def reserve_stock(self, product_id: str, quantity: int) -> bool:
        """GUARDED. reserved += quantity WHERE on_hand - reserved >= quantity."""

    @abstractmethod
    def reserve_for_line(self, line_id: str, quantity: int) -> bool:
        """
        GUARDED, one transaction. Reserve free stock of the line's product
        and add it to the line's reserved_quantity.

        Fails if the line is shipped or cancelled, if it would end up
        reserving more than its quantity, or if free stock is short.
        """

    @abstractmethod
    def release_reservation(self, product_id: str, quantity: int) -> bool:
        """GUARDED. reserved -= quantity WHERE reserved >= quantity."""

    @abstractmethod
    def adjust_on_hand(self, product_id: str, delta: int) -> Optional[FinishedGoodsInventory]:
        """GUARDED. on_hand += delta WHERE on_hand + delta >= reserved. Creates the row if missing."""

    # ===================
    # ORDERS
    # ===================

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def list_orders(self, flow_statuses: Optional[list[OrderFlowStatus]] = None) -> list[Order]:
        ...

    @abstractmethod
    def upsert_order(self, data: OrderUpsert) -> Order:
        """Insert or update by external_id. Never touches flow status."""

    @abstractmethod
    def update_order_flow_status(
        self,
        order_id: str,
        expected: OrderFlowStatus,
        new: OrderFlowStatus,
        operational: OperationalStatus,
    ) -> bool:
        """GUARDED. Compare-and-set on flow_status."""

    @abstractmethod
    def get_order_line(self, line_id: str) -> Optional[OrderLine]:
        ...

    @abstractmethod
    def list_order_lines(self, order_id: str) -> list[OrderLine]:
        ...

    @abstractmethod
    def find_order_line(self, order_id: str, product_id: str) -> Optional[OrderLine]:
        ...

    @abstractmethod
    def create_order_line(self, order_id: str, data: OrderLineCreate) -> OrderLine:
        ...

    @abstractmethod
    def update_order_line(self, line_id: str, fields: dict[str, Any]) -> Optional[OrderLine]:
        """Plain update of non-guarded columns (status, notes, links)."""

    @abstractmethod
    def decide_order_line(
        self,
        line_id: str,
        fulfillment_type: FulfillmentType,
        fulfillment_status: FulfillmentStatus,
        notes: Optional[str],
        reserved_quantity: int = 0,
    ) -> bool:
        """GUARDED. Compare-and-set WHERE fulfillment_type = PENDING."""

    @abstractmethod
    def ship_order(self, order_id: str, expected: OrderFlowStatus) -> bool:
        """
        GUARDED, one transaction. Ship every open non-EXTERNAL line of the
        order from its reservation and move the order to SHIPPED.

        Every such line must be fully reserved and the order must still be
        in `expected`; otherwise nothing is written and False is returned.
        """

    # ===================
    # TIMELINE
    # ===================

    @abstractmethod
    def append_timeline_event(
        self,
        order_id: str,
        status: OrderFlowStatus,
        previous_status: Optional[OrderFlowStatus],
        reason: str,
    ) -> TimelineEvent:
        ...

    @abstractmethod
    def list_timeline(self, order_id: str) -> list[TimelineEvent]:
        """Oldest first."""

    # ===================
    # PRODUCTION
    # ===================

    @abstractmethod
    def create_production_task(self, data: ProductionTaskCreate) -> ProductionTask:
        ...

    @abstractmethod
    def get_production_task(self, task_id: str) -> Optional[ProductionTask]:
        ...

    @abstractmethod
    def get_task_for_line(self, line_id: str) -> Optional[ProductionTask]:
        ...

    @abstractmethod
    def list_production_tasks(self, statuses: Optional[list[TaskStatus]] = None) -> list[ProductionTask]:
        ...

    @abstractmethod
    def start_production_task(
        self,
        task_id: str,
        movements: list[MaterialMovementCreate],
    ) -> Optional[list[MaterialMovement]]:
        """
        GUARDED, one transaction. Move the task pending -> in_progress and
        apply every lot debit, or do nothing and return None.
        """

    @abstractmethod
    def complete_production_task(self, task_id: str) -> Optional[ProductionTask]:
        """
        GUARDED, one transaction. Move the task in_progress -> completed and
        add its quantity to finished goods on hand, or return None.

        If the task belongs to an open order line, the produced units that
        line still lacks are reserved for it and the line is marked ready,
        in the same transaction.
        """

    @abstractmethod
    def delete_pending_task(self, task_id: str) -> bool:
        """
        GUARDED. Delete the task WHERE status = pending and clear the
        production_task_id of its order line.
        """

    # ===================
    # REPLENISHMENT
    # ===================

    @abstractmethod
    def create_replenishment_requests(
        self,
        requests: list[tuple[ReplenishmentRequestCreate, ReplenishmentPriority]],
    ) -> list[ReplenishmentRequest]:
        ...

