"""
In-memory repository.

Single-process store used by tests and local demos. Every method runs
under one re-entrant lock, so each guarded write is atomic with respect
to every other call on the same instance.
"""

import threading
import uuid
from decimal import Decimal
from typing import Any, Optional

import structlog

from models.base import utc_now
from models.product import Product, Recipe, RecipeCreate, RecipeUpdate
from models.material import (
    MaterialDefinition,
    MaterialDefinitionCreate,
    MaterialLot,
    MaterialLotCreate,
    MaterialMovement,
    MaterialMovementCreate,
    MovementReason,
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
from repositories.base import FulfillmentRepository

logger = structlog.get_logger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryRepository(FulfillmentRepository):
    """Dict-backed store. Records are copied in and out."""

    def __init__(self):
        self._lock = threading.RLock()
        self.products: dict[str, Product] = {}
        self.recipes: dict[str, Recipe] = {}
        self.material_definitions: dict[str, MaterialDefinition] = {}
        self.warehouses: dict[str, Warehouse] = {}
        self.lots: dict[str, MaterialLot] = {}
        self.movements: list[MaterialMovement] = []
        self.inventory: dict[str, FinishedGoodsInventory] = {}
        self.orders: dict[str, Order] = {}
        self.order_lines: dict[str, OrderLine] = {}
        self.timeline: list[TimelineEvent] = []
        self.tasks: dict[str, ProductionTask] = {}
        self.replenishment_requests: list[ReplenishmentRequest] = []

    # ===================
    # SEEDING
    # ===================

    def add_product(self, product: Product) -> Product:
        with self._lock:
            self.products[product.id] = product.model_copy()
            return product

    def add_material_definition(self, definition: MaterialDefinition) -> MaterialDefinition:
        with self._lock:
            self.material_definitions[definition.id] = definition.model_copy()
            return definition

    def add_warehouse(self, warehouse: Warehouse) -> Warehouse:
        with self._lock:
            self.warehouses[warehouse.id] = warehouse.model_copy()
            return warehouse

    def add_lot(self, lot: MaterialLot) -> MaterialLot:
        """Seed a lot as-is (no receipt movement)."""
        with self._lock:
            self.lots[lot.id] = lot.model_copy()
            return lot

    def set_inventory(self, product_id: str, on_hand: int, reserved: int = 0) -> FinishedGoodsInventory:
        with self._lock:
            row = FinishedGoodsInventory(product_id=product_id, on_hand=on_hand, reserved=reserved)
            self.inventory[product_id] = row
            return row.model_copy()

    # ===================
    # CATALOG
    # ===================

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            product = self.products.get(product_id)
            return product.model_copy() if product else None

    def get_products_by_sku(self, skus: list[str]) -> dict[str, Product]:
        wanted = set(skus)
        with self._lock:
            return {
                p.sku: p.model_copy()
                for p in self.products.values()
                if p.sku in wanted
            }

    def get_active_recipe(self, product_id: str) -> Optional[Recipe]:
        with self._lock:
            for recipe in self.recipes.values():
                if recipe.product_id == product_id and recipe.is_active:
                    return recipe.model_copy(deep=True)
            return None

    def create_recipe(self, data: RecipeCreate) -> Recipe:
        with self._lock:
            for recipe in self.recipes.values():
                if recipe.product_id == data.product_id and recipe.is_active:
                    recipe.is_active = False
                    recipe.updated_at = utc_now()

            recipe = Recipe(
                id=_new_id(),
                product_id=data.product_id,
                name=data.name,
                is_active=True,
                materials=[m.model_copy() for m in data.materials],
                created_at=utc_now(),
            )
            self.recipes[recipe.id] = recipe
            return recipe.model_copy(deep=True)

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        with self._lock:
            recipe = self.recipes.get(recipe_id)
            return recipe.model_copy(deep=True) if recipe else None

    def update_recipe(self, recipe_id: str, data: RecipeUpdate) -> Optional[Recipe]:
        with self._lock:
            recipe = self.recipes.get(recipe_id)
            if recipe is None:
                return None
            if data.name is not None:
                recipe.name = data.name
            recipe.materials = [m.model_copy() for m in data.materials]
            recipe.updated_at = utc_now()
            return recipe.model_copy(deep=True)

    def deactivate_recipe(self, recipe_id: str) -> Optional[Recipe]:
        with self._lock:
            recipe = self.recipes.get(recipe_id)
            if recipe is None:
                return None
            recipe.is_active = False
            recipe.updated_at = utc_now()
            return recipe.model_copy(deep=True)

    def get_material_definition(self, definition_id: str) -> Optional[MaterialDefinition]:
        with self._lock:
            definition = self.material_definitions.get(definition_id)
            return definition.model_copy() if definition else None

    def list_material_definitions(self) -> list[MaterialDefinition]:
        with self._lock:
            return sorted(
                (d.model_copy() for d in self.material_definitions.values()),
                key=lambda d: d.name,
            )

    def create_material_definition(self, data: MaterialDefinitionCreate) -> MaterialDefinition:
        with self._lock:
            definition = MaterialDefinition(id=_new_id(), created_at=utc_now(), **data.model_dump())
            self.material_definitions[definition.id] = definition
            return definition.model_copy()

    def update_material_definition(self, definition_id: str, fields: dict[str, Any]) -> Optional[MaterialDefinition]:
        with self._lock:
            definition = self.material_definitions.get(definition_id)
            if definition is None:
                return None
            for field, value in fields.items():
                setattr(definition, field, value)
            definition.updated_at = utc_now()
            return definition.model_copy()

    def delete_material_definition(self, definition_id: str) -> bool:
        with self._lock:
            return self.material_definitions.pop(definition_id, None) is not None

    def is_material_in_recipes(self, definition_id: str) -> bool:
        with self._lock:
            return any(
                m.material_definition_id == definition_id
                for recipe in self.recipes.values()
                for m in recipe.materials
            )

    # ===================
    # WAREHOUSES AND LOTS
    # ===================

    def list_warehouses(self) -> list[Warehouse]:
        with self._lock:
            return [w.model_copy() for w in self.warehouses.values()]

    def get_warehouse(self, warehouse_id: str) -> Optional[Warehouse]:
        with self._lock:
            warehouse = self.warehouses.get(warehouse_id)
            return warehouse.model_copy() if warehouse else None

    def create_warehouse(self, data: WarehouseCreate, priority: int) -> Warehouse:
        with self._lock:
            warehouse = Warehouse(id=_new_id(), name=data.name, type=data.type, priority=priority)
            self.warehouses[warehouse.id] = warehouse
            return warehouse.model_copy()

    def list_lots(
        self,
        definition_id: Optional[str] = None,
        warehouse_id: Optional[str] = None,
        only_available: bool = False,
    ) -> list[MaterialLot]:
        with self._lock:
            lots = []
            for lot in self.lots.values():
                if definition_id and lot.material_definition_id != definition_id:
                    continue
                if warehouse_id and lot.warehouse_id != warehouse_id:
                    continue
                if only_available and lot.remaining_quantity <= 0:
                    continue
                lots.append(lot.model_copy())
            return sorted(lots, key=lambda lot: (lot.received_at, lot.id))

    def get_lot(self, lot_id: str) -> Optional[MaterialLot]:
        with self._lock:
            lot = self.lots.get(lot_id)
            return lot.model_copy() if lot else None

    def create_lot(self, data: MaterialLotCreate) -> MaterialLot:
        with self._lock:
            now = utc_now()
            lot = MaterialLot(
                id=_new_id(),
                material_definition_id=data.material_definition_id,
                warehouse_id=data.warehouse_id,
                received_quantity=data.quantity,
                remaining_quantity=data.quantity,
                cost_per_unit=data.cost_per_unit,
                supplier_name=data.supplier_name,
                received_at=data.received_at or now,
                created_at=now,
            )
            self.lots[lot.id] = lot
            self.movements.append(MaterialMovement(
                id=_new_id(),
                material_lot_id=lot.id,
                quantity_change=data.quantity,
                reason=MovementReason.RECEIPT,
                created_at=now,
            ))
            return lot.model_copy()

    def _apply_movement_locked(self, movement: MaterialMovementCreate) -> Optional[MaterialMovement]:
        lot = self.lots.get(movement.material_lot_id)
        if lot is None:
            return None
        new_remaining = lot.remaining_quantity + movement.quantity_change
        if new_remaining < 0:
            return None
        lot.remaining_quantity = new_remaining
        lot.updated_at = utc_now()
        entry = MaterialMovement(
            id=_new_id(),
            material_lot_id=movement.material_lot_id,
            quantity_change=movement.quantity_change,
            reason=movement.reason,
            production_task_id=movement.production_task_id,
            notes=movement.notes,
            created_at=utc_now(),
        )
        self.movements.append(entry)
        return entry

    def apply_lot_movement(self, movement: MaterialMovementCreate) -> Optional[MaterialMovement]:
        with self._lock:
            entry = self._apply_movement_locked(movement)
            return entry.model_copy() if entry else None

    def list_movements(
        self,
        lot_id: Optional[str] = None,
        production_task_id: Optional[str] = None,
    ) -> list[MaterialMovement]:
        with self._lock:
            return [
                m.model_copy()
                for m in self.movements
                if (lot_id is None or m.material_lot_id == lot_id)
                and (production_task_id is None or m.production_task_id == production_task_id)
            ]

    # ===================
    # FINISHED GOODS
    # ===================

    def get_inventory(self, product_id: str) -> Optional[FinishedGoodsInventory]:
        with self._lock:
            row = self.inventory.get(product_id)
            return row.model_copy() if row else None

    def _replace_inventory(self, product_id: str, on_hand: int, reserved: int) -> FinishedGoodsInventory:
        row = FinishedGoodsInventory(
            product_id=product_id,
            on_hand=on_hand,
            reserved=reserved,
            updated_at=utc_now(),
        )
        self.inventory[product_id] = row
        return row

    def create_inventory(self, product_id: str, on_hand: int) -> Optional[FinishedGoodsInventory]:
        with self._lock:
            if product_id in self.inventory:
                return None
            return self._replace_inventory(product_id, on_hand, 0).model_copy()

    def reserve_stock(self, product_id: str, quantity: int) -> bool:
        with self._lock:
            row = self.inventory.get(product_id)
            if row is None or row.on_hand - row.reserved < quantity:
                return False
            self._replace_inventory(product_id, row.on_hand, row.reserved + quantity)
            return True

    def reserve_for_line(self, line_id: str, quantity: int) -> bool:
        with self._lock:
            line = self.order_lines.get(line_id)
            if line is None or line.fulfillment_status in (
                FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED
            ):
                return False
            if line.reserved_quantity + quantity > line.quantity:
                return False
            if not self.reserve_stock(line.product_id, quantity):
                return False
            line.reserved_quantity += quantity
            line.updated_at = utc_now()
            return True

    def release_reservation(self, product_id: str, quantity: int) -> bool:
        with self._lock:
            row = self.inventory.get(product_id)
            if row is None or row.reserved < quantity:
                return False
            self._replace_inventory(product_id, row.on_hand, row.reserved - quantity)
            return True

    def adjust_on_hand(self, product_id: str, delta: int) -> Optional[FinishedGoodsInventory]:
        with self._lock:
            row = self.inventory.get(product_id)
            on_hand = row.on_hand if row else 0
            reserved = row.reserved if row else 0
            if on_hand + delta < reserved:
                return None
            return self._replace_inventory(product_id, on_hand + delta, reserved).model_copy()

    # ===================
    # ORDERS
    # ===================

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self.orders.get(order_id)
            return order.model_copy() if order else None

    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        with self._lock:
            for order in self.orders.values():
                if order.external_id == external_id:
                    return order.model_copy()
            return None

    def list_orders(self, flow_statuses: Optional[list[OrderFlowStatus]] = None) -> list[Order]:
        with self._lock:
            orders = [
                o.model_copy()
                for o in self.orders.values()
                if flow_statuses is None or o.flow_status in flow_statuses
            ]
            return sorted(orders, key=lambda o: (o.created_at or utc_now(), o.id))

    def upsert_order(self, data: OrderUpsert) -> Order:
        with self._lock:
            now = utc_now()
            for order in self.orders.values():
                if order.external_id == data.external_id:
                    for field, value in data.model_dump().items():
                        setattr(order, field, value)
                    order.updated_at = now
                    return order.model_copy()

            order = Order(id=_new_id(), created_at=now, **data.model_dump())
            self.orders[order.id] = order
            return order.model_copy()

    def update_order_flow_status(
        self,
        order_id: str,
        expected: OrderFlowStatus,
        new: OrderFlowStatus,
        operational: OperationalStatus,
    ) -> bool:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.flow_status != expected:
                return False
            order.flow_status = new
            order.operational_status = operational
            order.updated_at = utc_now()
            return True

    def get_order_line(self, line_id: str) -> Optional[OrderLine]:
        with self._lock:
            line = self.order_lines.get(line_id)
            return line.model_copy() if line else None

    def list_order_lines(self, order_id: str) -> list[OrderLine]:
        with self._lock:
            lines = [l.model_copy() for l in self.order_lines.values() if l.order_id == order_id]
            return sorted(lines, key=lambda l: (l.created_at or utc_now(), l.id))

    def find_order_line(self, order_id: str, product_id: str) -> Optional[OrderLine]:
        with self._lock:
            for line in self.order_lines.values():
                if line.order_id == order_id and line.product_id == product_id:
                    return line.model_copy()
            return None

    def create_order_line(self, order_id: str, data: OrderLineCreate) -> OrderLine:
        with self._lock:
            line = OrderLine(
                id=_new_id(),
                order_id=order_id,
                created_at=utc_now(),
                **data.model_dump(),
            )
            self.order_lines[line.id] = line
            return line.model_copy()

    def update_order_line(self, line_id: str, fields: dict[str, Any]) -> Optional[OrderLine]:
        with self._lock:
            line = self.order_lines.get(line_id)
            if line is None:
                return None
            for field, value in fields.items():
                setattr(line, field, value)
            line.updated_at = utc_now()
            return line.model_copy()

    def decide_order_line(
        self,
        line_id: str,
        fulfillment_type: FulfillmentType,
        fulfillment_status: FulfillmentStatus,
        notes: Optional[str],
        reserved_quantity: int = 0,
    ) -> bool:
        with self._lock:
            line = self.order_lines.get(line_id)
            if line is None or line.fulfillment_type != FulfillmentType.PENDING:
                return False
            now = utc_now()
            line.fulfillment_type = fulfillment_type
            line.fulfillment_status = fulfillment_status
            line.fulfillment_notes = notes
            line.fulfillment_decided_at = now
            line.reserved_quantity = reserved_quantity
            line.updated_at = now
            return True

    def ship_order(self, order_id: str, expected: OrderFlowStatus) -> bool:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.flow_status != expected:
                return False
            lines = [
                line for line in self.order_lines.values()
                if line.order_id == order_id
                and line.fulfillment_type != FulfillmentType.EXTERNAL
                and line.fulfillment_status not in (FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED)
            ]

            # Check every line before writing any of them
            totals: dict[str, int] = {}
            for line in lines:
                if line.reserved_quantity < line.quantity:
                    return False
                totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
            for product_id, quantity in totals.items():
                row = self.inventory.get(product_id)
                if row is None or row.reserved < quantity or row.on_hand < quantity:
                    return False

            for product_id, quantity in totals.items():
                row = self.inventory[product_id]
                self._replace_inventory(product_id, row.on_hand - quantity, row.reserved - quantity)
            now = utc_now()
            for line in lines:
                line.reserved_quantity = 0
                line.fulfillment_status = FulfillmentStatus.SHIPPED
                line.updated_at = now
            order.flow_status = OrderFlowStatus.SHIPPED
            order.operational_status = OperationalStatus.SHIPPED
            order.updated_at = now
            return True

    # ===================
    # TIMELINE
    # ===================

    def append_timeline_event(
        self,
        order_id: str,
        status: OrderFlowStatus,
        previous_status: Optional[OrderFlowStatus],
        reason: str,
    ) -> TimelineEvent:
        with self._lock:
            event = TimelineEvent(
                id=_new_id(),
                order_id=order_id,
                status=status,
                previous_status=previous_status,
                reason=reason,
                created_at=utc_now(),
            )
            self.timeline.append(event)
            return event.model_copy()

    def list_timeline(self, order_id: str) -> list[TimelineEvent]:
        with self._lock:
            return [e.model_copy() for e in self.timeline if e.order_id == order_id]

    # ===================
    # PRODUCTION
    # ===================

    def create_production_task(self, data: ProductionTaskCreate) -> ProductionTask:
        with self._lock:
            task = ProductionTask(
                id=_new_id(),
                status=TaskStatus.PENDING,
                created_at=utc_now(),
                **data.model_dump(),
            )
            self.tasks[task.id] = task
            return task.model_copy(deep=True)

    def get_production_task(self, task_id: str) -> Optional[ProductionTask]:
        with self._lock:
            task = self.tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def get_task_for_line(self, line_id: str) -> Optional[ProductionTask]:
        with self._lock:
            for task in self.tasks.values():
                if task.order_line_id == line_id:
                    return task.model_copy(deep=True)
            return None

    def list_production_tasks(self, statuses: Optional[list[TaskStatus]] = None) -> list[ProductionTask]:
        with self._lock:
            return [
                t.model_copy(deep=True)
                for t in self.tasks.values()
                if statuses is None or t.status in statuses
            ]

    def start_production_task(
        self,
        task_id: str,
        movements: list[MaterialMovementCreate],
    ) -> Optional[list[MaterialMovement]]:
        with self._lock:
            task = self.tasks.get(task_id)
            if task is None or task.status != TaskStatus.PENDING:
                return None

            # Check every debit before writing any of them
            debits: dict[str, Decimal] = {}
            for movement in movements:
                debits[movement.material_lot_id] = (
                    debits.get(movement.material_lot_id, Decimal("0")) + movement.quantity_change
                )
            for lot_id, change in debits.items():
                lot = self.lots.get(lot_id)
                if lot is None or lot.remaining_quantity + change < 0:
                    logger.warning("lot_guard_failed", task_id=task_id, lot_id=lot_id)
                    return None

            written = [self._apply_movement_locked(m) for m in movements]
            now = utc_now()
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = now
            task.updated_at = now
            return [m.model_copy() for m in written]

    def complete_production_task(self, task_id: str) -> Optional[ProductionTask]:
        with self._lock:
            task = self.tasks.get(task_id)
            if task is None or task.status != TaskStatus.IN_PROGRESS:
                return None
            now = utc_now()
            row = self.inventory.get(task.product_id)
            on_hand = row.on_hand if row else 0
            reserved = row.reserved if row else 0

            line = self.order_lines.get(task.order_line_id) if task.order_line_id else None
            if line is not None and line.fulfillment_status not in (
                FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED
            ):
                to_reserve = min(max(line.quantity - line.reserved_quantity, 0), task.quantity)
                reserved += to_reserve
                line.reserved_quantity += to_reserve
                line.fulfillment_status = FulfillmentStatus.READY
                line.updated_at = now
            self._replace_inventory(task.product_id, on_hand + task.quantity, reserved)

            task.status = TaskStatus.COMPLETED
            task.completed_at = now
            task.updated_at = now
            return task.model_copy(deep=True)

    def delete_pending_task(self, task_id: str) -> bool:
        with self._lock:
            task = self.tasks.get(task_id)
            if task is None or task.status != TaskStatus.PENDING:
                return False
            del self.tasks[task_id]
            line = self.order_lines.get(task.order_line_id) if task.order_line_id else None
            if line is not None and line.production_task_id == task_id:
                line.production_task_id = None
                line.updated_at = utc_now()
            return True

    # ===================
    # REPLENISHMENT
    # ===================

    def create_replenishment_requests(
        self,
        requests: list[tuple[ReplenishmentRequestCreate, ReplenishmentPriority]],
    ) -> list[ReplenishmentRequest]:
        with self._lock:
            created = []
            for data, priority in requests:
                request = ReplenishmentRequest(
                    id=_new_id(),
                    material_definition_id=data.material_definition_id,
                    quantity_needed=data.quantity_needed,
                    priority=priority,
                    notes=data.notes,
                    requested_at=utc_now(),
                )
                self.replenishment_requests.append(request)
                created.append(request.model_copy())
            return created
