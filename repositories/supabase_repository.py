"""
Supabase-backed repository.

Single-row compare-and-set writes use PostgREST filters on the update
(the row only changes if the filter still matches; an empty result means
the precondition was lost). Writes spanning several rows go through the
Postgres functions in migrations/001_fulfillment_functions.sql so they
commit or roll back together.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel

from config import get_supabase_client
from exceptions import DatabaseError
from models.product import Product, Recipe, RecipeCreate, RecipeMaterial, RecipeUpdate
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
from models.base import utc_now
from models.production import ProductionTask, ProductionTaskCreate, TaskStatus
from models.deficit import ReplenishmentPriority, ReplenishmentRequest, ReplenishmentRequestCreate
from repositories.base import FulfillmentRepository

logger = structlog.get_logger(__name__)


def _json(value: Any) -> Any:
    """Make Decimal/datetime/enum values JSON-safe for PostgREST."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class SupabaseRepository(FulfillmentRepository):
    """
    Repository over the Supabase tables.

    Tables:
        products, recipes, recipe_materials, material_definitions,
        warehouses, material_lots, material_movements,
        finished_goods_inventory, orders, order_lines, order_timeline,
        production_tasks, replenishment_requests
    """

    def __init__(self, client=None):
        self.db = client or get_supabase_client()

    def _rpc(self, function: str, params: dict) -> Any:
        try:
            result = self.db.rpc(function, params).execute()
            return result.data
        except Exception as e:
            logger.error("rpc_failed", function=function, error=str(e))
            raise DatabaseError("rpc", f"{function}: {e}")

    def _select_one(self, table: str, column: str, value: Any) -> Optional[dict]:
        try:
            result = (
                self.db.table(table)
                .select("*")
                .eq(column, value)
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error("select_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # CATALOG
    # ===================

    def get_product(self, product_id: str) -> Optional[Product]:
        row = self._select_one("products", "id", product_id)
        return Product(**row) if row else None

    def get_products_by_sku(self, skus: list[str]) -> dict[str, Product]:
        if not skus:
            return {}
        try:
            result = self.db.table("products").select("*").in_("sku", list(skus)).execute()
        except Exception as e:
            logger.error("get_products_by_sku_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return {row["sku"]: Product(**row) for row in result.data}

    def _recipe_from_row(self, row: dict) -> Recipe:
        materials = [
            RecipeMaterial(
                material_definition_id=m["material_definition_id"],
                quantity_required=m["quantity_required"],
            )
            for m in row.get("recipe_materials") or []
        ]
        fields = {k: v for k, v in row.items() if k != "recipe_materials"}
        return Recipe(materials=materials, **fields)

    def get_active_recipe(self, product_id: str) -> Optional[Recipe]:
        try:
            result = (
                self.db.table("recipes")
                .select("*, recipe_materials(material_definition_id, quantity_required)")
                .eq("product_id", product_id)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_active_recipe_failed", product_id=product_id, error=str(e))
            raise DatabaseError("select", str(e))
        if not result.data:
            return None
        return self._recipe_from_row(result.data[0])

    def create_recipe(self, data: RecipeCreate) -> Recipe:
        recipe_id = self._rpc("create_recipe", {
            "p_product_id": data.product_id,
            "p_name": data.name,
            "p_materials": _json(data.materials),
        })
        recipe = self.get_active_recipe(data.product_id)
        if recipe is None or recipe.id != recipe_id:
            raise DatabaseError("insert", f"Recipe {recipe_id} not readable after create")
        return recipe

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        try:
            result = (
                self.db.table("recipes")
                .select("*, recipe_materials(material_definition_id, quantity_required)")
                .eq("id", recipe_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_recipe_failed", recipe_id=recipe_id, error=str(e))
            raise DatabaseError("select", str(e))
        return self._recipe_from_row(result.data[0]) if result.data else None

    def update_recipe(self, recipe_id: str, data: RecipeUpdate) -> Optional[Recipe]:
        updated_id = self._rpc("update_recipe", {
            "p_recipe_id": recipe_id,
            "p_name": data.name,
            "p_materials": _json(data.materials),
        })
        if updated_id is None:
            return None
        return self.get_recipe(recipe_id)

    def deactivate_recipe(self, recipe_id: str) -> Optional[Recipe]:
        try:
            result = (
                self.db.table("recipes")
                .update({"is_active": False, "updated_at": utc_now().isoformat()})
                .eq("id", recipe_id)
                .execute()
            )
        except Exception as e:
            logger.error("deactivate_recipe_failed", recipe_id=recipe_id, error=str(e))
            raise DatabaseError("update", str(e))
        if not result.data:
            return None
        return self.get_recipe(recipe_id)

    def get_material_definition(self, definition_id: str) -> Optional[MaterialDefinition]:
        row = self._select_one("material_definitions", "id", definition_id)
        return MaterialDefinition(**row) if row else None

    def list_material_definitions(self) -> list[MaterialDefinition]:
        try:
            result = self.db.table("material_definitions").select("*").order("name").execute()
        except Exception as e:
            logger.error("list_material_definitions_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return [MaterialDefinition(**row) for row in result.data]

    def create_material_definition(self, data: MaterialDefinitionCreate) -> MaterialDefinition:
        try:
            result = (
                self.db.table("material_definitions")
                .insert(data.model_dump(mode="json"))
                .execute()
            )
        except Exception as e:
            logger.error("create_material_definition_failed", name=data.name, error=str(e))
            raise DatabaseError("insert", str(e))
        return MaterialDefinition(**result.data[0])

    def update_material_definition(self, definition_id: str, fields: dict[str, Any]) -> Optional[MaterialDefinition]:
        payload = _json(fields)
        payload["updated_at"] = utc_now().isoformat()
        try:
            result = (
                self.db.table("material_definitions")
                .update(payload)
                .eq("id", definition_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_material_definition_failed", definition_id=definition_id, error=str(e))
            raise DatabaseError("update", str(e))
        return MaterialDefinition(**result.data[0]) if result.data else None

    def delete_material_definition(self, definition_id: str) -> bool:
        try:
            result = self.db.table("material_definitions").delete().eq("id", definition_id).execute()
        except Exception as e:
            logger.error("delete_material_definition_failed", definition_id=definition_id, error=str(e))
            raise DatabaseError("delete", str(e))
        return bool(result.data)

    def is_material_in_recipes(self, definition_id: str) -> bool:
        try:
            result = (
                self.db.table("recipe_materials")
                .select("recipe_id")
                .eq("material_definition_id", definition_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("recipe_usage_check_failed", definition_id=definition_id, error=str(e))
            raise DatabaseError("select", str(e))
        return bool(result.data)

    # ===================
    # WAREHOUSES AND LOTS
    # ===================

    def list_warehouses(self) -> list[Warehouse]:
        try:
            result = self.db.table("warehouses").select("*").execute()
        except Exception as e:
            logger.error("list_warehouses_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return [Warehouse(**row) for row in result.data]

    def get_warehouse(self, warehouse_id: str) -> Optional[Warehouse]:
        row = self._select_one("warehouses", "id", warehouse_id)
        return Warehouse(**row) if row else None

    def create_warehouse(self, data: WarehouseCreate, priority: int) -> Warehouse:
        try:
            result = self.db.table("warehouses").insert({
                "name": data.name,
                "type": data.type.value,
                "priority": priority,
            }).execute()
        except Exception as e:
            logger.error("create_warehouse_failed", name=data.name, error=str(e))
            raise DatabaseError("insert", str(e))
        return Warehouse(**result.data[0])

    def list_lots(
        self,
        definition_id: Optional[str] = None,
        warehouse_id: Optional[str] = None,
        only_available: bool = False,
    ) -> list[MaterialLot]:
        try:
            query = self.db.table("material_lots").select("*")
            if definition_id:
                query = query.eq("material_definition_id", definition_id)
            if warehouse_id:
                query = query.eq("warehouse_id", warehouse_id)
            if only_available:
                query = query.gt("remaining_quantity", 0)
            result = query.order("received_at").order("id").execute()
        except Exception as e:
            logger.error("list_lots_failed", definition_id=definition_id, error=str(e))
            raise DatabaseError("select", str(e))
        return [MaterialLot(**row) for row in result.data]

    def get_lot(self, lot_id: str) -> Optional[MaterialLot]:
        row = self._select_one("material_lots", "id", lot_id)
        return MaterialLot(**row) if row else None

    def create_lot(self, data: MaterialLotCreate) -> MaterialLot:
        row = self._rpc("receive_material_lot", {
            "p_material_definition_id": data.material_definition_id,
            "p_warehouse_id": data.warehouse_id,
            "p_quantity": str(data.quantity),
            "p_cost_per_unit": str(data.cost_per_unit),
            "p_supplier_name": data.supplier_name,
            "p_received_at": (data.received_at or utc_now()).isoformat(),
        })
        return MaterialLot(**row)

    def apply_lot_movement(self, movement: MaterialMovementCreate) -> Optional[MaterialMovement]:
        row = self._rpc("apply_material_movement", {
            "p_material_lot_id": movement.material_lot_id,
            "p_quantity_change": str(movement.quantity_change),
            "p_reason": movement.reason.value,
            "p_production_task_id": movement.production_task_id,
            "p_notes": movement.notes,
        })
        # A failed guard comes back as an all-null composite row
        return MaterialMovement(**row) if row and row.get("id") else None

    def list_movements(
        self,
        lot_id: Optional[str] = None,
        production_task_id: Optional[str] = None,
    ) -> list[MaterialMovement]:
        try:
            query = self.db.table("material_movements").select("*")
            if lot_id:
                query = query.eq("material_lot_id", lot_id)
            if production_task_id:
                query = query.eq("production_task_id", production_task_id)
            result = query.order("created_at").execute()
        except Exception as e:
            logger.error("list_movements_failed", lot_id=lot_id, error=str(e))
            raise DatabaseError("select", str(e))
        return [MaterialMovement(**row) for row in result.data]

    # ===================
    # FINISHED GOODS
    # ===================

    def get_inventory(self, product_id: str) -> Optional[FinishedGoodsInventory]:
        row = self._select_one("finished_goods_inventory", "product_id", product_id)
        return FinishedGoodsInventory(**row) if row else None

    def create_inventory(self, product_id: str, on_hand: int) -> Optional[FinishedGoodsInventory]:
        try:
            # An existing row is left alone and comes back as an empty result
            result = (
                self.db.table("finished_goods_inventory")
                .upsert(
                    {"product_id": product_id, "on_hand": on_hand, "reserved": 0},
                    on_conflict="product_id",
                    ignore_duplicates=True,
                )
                .execute()
            )
        except Exception as e:
            logger.error("create_inventory_failed", product_id=product_id, error=str(e))
            raise DatabaseError("insert", str(e))
        return FinishedGoodsInventory(**result.data[0]) if result.data else None

    def reserve_stock(self, product_id: str, quantity: int) -> bool:
        return bool(self._rpc("reserve_finished_goods", {
            "p_product_id": product_id,
            "p_quantity": quantity,
        }))

    def reserve_for_line(self, line_id: str, quantity: int) -> bool:
        return bool(self._rpc("reserve_for_order_line", {
            "p_line_id": line_id,
            "p_quantity": quantity,
        }))

    def release_reservation(self, product_id: str, quantity: int) -> bool:
        return bool(self._rpc("release_finished_goods", {
            "p_product_id": product_id,
            "p_quantity": quantity,
        }))

    def adjust_on_hand(self, product_id: str, delta: int) -> Optional[FinishedGoodsInventory]:
        row = self._rpc("adjust_finished_goods", {
            "p_product_id": product_id,
            "p_delta": delta,
        })
        return FinishedGoodsInventory(**row) if row and row.get("product_id") else None

    # ===================
    # ORDERS
    # ===================

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self._select_one("orders", "id", order_id)
        return Order(**row) if row else None

    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        row = self._select_one("orders", "external_id", external_id)
        return Order(**row) if row else None

    def list_orders(self, flow_statuses: Optional[list[OrderFlowStatus]] = None) -> list[Order]:
        try:
            query = self.db.table("orders").select("*")
            if flow_statuses is not None:
                query = query.in_("flow_status", [s.value for s in flow_statuses])
            result = query.order("created_at").execute()
        except Exception as e:
            logger.error("list_orders_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return [Order(**row) for row in result.data]

    def upsert_order(self, data: OrderUpsert) -> Order:
        payload = data.model_dump(mode="json")
        payload["updated_at"] = utc_now().isoformat()
        try:
            result = (
                self.db.table("orders")
                .upsert(payload, on_conflict="external_id")
                .execute()
            )
        except Exception as e:
            logger.error("upsert_order_failed", external_id=data.external_id, error=str(e))
            raise DatabaseError("upsert", str(e))
        return Order(**result.data[0])

    def update_order_flow_status(
        self,
        order_id: str,
        expected: OrderFlowStatus,
        new: OrderFlowStatus,
        operational: OperationalStatus,
    ) -> bool:
        try:
            result = (
                self.db.table("orders")
                .update({
                    "flow_status": new.value,
                    "operational_status": operational.value,
                    "updated_at": utc_now().isoformat(),
                })
                .eq("id", order_id)
                .eq("flow_status", expected.value)
                .execute()
            )
        except Exception as e:
            logger.error("update_flow_status_failed", order_id=order_id, error=str(e))
            raise DatabaseError("update", str(e))
        return bool(result.data)

    def get_order_line(self, line_id: str) -> Optional[OrderLine]:
        row = self._select_one("order_lines", "id", line_id)
        return OrderLine(**row) if row else None

    def list_order_lines(self, order_id: str) -> list[OrderLine]:
        try:
            result = (
                self.db.table("order_lines")
                .select("*")
                .eq("order_id", order_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.error("list_order_lines_failed", order_id=order_id, error=str(e))
            raise DatabaseError("select", str(e))
        return [OrderLine(**row) for row in result.data]

    def find_order_line(self, order_id: str, product_id: str) -> Optional[OrderLine]:
        try:
            result = (
                self.db.table("order_lines")
                .select("*")
                .eq("order_id", order_id)
                .eq("product_id", product_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("find_order_line_failed", order_id=order_id, error=str(e))
            raise DatabaseError("select", str(e))
        return OrderLine(**result.data[0]) if result.data else None

    def create_order_line(self, order_id: str, data: OrderLineCreate) -> OrderLine:
        payload = data.model_dump(mode="json")
        payload["order_id"] = order_id
        try:
            result = self.db.table("order_lines").insert(payload).execute()
        except Exception as e:
            logger.error("create_order_line_failed", order_id=order_id, error=str(e))
            raise DatabaseError("insert", str(e))
        return OrderLine(**result.data[0])

    def update_order_line(self, line_id: str, fields: dict[str, Any]) -> Optional[OrderLine]:
        payload = _json(fields)
        payload["updated_at"] = utc_now().isoformat()
        try:
            result = self.db.table("order_lines").update(payload).eq("id", line_id).execute()
        except Exception as e:
            logger.error("update_order_line_failed", line_id=line_id, error=str(e))
            raise DatabaseError("update", str(e))
        return OrderLine(**result.data[0]) if result.data else None

    def decide_order_line(
        self,
        line_id: str,
        fulfillment_type: FulfillmentType,
        fulfillment_status: FulfillmentStatus,
        notes: Optional[str],
        reserved_quantity: int = 0,
    ) -> bool:
        now = utc_now().isoformat()
        try:
            result = (
                self.db.table("order_lines")
                .update({
                    "fulfillment_type": fulfillment_type.value,
                    "fulfillment_status": fulfillment_status.value,
                    "fulfillment_notes": notes,
                    "fulfillment_decided_at": now,
                    "reserved_quantity": reserved_quantity,
                    "updated_at": now,
                })
                .eq("id", line_id)
                .eq("fulfillment_type", FulfillmentType.PENDING.value)
                .execute()
            )
        except Exception as e:
            logger.error("decide_order_line_failed", line_id=line_id, error=str(e))
            raise DatabaseError("update", str(e))
        return bool(result.data)

    def ship_order(self, order_id: str, expected: OrderFlowStatus) -> bool:
        return bool(self._rpc("ship_order", {
            "p_order_id": order_id,
            "p_expected_status": expected.value,
        }))

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
        try:
            result = self.db.table("order_timeline").insert({
                "order_id": order_id,
                "status": status.value,
                "previous_status": previous_status.value if previous_status else None,
                "reason": reason,
            }).execute()
        except Exception as e:
            logger.error("append_timeline_failed", order_id=order_id, error=str(e))
            raise DatabaseError("insert", str(e))
        return TimelineEvent(**result.data[0])

    def list_timeline(self, order_id: str) -> list[TimelineEvent]:
        try:
            result = (
                self.db.table("order_timeline")
                .select("*")
                .eq("order_id", order_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.error("list_timeline_failed", order_id=order_id, error=str(e))
            raise DatabaseError("select", str(e))
        return [TimelineEvent(**row) for row in result.data]

    # ===================
    # PRODUCTION
    # ===================

    def create_production_task(self, data: ProductionTaskCreate) -> ProductionTask:
        payload = data.model_dump(mode="json")
        payload["status"] = TaskStatus.PENDING.value
        try:
            result = self.db.table("production_tasks").insert(payload).execute()
        except Exception as e:
            logger.error("create_production_task_failed", product_id=data.product_id, error=str(e))
            raise DatabaseError("insert", str(e))
        return ProductionTask(**result.data[0])

    def get_production_task(self, task_id: str) -> Optional[ProductionTask]:
        row = self._select_one("production_tasks", "id", task_id)
        return ProductionTask(**row) if row else None

    def get_task_for_line(self, line_id: str) -> Optional[ProductionTask]:
        row = self._select_one("production_tasks", "order_line_id", line_id)
        return ProductionTask(**row) if row else None

    def list_production_tasks(self, statuses: Optional[list[TaskStatus]] = None) -> list[ProductionTask]:
        try:
            query = self.db.table("production_tasks").select("*")
            if statuses is not None:
                query = query.in_("status", [s.value for s in statuses])
            result = query.order("created_at").execute()
        except Exception as e:
            logger.error("list_production_tasks_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return [ProductionTask(**row) for row in result.data]

    def start_production_task(
        self,
        task_id: str,
        movements: list[MaterialMovementCreate],
    ) -> Optional[list[MaterialMovement]]:
        rows = self._rpc("start_production_task", {
            "p_task_id": task_id,
            "p_movements": [
                {
                    "material_lot_id": m.material_lot_id,
                    "quantity_change": str(m.quantity_change),
                    "notes": m.notes,
                }
                for m in movements
            ],
        })
        # NULL from the function means a guard failed and nothing was written
        if rows is None:
            return None
        return [MaterialMovement(**row) for row in rows]

    def complete_production_task(self, task_id: str) -> Optional[ProductionTask]:
        row = self._rpc("complete_production_task", {"p_task_id": task_id})
        return ProductionTask(**row) if row and row.get("id") else None

    def delete_pending_task(self, task_id: str) -> bool:
        return bool(self._rpc("delete_pending_production_task", {"p_task_id": task_id}))

    # ===================
    # REPLENISHMENT
    # ===================

    def create_replenishment_requests(
        self,
        requests: list[tuple[ReplenishmentRequestCreate, ReplenishmentPriority]],
    ) -> list[ReplenishmentRequest]:
        if not requests:
            return []
        payload = [
            {
                "material_definition_id": data.material_definition_id,
                "quantity_needed": str(data.quantity_needed),
                "priority": priority.value,
                "notes": data.notes,
            }
            for data, priority in requests
        ]
        try:
            result = self.db.table("replenishment_requests").insert(payload).execute()
        except Exception as e:
            logger.error("create_replenishment_requests_failed", error=str(e))
            raise DatabaseError("insert", str(e))
        return [ReplenishmentRequest(**row) for row in result.data]
