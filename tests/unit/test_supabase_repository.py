"""
Unit tests for SupabaseRepository.

Uses the MockSupabaseClient from conftest; guarded updates only touch
rows whose filters still match.
"""

from decimal import Decimal
import pytest

from models.order import (
    FulfillmentStatus,
    FulfillmentType,
    OperationalStatus,
    OrderFlowStatus,
    OrderUpsert,
)
from models.material import MaterialMovementCreate, MovementReason, WarehouseCreate, WarehouseType
from models.product import RecipeMaterial, RecipeUpdate
from models.deficit import ReplenishmentPriority, ReplenishmentRequestCreate
from repositories.supabase_repository import SupabaseRepository
from exceptions import DatabaseError


@pytest.fixture
def repository(mock_supabase):
    return SupabaseRepository(client=mock_supabase)


def order_row(**overrides):
    row = {
        "id": "order-1",
        "external_id": "P-1",
        "order_number": "ORD-1",
        "flow_status": "NEW",
        "operational_status": "PENDING",
        "total_amount": "20.00",
    }
    row.update(overrides)
    return row


def line_row(**overrides):
    row = {
        "id": "line-1",
        "order_id": "order-1",
        "product_id": "prod-1",
        "quantity": 2,
        "fulfillment_type": "PENDING",
        "fulfillment_status": "planned",
        "reserved_quantity": 0,
    }
    row.update(overrides)
    return row


def movement_row(**overrides):
    row = {
        "id": "mov-1",
        "material_lot_id": "lot-1",
        "quantity_change": "-3",
        "reason": "production",
        "production_task_id": "task-1",
        "created_at": "2025-01-05T10:00:00+00:00",
    }
    row.update(overrides)
    return row


# ===================
# ORDERS
# ===================

class TestOrders:
    """Tests for order reads and guarded order writes."""

    def test_get_order(self, repository, mock_supabase):
        mock_supabase.set_table_data("orders", [order_row()])

        order = repository.get_order("order-1")

        assert order.external_id == "P-1"
        assert order.flow_status == OrderFlowStatus.NEW
        assert order.total_amount == Decimal("20.00")

    def test_get_order_missing(self, repository, mock_supabase):
        mock_supabase.set_table_data("orders", [order_row()])

        assert repository.get_order("other") is None

    def test_flow_status_update_matches(self, repository, mock_supabase):
        mock_supabase.set_table_data("orders", [order_row()])

        updated = repository.update_order_flow_status(
            "order-1", OrderFlowStatus.NEW, OrderFlowStatus.READY_TO_SHIP, OperationalStatus.READY_TO_SHIP
        )

        assert updated is True
        row = mock_supabase.table("orders").rows[0]
        assert row["flow_status"] == "READY_TO_SHIP"
        assert row["operational_status"] == "READY_TO_SHIP"

    def test_flow_status_update_lost(self, repository, mock_supabase):
        """A stale expected status leaves the row untouched."""
        mock_supabase.set_table_data("orders", [order_row(flow_status="IN_PRODUCTION")])

        updated = repository.update_order_flow_status(
            "order-1", OrderFlowStatus.NEW, OrderFlowStatus.READY_TO_SHIP, OperationalStatus.READY_TO_SHIP
        )

        assert updated is False
        assert mock_supabase.table("orders").rows[0]["flow_status"] == "IN_PRODUCTION"

    def test_upsert_keyed_on_external_id(self, repository, mock_supabase):
        mock_supabase.set_table_data("orders", [order_row()])

        order = repository.upsert_order(OrderUpsert(
            external_id="P-1",
            order_number="ORD-1",
            channel_status="delivering",
            total_amount=Decimal("20.00"),
        ))

        assert order.id == "order-1"
        assert order.channel_status == "delivering"
        assert len(mock_supabase.table("orders").rows) == 1

    def test_list_orders_by_status(self, repository, mock_supabase):
        mock_supabase.set_table_data("orders", [
            order_row(id="o-1", external_id="P-1"),
            order_row(id="o-2", external_id="P-2", flow_status="SHIPPED"),
        ])

        orders = repository.list_orders([OrderFlowStatus.NEW, OrderFlowStatus.NEED_PRODUCTION])

        assert [o.id for o in orders] == ["o-1"]


class TestDecideOrderLine:
    """Tests for the first-decision-wins line update."""

    def test_pending_line_decided(self, repository, mock_supabase):
        mock_supabase.set_table_data("order_lines", [line_row()])

        decided = repository.decide_order_line(
            "line-1", FulfillmentType.READY_STOCK, FulfillmentStatus.READY, None, reserved_quantity=2
        )

        assert decided is True
        row = mock_supabase.table("order_lines").rows[0]
        assert row["fulfillment_type"] == "READY_STOCK"
        assert row["reserved_quantity"] == 2
        assert row["fulfillment_decided_at"] is not None

    def test_decided_line_not_overwritten(self, repository, mock_supabase):
        mock_supabase.set_table_data("order_lines", [line_row(fulfillment_type="PRODUCE_ON_DEMAND")])

        decided = repository.decide_order_line(
            "line-1", FulfillmentType.READY_STOCK, FulfillmentStatus.READY, None, reserved_quantity=2
        )

        assert decided is False
        assert mock_supabase.table("order_lines").rows[0]["fulfillment_type"] == "PRODUCE_ON_DEMAND"

    def test_update_missing_line_returns_none(self, repository, mock_supabase):
        mock_supabase.set_table_data("order_lines", [])

        assert repository.update_order_line("missing", {"quantity": 3}) is None


# ===================
# MULTI-ROW FUNCTIONS
# ===================

class TestRpcWrites:
    """Tests for writes delegated to Postgres functions."""

    def test_reserve_stock_result(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("reserve_finished_goods", True)

        assert repository.reserve_stock("prod-1", 2) is True
        assert mock_supabase.rpc_calls == [
            ("reserve_finished_goods", {"p_product_id": "prod-1", "p_quantity": 2})
        ]

    def test_reserve_stock_refused(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("reserve_finished_goods", False)

        assert repository.reserve_stock("prod-1", 2) is False

    def test_start_task_guard_failed(self, repository, mock_supabase):
        """NULL from the function means nothing was written."""
        mock_supabase.set_rpc_result("start_production_task", None)

        result = repository.start_production_task("task-1", [])

        assert result is None

    def test_start_task_returns_movements(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("start_production_task", [movement_row()])

        movements = repository.start_production_task("task-1", [
            MaterialMovementCreate(
                material_lot_id="lot-1",
                quantity_change=Decimal("-3"),
                reason=MovementReason.PRODUCTION,
                production_task_id="task-1",
            )
        ])

        assert len(movements) == 1
        assert movements[0].quantity_change == Decimal("-3")
        _, params = mock_supabase.rpc_calls[0]
        assert params["p_movements"][0]["quantity_change"] == "-3"

    def test_lot_movement_null_row(self, repository, mock_supabase):
        """A refused movement comes back as a composite of nulls."""
        mock_supabase.set_rpc_result("apply_material_movement", {"id": None, "material_lot_id": None})

        result = repository.apply_lot_movement(MaterialMovementCreate(
            material_lot_id="lot-1",
            quantity_change=Decimal("-100"),
            reason=MovementReason.WRITE_OFF,
        ))

        assert result is None

    def test_reserve_for_line_params(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("reserve_for_order_line", True)

        assert repository.reserve_for_line("line-1", 2) is True
        assert mock_supabase.rpc_calls == [
            ("reserve_for_order_line", {"p_line_id": "line-1", "p_quantity": 2})
        ]

    def test_ship_order_refused(self, repository, mock_supabase):
        """False from the function means the whole shipment was rolled back."""
        mock_supabase.set_rpc_result("ship_order", False)

        assert repository.ship_order("order-1", OrderFlowStatus.READY_TO_SHIP) is False
        assert mock_supabase.rpc_calls == [
            ("ship_order", {"p_order_id": "order-1", "p_expected_status": "READY_TO_SHIP"})
        ]

    def test_delete_pending_task_refused(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("delete_pending_production_task", False)

        assert repository.delete_pending_task("task-1") is False
        assert mock_supabase.rpc_calls == [
            ("delete_pending_production_task", {"p_task_id": "task-1"})
        ]

    def test_rpc_failure_wrapped(self, repository, mock_supabase):
        mock_supabase.rpc_error = RuntimeError("connection reset")

        with pytest.raises(DatabaseError) as exc_info:
            repository.ship_order("order-1", OrderFlowStatus.READY_TO_SHIP)

        assert "ship_order" in exc_info.value.message


# ===================
# READS
# ===================

class TestReads:
    """Tests for catalog and lot reads."""

    def test_active_recipe_with_materials(self, repository, mock_supabase):
        mock_supabase.set_table_data("recipes", [{
            "id": "recipe-1",
            "product_id": "prod-1",
            "name": "Tee",
            "is_active": True,
            "recipe_materials": [
                {"material_definition_id": "mat-1", "quantity_required": "1.5"},
            ],
        }])

        recipe = repository.get_active_recipe("prod-1")

        assert recipe.id == "recipe-1"
        assert recipe.materials[0].quantity_required == Decimal("1.5")

    def test_available_lots_only(self, repository, mock_supabase):
        lot = {
            "material_definition_id": "mat-1",
            "warehouse_id": "wh-1",
            "received_quantity": "10",
            "received_at": "2025-01-01T00:00:00+00:00",
        }
        mock_supabase.set_table_data("material_lots", [
            {**lot, "id": "lot-1", "remaining_quantity": "0"},
            {**lot, "id": "lot-2", "remaining_quantity": "4"},
        ])

        lots = repository.list_lots(definition_id="mat-1", only_available=True)

        assert [l.id for l in lots] == ["lot-2"]

    def test_products_by_sku_empty(self, repository, mock_supabase):
        assert repository.get_products_by_sku([]) == {}

    def test_select_failure_wrapped(self, repository, mock_supabase):
        mock_supabase.fail_table("warehouses", RuntimeError("timeout"))

        with pytest.raises(DatabaseError):
            repository.list_warehouses()


class TestReplenishmentRequests:
    """Tests for create_replenishment_requests."""

    def test_bulk_insert(self, repository, mock_supabase):
        mock_supabase.set_table_data(
            "replenishment_requests", [],
            defaults={"status": "pending", "requested_at": "2025-01-05T10:00:00+00:00"},
        )

        created = repository.create_replenishment_requests([
            (ReplenishmentRequestCreate(material_definition_id="mat-1", quantity_needed=Decimal("4")),
             ReplenishmentPriority.NORMAL),
            (ReplenishmentRequestCreate(material_definition_id="mat-2", quantity_needed=Decimal("12")),
             ReplenishmentPriority.HIGH),
        ])

        assert [r.priority for r in created] == [ReplenishmentPriority.NORMAL, ReplenishmentPriority.HIGH]
        assert len(mock_supabase.table("replenishment_requests").rows) == 2

    def test_empty_is_noop(self, repository, mock_supabase):
        assert repository.create_replenishment_requests([]) == []
        assert mock_supabase.table("replenishment_requests").rows == []


# ===================
# CATALOG WRITES
# ===================

class TestCatalogWrites:
    """Tests for recipe, definition, warehouse and stock row writes."""

    def test_update_recipe_missing(self, repository, mock_supabase):
        mock_supabase.set_rpc_result("update_recipe", None)

        result = repository.update_recipe("recipe-9", RecipeUpdate(
            materials=[RecipeMaterial(material_definition_id="mat-1", quantity_required=Decimal("2"))],
        ))

        assert result is None
        _, params = mock_supabase.rpc_calls[0]
        assert params["p_recipe_id"] == "recipe-9"
        assert params["p_name"] is None
        assert params["p_materials"][0]["quantity_required"] == "2"

    def test_deactivate_missing_recipe(self, repository, mock_supabase):
        mock_supabase.set_table_data("recipes", [])

        assert repository.deactivate_recipe("recipe-9") is None

    def test_delete_material_definition(self, repository, mock_supabase):
        mock_supabase.set_table_data("material_definitions", [
            {"id": "mat-1", "name": "Blank tee"},
            {"id": "mat-2", "name": "Ink"},
        ])

        assert repository.delete_material_definition("mat-1") is True
        assert repository.delete_material_definition("mat-1") is False
        assert [r["id"] for r in mock_supabase.table("material_definitions").rows] == ["mat-2"]

    def test_material_in_recipes(self, repository, mock_supabase):
        mock_supabase.set_table_data("recipe_materials", [
            {"recipe_id": "recipe-1", "material_definition_id": "mat-1", "quantity_required": "1"},
        ])

        assert repository.is_material_in_recipes("mat-1") is True
        assert repository.is_material_in_recipes("mat-2") is False

    def test_create_warehouse(self, repository, mock_supabase):
        mock_supabase.set_table_data("warehouses", [])

        warehouse = repository.create_warehouse(
            WarehouseCreate(name="Print shop", type=WarehouseType.PRODUCTION_CENTER), priority=1
        )

        assert warehouse.type == WarehouseType.PRODUCTION_CENTER
        assert warehouse.priority == 1
        assert mock_supabase.table("warehouses").rows[0]["name"] == "Print shop"

    def test_create_inventory(self, repository, mock_supabase):
        mock_supabase.set_table_data("finished_goods_inventory", [])

        inventory = repository.create_inventory("prod-1", 5)

        assert inventory.on_hand == 5
        assert inventory.reserved == 0

    def test_create_inventory_existing_row_untouched(self, repository, mock_supabase):
        mock_supabase.set_table_data("finished_goods_inventory", [
            {"product_id": "prod-1", "on_hand": 3, "reserved": 2},
        ])

        assert repository.create_inventory("prod-1", 10) is None
        assert mock_supabase.table("finished_goods_inventory").rows[0]["on_hand"] == 3
