"""
Pydantic models for the fulfillment domain.

Submodules:
    material: warehouses, material definitions, lots and movements
    product: products and recipes
    order: orders, lines, flow statuses and the timeline
    production: production tasks and their cost
    fulfillment: decisions and lot allocation plans
    deficit: material deficits and replenishment requests
    ingest: marketplace channel payloads
"""

from models.base import BaseSchema, TimestampMixin, utc_now
from models.material import (
    MaterialType,
    WarehouseType,
    MovementReason,
    Warehouse,
    MaterialDefinition,
    MaterialDefinitionCreate,
    MaterialDefinitionUpdate,
    MaterialLot,
    MaterialLotCreate,
    MaterialMovement,
    MaterialMovementCreate,
    LotAdjustment,
    MaterialAvailability,
    WarehouseAvailability,
    WarehouseCreate,
)
from models.product import Product, Recipe, RecipeMaterial, RecipeCreate, RecipeUpdate
from models.inventory import FinishedGoodsInventory, InventoryCreate, StockAdjustment
from models.order import (
    ChannelHint,
    FulfillmentType,
    FulfillmentStatus,
    OperationalStatus,
    OrderFlowStatus,
    Order,
    OrderUpsert,
    OrderLine,
    OrderLineCreate,
    OrderWithLines,
    TimelineEvent,
    OrderTimeline,
    map_operational_to_flow,
    is_valid_flow_transition,
)
from models.production import (
    TaskStatus,
    TaskPriority,
    ProductionTask,
    ProductionTaskCreate,
    ProductionNeed,
    ProductionCost,
    ProductionCostLine,
    PlannedLotUse,
)
from models.fulfillment import (
    MissingMaterial,
    FulfillmentDecision,
    LotAllocation,
    AllocationPlan,
    ApplyResult,
    BatchResult,
)
from models.deficit import (
    ReplenishmentPriority,
    ReplenishmentStatus,
    MaterialDeficit,
    DeficitReport,
    ReplenishmentItem,
    ReplenishmentRequest,
    ReplenishmentRequestCreate,
)
from models.ingest import ChannelOrder, ChannelOrderLine, ChannelPage, SyncResult

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "utc_now",

    # Materials
    "MaterialType",
    "WarehouseType",
    "MovementReason",
    "Warehouse",
    "MaterialDefinition",
    "MaterialDefinitionCreate",
    "MaterialDefinitionUpdate",
    "MaterialLot",
    "MaterialLotCreate",
    "MaterialMovement",
    "MaterialMovementCreate",
    "LotAdjustment",
    "MaterialAvailability",
    "WarehouseAvailability",
    "WarehouseCreate",

    # Products
    "Product",
    "Recipe",
    "RecipeMaterial",
    "RecipeCreate",
    "RecipeUpdate",
    "FinishedGoodsInventory",
    "InventoryCreate",
    "StockAdjustment",

    # Orders
    "ChannelHint",
    "FulfillmentType",
    "FulfillmentStatus",
    "OperationalStatus",
    "OrderFlowStatus",
    "Order",
    "OrderUpsert",
    "OrderLine",
    "OrderLineCreate",
    "OrderWithLines",
    "TimelineEvent",
    "OrderTimeline",
    "map_operational_to_flow",
    "is_valid_flow_transition",

    # Production
    "TaskStatus",
    "TaskPriority",
    "ProductionTask",
    "ProductionTaskCreate",
    "ProductionNeed",
    "ProductionCost",
    "ProductionCostLine",
    "PlannedLotUse",

    # Fulfillment
    "MissingMaterial",
    "FulfillmentDecision",
    "LotAllocation",
    "AllocationPlan",
    "ApplyResult",
    "BatchResult",

    # Deficits
    "ReplenishmentPriority",
    "ReplenishmentStatus",
    "MaterialDeficit",
    "DeficitReport",
    "ReplenishmentItem",
    "ReplenishmentRequest",
    "ReplenishmentRequestCreate",

    # Channel
    "ChannelOrder",
    "ChannelOrderLine",
    "ChannelPage",
    "SyncResult",
]
