"""
Business logic services.

Each service handles one domain area and takes an optional repository;
the get_*_service() helpers return process-wide instances.
"""

from services.material_availability_service import (
    MaterialAvailabilityService,
    get_material_availability_service,
)
from services.lot_allocation_service import LotAllocationService, get_lot_allocation_service
from services.production_service import ProductionService, get_production_service
from services.fulfillment_service import FulfillmentService, get_fulfillment_service
from services.order_status_service import OrderStatusService, get_order_status_service
from services.order_timeline_service import OrderTimelineService, get_order_timeline_service
from services.deficit_service import DeficitService, get_deficit_service
from services.inventory_service import InventoryService, get_inventory_service
from services.material_service import MaterialService, get_material_service
from services.recipe_service import RecipeService, get_recipe_service
from services.ingestion_service import IngestionService, get_ingestion_service

__all__ = [
    "MaterialAvailabilityService",
    "get_material_availability_service",
    "LotAllocationService",
    "get_lot_allocation_service",
    "ProductionService",
    "get_production_service",
    "FulfillmentService",
    "get_fulfillment_service",
    "OrderStatusService",
    "get_order_status_service",
    "OrderTimelineService",
    "get_order_timeline_service",
    "DeficitService",
    "get_deficit_service",
    "InventoryService",
    "get_inventory_service",
    "MaterialService",
    "get_material_service",
    "RecipeService",
    "get_recipe_service",
    "IngestionService",
    "get_ingestion_service",
]
