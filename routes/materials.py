"""
Material API routes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.material import (
    LotAdjustment,
    MaterialAvailability,
    MaterialDefinition,
    MaterialDefinitionCreate,
    MaterialDefinitionUpdate,
    MaterialLot,
    MaterialLotCreate,
    MaterialMovement,
    Warehouse,
    WarehouseCreate,
)
from services.material_service import get_material_service
from services.material_availability_service import get_material_availability_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("/definitions", response_model=list[MaterialDefinition])
async def list_definitions():
    try:
        return get_material_service().list_definitions()
    except Exception as e:
        return handle_error(e)


@router.post("/definitions", response_model=MaterialDefinition, status_code=201)
async def create_definition(data: MaterialDefinitionCreate):
    """Create a definition, or return the existing one with the same name, size, color and type."""
    try:
        return get_material_service().create_definition(data)
    except Exception as e:
        return handle_error(e)


@router.patch("/definitions/{definition_id}", response_model=MaterialDefinition)
async def update_definition(definition_id: str, data: MaterialDefinitionUpdate):
    try:
        return get_material_service().update_definition(definition_id, data)
    except Exception as e:
        return handle_error(e)


@router.delete("/definitions/{definition_id}", status_code=204)
async def delete_definition(definition_id: str):
    """
    Delete a material definition.

    Raises:
        404: Definition not found
        409: Used in a recipe, or lots still hold stock
    """
    try:
        get_material_service().delete_definition(definition_id)
        return None
    except Exception as e:
        return handle_error(e)


@router.get("/warehouses", response_model=list[Warehouse])
async def list_warehouses():
    try:
        return get_material_service().list_warehouses()
    except Exception as e:
        return handle_error(e)


@router.post("/warehouses", response_model=Warehouse, status_code=201)
async def create_warehouse(data: WarehouseCreate):
    try:
        return get_material_service().create_warehouse(data)
    except Exception as e:
        return handle_error(e)


@router.get("/availability", response_model=list[MaterialAvailability])
async def list_availability():
    """Availability summary for every material."""
    try:
        return get_material_availability_service().list_availability()
    except Exception as e:
        return handle_error(e)


@router.get("/availability/{definition_id}", response_model=MaterialAvailability)
async def get_availability(definition_id: str):
    """Total, lot count, average cost and per-warehouse quantity."""
    try:
        return get_material_availability_service().get_availability(definition_id)
    except Exception as e:
        return handle_error(e)


@router.get("/lots", response_model=list[MaterialLot])
async def list_lots(
    definition_id: Optional[str] = Query(None),
    warehouse_id: Optional[str] = Query(None),
    only_available: bool = Query(False, description="Hide empty lots"),
):
    try:
        return get_material_service().list_lots(definition_id, warehouse_id, only_available)
    except Exception as e:
        return handle_error(e)


@router.post("/lots", response_model=MaterialLot, status_code=201)
async def receive_lot(data: MaterialLotCreate):
    """Receive a new lot."""
    try:
        return get_material_service().receive_lot(data)
    except Exception as e:
        return handle_error(e)


@router.post("/lots/{lot_id}/adjust", response_model=MaterialMovement)
async def adjust_lot(lot_id: str, data: LotAdjustment):
    """Manual correction; rejected if the lot would go negative."""
    try:
        return get_material_service().adjust_lot(lot_id, data)
    except Exception as e:
        return handle_error(e)


@router.get("/movements", response_model=list[MaterialMovement])
async def list_movements(
    lot_id: Optional[str] = Query(None),
    production_task_id: Optional[str] = Query(None),
):
    """Movement ledger, filtered by lot or production task."""
    try:
        return get_material_service().list_movements(lot_id, production_task_id)
    except Exception as e:
        return handle_error(e)
