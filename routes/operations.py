"""
Operations API routes.

Batch status recalculation, stock and material reports, and finished
goods adjustments.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.inventory import FinishedGoodsInventory, InventoryCreate, StockAdjustment
from models.order import OrderWithLines
from models.fulfillment import BatchResult
from models.deficit import (
    DeficitReport,
    ReplenishmentItem,
    ReplenishmentRequest,
    ReplenishmentRequestCreate,
)
from services.order_status_service import get_order_status_service
from services.deficit_service import get_deficit_service
from services.inventory_service import get_inventory_service
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
# STATUS
# ===================

@router.post("/recalculate-status", response_model=BatchResult)
async def recalculate_all():
    """
    Recompute flow status for every open order.

    Returns 409 if a recalculation is already running.
    """
    try:
        return get_order_status_service().recalculate_all()
    except Exception as e:
        return handle_error(e)


@router.get("/ready-to-ship", response_model=list[OrderWithLines])
async def get_ready_to_ship():
    """Seller-fulfilled orders ready to ship."""
    try:
        return get_order_status_service().get_ready_to_ship_orders()
    except Exception as e:
        return handle_error(e)


# ===================
# MATERIALS
# ===================

@router.get("/deficits", response_model=DeficitReport)
async def get_deficits():
    """Material demand of in-flight orders vs. availability."""
    try:
        return get_deficit_service().get_material_deficits()
    except Exception as e:
        return handle_error(e)


@router.get("/replenishment", response_model=list[ReplenishmentItem])
async def get_replenishment_needs():
    """What to buy, rounded up, with priority."""
    try:
        return get_deficit_service().get_replenishment_needs()
    except Exception as e:
        return handle_error(e)


@router.post("/replenishment", response_model=list[ReplenishmentRequest], status_code=201)
async def create_replenishment(requests: Optional[list[ReplenishmentRequestCreate]] = None):
    """Create purchase requests; from current needs if the body is empty."""
    try:
        return get_deficit_service().create_replenishment_requests(requests)
    except Exception as e:
        return handle_error(e)


# ===================
# FINISHED GOODS
# ===================

@router.post("/inventory", response_model=FinishedGoodsInventory, status_code=201)
async def create_inventory(data: InventoryCreate):
    """
    Start tracking finished goods for a product.

    Raises:
        404: Product not found
        409: Product already has a stock row
    """
    try:
        return get_inventory_service().create_inventory(data)
    except Exception as e:
        return handle_error(e)


@router.get("/inventory/{product_id}", response_model=FinishedGoodsInventory)
async def get_inventory(product_id: str):
    try:
        return get_inventory_service().get_inventory(product_id)
    except Exception as e:
        return handle_error(e)


@router.post("/inventory/{product_id}/adjust", response_model=FinishedGoodsInventory)
async def adjust_inventory(product_id: str, data: StockAdjustment):
    """Manual stock correction; on_hand may not drop below reserved."""
    try:
        return get_inventory_service().adjust_stock(product_id, data)
    except Exception as e:
        return handle_error(e)
