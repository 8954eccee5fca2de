"""
Order API routes.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.order import Order, OrderTimeline, OrderWithLines
from models.fulfillment import BatchResult
from models.ingest import SyncResult
from services.ingestion_service import get_ingestion_service
from services.fulfillment_service import get_fulfillment_service
from services.order_status_service import get_order_status_service
from services.order_timeline_service import get_order_timeline_service
from services.inventory_service import get_inventory_service
from repositories import get_repository
from exceptions import AppError, OrderNotFoundError

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

@router.post("/sync", response_model=SyncResult)
async def sync_orders():
    """
    Pull orders from the sales channel and decide new lines.

    A channel failure mid-sync is reported in the result (aborted=true),
    not as an error response.
    """
    try:
        return get_ingestion_service().sync_orders()
    except Exception as e:
        return handle_error(e)


@router.get("/{order_id}", response_model=OrderWithLines)
async def get_order(order_id: str):
    """Order with its lines."""
    try:
        repository = get_repository()
        order = repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return OrderWithLines(order=order, lines=repository.list_order_lines(order_id))
    except Exception as e:
        return handle_error(e)


@router.get("/{order_id}/timeline", response_model=OrderTimeline)
async def get_order_timeline(order_id: str):
    """Current status, its reason, and the transition history."""
    try:
        return get_order_timeline_service().get_timeline(order_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{order_id}/process", response_model=BatchResult)
async def process_order(order_id: str):
    """Decide any undecided lines of an order and recompute its status."""
    try:
        return get_fulfillment_service().process_order(order_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{order_id}/recalculate", response_model=Order)
async def recalculate_order(order_id: str):
    """Recompute the order's flow status from live checks."""
    try:
        return get_order_status_service().recalculate_order(order_id)
    except Exception as e:
        return handle_error(e)


@router.post("/{order_id}/ship", response_model=Order)
async def ship_order(order_id: str):
    """Ship a READY_TO_SHIP order, consuming its reservations."""
    try:
        return get_inventory_service().ship_order(order_id)
    except Exception as e:
        return handle_error(e)
