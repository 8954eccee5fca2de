"""
Production API routes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.product import Recipe, RecipeCreate, RecipeUpdate
from models.production import ProductionCost, ProductionNeed, ProductionTask, TaskStatus
from services.production_service import get_production_service
from services.recipe_service import get_recipe_service
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
# QUEUE
# ===================

@router.get("/queue", response_model=list[ProductionTask])
async def list_queue(
    status: Optional[list[TaskStatus]] = Query(None, description="Filter by status (pending + in_progress if omitted)")
):
    """Production queue, highest priority and earliest due first."""
    try:
        return get_production_service().list_queue(status)
    except Exception as e:
        return handle_error(e)


@router.get("/needs", response_model=list[ProductionNeed])
async def get_production_needs():
    """Units waiting for production, grouped by product."""
    try:
        return get_production_service().get_production_needs()
    except Exception as e:
        return handle_error(e)


@router.post("/lines/{line_id}/task", response_model=ProductionTask, status_code=201)
async def create_task_for_line(line_id: str):
    """Queue production for a PRODUCE_ON_DEMAND line that has no task yet."""
    try:
        return get_production_service().create_task_for_line(line_id)
    except Exception as e:
        return handle_error(e)


# ===================
# TASK LIFECYCLE
# ===================

@router.post("/tasks/{task_id}/start", response_model=ProductionTask)
async def start_production(task_id: str):
    """
    Start a pending task.

    Re-checks materials and consumes lots. Returns 409 with the missing
    materials if any fall short.
    """
    try:
        return get_production_service().start_production(task_id)
    except Exception as e:
        return handle_error(e)


@router.post("/tasks/{task_id}/complete", response_model=ProductionTask)
async def complete_production(task_id: str):
    """Complete an in-progress task and add its units to stock."""
    try:
        return get_production_service().complete_production(task_id)
    except Exception as e:
        return handle_error(e)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_pending_task(task_id: str):
    """
    Remove a task from the queue before it starts. No lots are touched.

    Raises:
        404: Task not found
        422: Task already started or finished
    """
    try:
        get_production_service().delete_pending_task(task_id)
        return None
    except Exception as e:
        return handle_error(e)


@router.get("/tasks/{task_id}/cost", response_model=ProductionCost)
async def get_production_cost(task_id: str):
    """Material cost of a started task, per lot."""
    try:
        return get_production_service().get_production_cost(task_id)
    except Exception as e:
        return handle_error(e)


# ===================
# RECIPES
# ===================

@router.get("/recipes/{product_id}", response_model=Recipe)
async def get_recipe(product_id: str):
    """Active recipe of a product."""
    try:
        return get_recipe_service().get_active_recipe(product_id)
    except Exception as e:
        return handle_error(e)


@router.post("/recipes", response_model=Recipe, status_code=201)
async def create_recipe(data: RecipeCreate):
    """Create the active recipe for a product; the previous one is deactivated."""
    try:
        return get_recipe_service().create_recipe(data)
    except Exception as e:
        return handle_error(e)


@router.put("/recipes/by-id/{recipe_id}", response_model=Recipe)
async def update_recipe(recipe_id: str, data: RecipeUpdate):
    """Rename a recipe and replace its materials."""
    try:
        return get_recipe_service().update_recipe(recipe_id, data)
    except Exception as e:
        return handle_error(e)


@router.delete("/recipes/by-id/{recipe_id}", status_code=204)
async def delete_recipe(recipe_id: str):
    """
    Delete a recipe (soft delete).

    Sets is_active=False rather than removing it.

    Raises:
        404: Recipe not found
    """
    try:
        get_recipe_service().delete_recipe(recipe_id)
        return None
    except Exception as e:
        return handle_error(e)
