"""
Production task schemas.

Task status only moves forward: pending -> in_progress -> completed.
"""

from enum import Enum
from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import BaseSchema, TimestampMixin


class TaskStatus(str, Enum):
    """Production task status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Production task priority."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


TASK_STATUS_ORDER = {
    TaskStatus.PENDING: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.COMPLETED: 2,
}


def is_valid_task_transition(current: TaskStatus, new: TaskStatus) -> bool:
    """A task advances exactly one step at a time."""
    return TASK_STATUS_ORDER[new] == TASK_STATUS_ORDER[current] + 1


class PlannedLotUse(BaseSchema):
    """Lot quantity earmarked when the task was planned (not consumed)."""

    material_definition_id: str
    material_lot_id: str
    quantity: Decimal


class ProductionTask(TimestampMixin, BaseSchema):
    """Queue entry for the production floor."""

    id: str = Field(..., description="Task UUID")
    product_id: str
    quantity: int = Field(..., gt=0)
    order_line_id: Optional[str] = None
    order_id: Optional[str] = None
    priority: TaskPriority = Field(default=TaskPriority.NORMAL)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    due_date: Optional[datetime] = None
    planned_allocations: list[PlannedLotUse] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProductionTaskCreate(BaseSchema):
    """Create a production task (manual queue entry)."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    order_line_id: Optional[str] = None
    order_id: Optional[str] = None
    priority: TaskPriority = Field(default=TaskPriority.NORMAL)
    due_date: Optional[datetime] = None
    planned_allocations: list[PlannedLotUse] = Field(default_factory=list)


class ProductionNeed(BaseSchema):
    """Units waiting for production, grouped by product."""

    product_id: str
    product_name: str
    quantity: int
    orders_count: int
    order_numbers: list[str] = []
    priority: TaskPriority


class ProductionCostLine(BaseSchema):
    """Material consumed by a task from one lot."""

    material_definition_id: str
    material_name: str
    material_lot_id: str
    supplier_name: Optional[str] = None
    quantity: Decimal
    cost_per_unit: Decimal
    total_cost: Decimal


class ProductionCost(BaseSchema):
    """Material cost of a started task."""

    task_id: str
    product_id: str
    quantity: int
    total_cost: Decimal
    unit_cost: Decimal
    lines: list[ProductionCostLine] = []
