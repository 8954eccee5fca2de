"""
Production service: fulfillment scenarios and the production task lifecycle.

Two-phase material commitment:
    - When a line is planned for production, lots are chosen by the
      allocator and stored on the task. Nothing is consumed.
    - When the task starts, allocation is re-run against current lots and
      every debit is written in one guarded unit. A shortfall at that
      point fails the start with no movements written.
"""

from typing import Optional
from decimal import Decimal
from datetime import timedelta
import structlog

from config import settings
from repositories import FulfillmentRepository, get_repository
from models.base import utc_now
from models.product import Recipe
from models.material import MaterialMovementCreate, MovementReason
from models.order import (
    ChannelHint,
    FulfillmentStatus,
    FulfillmentType,
    OrderFlowStatus,
    OrderLine,
)
from models.production import (
    PlannedLotUse,
    ProductionCost,
    ProductionCostLine,
    ProductionNeed,
    ProductionTask,
    ProductionTaskCreate,
    TaskPriority,
    TaskStatus,
)
from models.fulfillment import AllocationPlan, ApplyResult, FulfillmentDecision
from services.material_availability_service import MaterialAvailabilityService
from services.lot_allocation_service import LotAllocationService
from exceptions import (
    AppError,
    ConcurrencyConflictError,
    ConflictError,
    DatabaseError,
    InsufficientMaterialsError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    OrderLineNotFoundError,
    ProductionTaskNotFoundError,
    RecipeRequiredError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

NO_RECIPE_REASON = "no recipe defined"

# Priority sort key for the production queue
_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.NORMAL: 1, TaskPriority.LOW: 2}


def _shortage_note(decision: FulfillmentDecision) -> str:
    if not decision.missing_materials:
        return decision.reason
    parts = [
        f"{m.name}: short {m.shortage} (need {m.required}, have {m.available})"
        for m in decision.missing_materials
    ]
    return f"{decision.reason}: " + "; ".join(parts)


def _shortage_details(plans: list[AllocationPlan]) -> list[dict]:
    return [
        {
            "material_definition_id": p.material_definition_id,
            "required": str(p.required),
            "allocated": str(p.allocated),
            "shortage": str(p.shortage),
        }
        for p in plans
        if not p.is_complete
    ]


class ProductionService:
    """
    Decides how order lines are fulfilled and drives production tasks.

    Depends on MaterialAvailabilityService for sufficiency checks and on
    LotAllocationService for lot planning; all writes go through the
    repository's guarded operations.
    """

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        availability: Optional[MaterialAvailabilityService] = None,
        allocator: Optional[LotAllocationService] = None,
    ):
        self.repository = repository or get_repository()
        self.availability = availability or MaterialAvailabilityService(self.repository)
        self.allocator = allocator or LotAllocationService(self.repository)

    # ===================
    # SCENARIO DECISION
    # ===================

    def decide_fulfillment_scenario(
        self,
        product_id: str,
        quantity: int,
        channel_hint: ChannelHint,
    ) -> FulfillmentDecision:
        """
        Decide how `quantity` units of a product will be fulfilled.

        Order of checks:
            1. Channel-fulfilled lines are EXTERNAL, nothing else is checked
            2. Finished stock covers the quantity -> READY_STOCK
            3. No active recipe -> PRODUCE_ON_DEMAND, cannot fulfill
            4. Recipe materials (all warehouses combined) -> PRODUCE_ON_DEMAND,
               can fulfill only if no material is short

        Missing product/recipe/material data is an outcome here, not an error.

        Raises:
            InvalidQuantityError: If quantity <= 0
        """
        if quantity <= 0:
            raise InvalidQuantityError(quantity)

        if channel_hint == ChannelHint.CHANNEL_FULFILLED:
            logger.info("scenario_external", product_id=product_id, quantity=quantity)
            return FulfillmentDecision(
                type=FulfillmentType.EXTERNAL,
                can_fulfill=True,
                required_quantity=quantity,
                reason="Fulfilled by the sales channel",
            )

        inventory = self.repository.get_inventory(product_id)
        available_stock = inventory.available if inventory else 0
        if available_stock >= quantity:
            logger.info(
                "scenario_ready_stock",
                product_id=product_id,
                quantity=quantity,
                available=available_stock
            )
            return FulfillmentDecision(
                type=FulfillmentType.READY_STOCK,
                can_fulfill=True,
                required_quantity=quantity,
                available_stock=available_stock,
                reason="Finished stock available",
            )

        recipe = self.repository.get_active_recipe(product_id)
        if recipe is None or not recipe.materials:
            logger.warning("scenario_no_recipe", product_id=product_id)
            return FulfillmentDecision(
                type=FulfillmentType.PRODUCE_ON_DEMAND,
                can_fulfill=False,
                needs_production=True,
                required_quantity=quantity,
                available_stock=available_stock,
                reason=NO_RECIPE_REASON,
            )

        missing = self.availability.find_shortages(recipe, quantity)
        if missing:
            logger.info(
                "scenario_materials_short",
                product_id=product_id,
                quantity=quantity,
                missing=[m.name for m in missing]
            )
            return FulfillmentDecision(
                type=FulfillmentType.PRODUCE_ON_DEMAND,
                can_fulfill=False,
                has_materials=False,
                needs_production=True,
                required_quantity=quantity,
                available_stock=available_stock,
                reason="Insufficient materials",
                missing_materials=missing,
            )

        logger.info("scenario_produce_on_demand", product_id=product_id, quantity=quantity)
        return FulfillmentDecision(
            type=FulfillmentType.PRODUCE_ON_DEMAND,
            can_fulfill=True,
            has_materials=True,
            needs_production=True,
            required_quantity=quantity,
            available_stock=available_stock,
            reason="Materials available for production",
        )

    # ===================
    # SCENARIO APPLICATION
    # ===================

    def apply_fulfillment_scenario(self, line_id: str, decision: FulfillmentDecision) -> ApplyResult:
        """
        Apply a decision to an order line, once.

        The decided type is written with a compare-and-set on
        fulfillment_type = PENDING; a line that is already decided is left
        untouched and reported as not applied.

        Raises:
            OrderLineNotFoundError: If the line doesn't exist
            ConcurrencyConflictError: If stock vanished before it could be reserved
        """
        line = self.repository.get_order_line(line_id)
        if line is None:
            raise OrderLineNotFoundError(line_id)

        if line.is_decided:
            logger.info("scenario_already_decided", line_id=line_id, type=line.fulfillment_type.value)
            return ApplyResult(
                order_line_id=line_id,
                applied=False,
                type=line.fulfillment_type,
                reserved_quantity=line.reserved_quantity,
                production_task_id=line.production_task_id,
                message="Line already decided",
            )

        if decision.type == FulfillmentType.READY_STOCK:
            return self._apply_ready_stock(line)

        if decision.type == FulfillmentType.PRODUCE_ON_DEMAND and decision.can_fulfill:
            return self._apply_production(line)

        if decision.type in (FulfillmentType.PRODUCE_ON_DEMAND, FulfillmentType.EXTERNAL):
            note = _shortage_note(decision) if decision.type == FulfillmentType.PRODUCE_ON_DEMAND else None
            if not self.repository.decide_order_line(
                line.id, decision.type, FulfillmentStatus.PLANNED, note
            ):
                return self._lost_decision(line)

            logger.info(
                "scenario_applied",
                line_id=line.id,
                type=decision.type.value,
                can_fulfill=decision.can_fulfill
            )
            return ApplyResult(
                order_line_id=line.id,
                applied=True,
                type=decision.type,
                message=note or decision.reason,
            )

        raise ValidationError(
            f"Cannot apply a {decision.type.value} decision",
            details={"line_id": line_id},
        )

    def _lost_decision(self, line: OrderLine) -> ApplyResult:
        current = self.repository.get_order_line(line.id)
        logger.info("scenario_decided_concurrently", line_id=line.id)
        return ApplyResult(
            order_line_id=line.id,
            applied=False,
            type=current.fulfillment_type if current else line.fulfillment_type,
            reserved_quantity=current.reserved_quantity if current else 0,
            production_task_id=current.production_task_id if current else None,
            message="Line was decided concurrently",
        )

    def _apply_ready_stock(self, line: OrderLine) -> ApplyResult:
        if not self.repository.reserve_stock(line.product_id, line.quantity):
            logger.warning(
                "reservation_failed",
                line_id=line.id,
                product_id=line.product_id,
                quantity=line.quantity
            )
            raise ConcurrencyConflictError(
                "reserve_stock",
                {"line_id": line.id, "product_id": line.product_id, "quantity": line.quantity},
            )

        if not self.repository.decide_order_line(
            line.id,
            FulfillmentType.READY_STOCK,
            FulfillmentStatus.READY,
            None,
            reserved_quantity=line.quantity,
        ):
            # Another pass decided the line first; give the units back
            self.repository.release_reservation(line.product_id, line.quantity)
            return self._lost_decision(line)

        logger.info(
            "stock_reserved",
            line_id=line.id,
            product_id=line.product_id,
            quantity=line.quantity
        )
        return ApplyResult(
            order_line_id=line.id,
            applied=True,
            type=FulfillmentType.READY_STOCK,
            reserved_quantity=line.quantity,
            message="Reserved from finished stock",
        )

    def _apply_production(self, line: OrderLine) -> ApplyResult:
        if not self.repository.decide_order_line(
            line.id,
            FulfillmentType.PRODUCE_ON_DEMAND,
            FulfillmentStatus.PLANNED,
            None,
        ):
            return self._lost_decision(line)

        recipe = self.repository.get_active_recipe(line.product_id)
        task = self._create_task(line, recipe, line.quantity)

        return ApplyResult(
            order_line_id=line.id,
            applied=True,
            type=FulfillmentType.PRODUCE_ON_DEMAND,
            production_task_id=task.id,
            message="Production task created",
        )

    def _create_task(
        self,
        line: OrderLine,
        recipe: Optional[Recipe],
        quantity: int,
        priority: TaskPriority = TaskPriority.NORMAL,
    ) -> ProductionTask:
        planned = []
        if recipe is not None:
            for plan in self.allocator.plan_recipe(recipe, quantity):
                planned.extend(
                    PlannedLotUse(
                        material_definition_id=plan.material_definition_id,
                        material_lot_id=a.lot_id,
                        quantity=a.quantity,
                    )
                    for a in plan.allocations
                )

        task = self.repository.create_production_task(ProductionTaskCreate(
            product_id=line.product_id,
            quantity=quantity,
            order_line_id=line.id,
            order_id=line.order_id,
            priority=priority,
            due_date=utc_now() + timedelta(days=settings.production_due_days),
            planned_allocations=planned,
        ))
        self.repository.update_order_line(line.id, {"production_task_id": task.id})

        logger.info(
            "production_task_created",
            task_id=task.id,
            line_id=line.id,
            product_id=line.product_id,
            quantity=quantity,
            planned_lots=len(planned)
        )
        return task

    def create_task_for_line(self, line_id: str) -> ProductionTask:
        """
        Queue production for a decided PRODUCE_ON_DEMAND line with no task.

        Used when materials arrive after the line was decided. Re-checks
        materials; it does not re-decide the line.

        Raises:
            OrderLineNotFoundError: If the line doesn't exist
            ValidationError: If the line is not PRODUCE_ON_DEMAND
            ConflictError: If the line already has a task
            RecipeRequiredError: If the product has no active recipe
            InsufficientMaterialsError: If materials still fall short
        """
        line = self.repository.get_order_line(line_id)
        if line is None:
            raise OrderLineNotFoundError(line_id)
        if line.fulfillment_type != FulfillmentType.PRODUCE_ON_DEMAND:
            raise ValidationError(
                "Only PRODUCE_ON_DEMAND lines can be queued for production",
                details={"line_id": line_id, "fulfillment_type": line.fulfillment_type.value},
            )
        if line.production_task_id or self.repository.get_task_for_line(line_id):
            raise ConflictError(
                "Line already has a production task",
                code="PRODUCTION_TASK_EXISTS",
                details={"line_id": line_id},
            )

        recipe = self.repository.get_active_recipe(line.product_id)
        if recipe is None or not recipe.materials:
            raise RecipeRequiredError(line.product_id)

        missing = self.availability.find_shortages(recipe, line.quantity)
        if missing:
            raise InsufficientMaterialsError([m.model_dump(mode="json") for m in missing])

        task = self._create_task(line, recipe, line.quantity)
        self.repository.update_order_line(line.id, {"fulfillment_notes": None})
        return task

    # ===================
    # TASK LIFECYCLE
    # ===================

    def _get_task(self, task_id: str) -> ProductionTask:
        task = self.repository.get_production_task(task_id)
        if task is None:
            raise ProductionTaskNotFoundError(task_id)
        return task

    def start_production(self, task_id: str) -> ProductionTask:
        """
        Move a task pending -> in_progress, consuming its materials.

        Allocation is re-run against current lots (the plan stored on the
        task is not reused). All lot debits and the status change are one
        guarded write.

        Raises:
            ProductionTaskNotFoundError: If the task doesn't exist
            InvalidStatusTransitionError: If the task is not pending
            RecipeRequiredError: If the product has no active recipe
            InsufficientMaterialsError: If any material falls short now
            ConcurrencyConflictError: If a lot or the task changed under us
        """
        task = self._get_task(task_id)
        if task.status != TaskStatus.PENDING:
            raise InvalidStatusTransitionError(
                task.status.value, TaskStatus.IN_PROGRESS.value, entity="production_task"
            )

        recipe = self.repository.get_active_recipe(task.product_id)
        if recipe is None or not recipe.materials:
            raise RecipeRequiredError(task.product_id)

        plans = self.allocator.plan_recipe(recipe, task.quantity)
        missing = _shortage_details(plans)
        if missing:
            logger.warning("production_start_short", task_id=task_id, missing=missing)
            raise InsufficientMaterialsError(missing, task_id=task_id)

        movements = [
            MaterialMovementCreate(
                material_lot_id=allocation.lot_id,
                quantity_change=-allocation.quantity,
                reason=MovementReason.PRODUCTION,
                production_task_id=task_id,
                notes=f"Production task {task_id}",
            )
            for plan in plans
            for allocation in plan.allocations
        ]

        written = self.repository.start_production_task(task_id, movements)
        if written is None:
            logger.warning("production_start_conflict", task_id=task_id)
            raise ConcurrencyConflictError("start_production", {"task_id": task_id})

        if task.order_line_id:
            self.repository.update_order_line(
                task.order_line_id,
                {"fulfillment_status": FulfillmentStatus.IN_PRODUCTION},
            )

        logger.info(
            "production_started",
            task_id=task_id,
            product_id=task.product_id,
            quantity=task.quantity,
            movements=len(written)
        )
        return self._get_task(task_id)

    def complete_production(self, task_id: str) -> ProductionTask:
        """
        Move a task in_progress -> completed and add its units to stock.

        If the task came from an order line, the produced units that line
        still lacks are reserved for it and the line is marked ready. Both
        happen in the same guarded write as the stock increase.

        Raises:
            ProductionTaskNotFoundError: If the task doesn't exist
            InvalidStatusTransitionError: If the task is not in progress
            ConcurrencyConflictError: If the task changed under us
        """
        task = self._get_task(task_id)
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidStatusTransitionError(
                task.status.value, TaskStatus.COMPLETED.value, entity="production_task"
            )

        completed = self.repository.complete_production_task(task_id)
        if completed is None:
            raise ConcurrencyConflictError("complete_production", {"task_id": task_id})

        logger.info(
            "production_completed",
            task_id=task_id,
            product_id=task.product_id,
            quantity=task.quantity,
            order_line_id=task.order_line_id
        )
        return completed

    def delete_pending_task(self, task_id: str) -> None:
        """
        Remove a task from the queue before it starts.

        Nothing has been consumed yet, so no lot changes. The order line
        (if any) loses its task link and can be queued again.

        Raises:
            ProductionTaskNotFoundError: If the task doesn't exist
            InvalidStatusTransitionError: If the task already started
        """
        task = self._get_task(task_id)
        if task.status != TaskStatus.PENDING:
            raise InvalidStatusTransitionError(task.status.value, "deleted", entity="production_task")

        if not self.repository.delete_pending_task(task_id):
            raise ConcurrencyConflictError("delete_pending_task", {"task_id": task_id})

        if task.order_line_id:
            self.repository.update_order_line(
                task.order_line_id,
                {"fulfillment_notes": "Production task removed from queue"},
            )

        logger.info("production_task_deleted", task_id=task_id, order_line_id=task.order_line_id)

    # ===================
    # QUEUE AND REPORTING
    # ===================

    def list_queue(self, statuses: Optional[list[TaskStatus]] = None) -> list[ProductionTask]:
        """Tasks by priority, then due date."""
        if statuses is None:
            statuses = [TaskStatus.PENDING, TaskStatus.IN_PROGRESS]
        tasks = self.repository.list_production_tasks(statuses)
        far_future = utc_now() + timedelta(days=3650)
        return sorted(
            tasks,
            key=lambda t: (_PRIORITY_RANK[t.priority], t.due_date or far_future, t.id)
        )

    def get_production_needs(self) -> list[ProductionNeed]:
        """
        Units waiting for production, grouped by product.

        Counts unreserved quantity on lines of orders whose flow status is
        NEED_PRODUCTION.
        """
        try:
            orders = self.repository.list_orders([OrderFlowStatus.NEED_PRODUCTION])
            aggregated: dict[str, ProductionNeed] = {}

            for order in orders:
                for line in self.repository.list_order_lines(order.id):
                    if line.fulfillment_type not in (
                        FulfillmentType.PRODUCE_ON_DEMAND,
                        FulfillmentType.READY_STOCK,
                    ):
                        continue
                    if line.fulfillment_status in (
                        FulfillmentStatus.IN_PRODUCTION,
                        FulfillmentStatus.SHIPPED,
                        FulfillmentStatus.CANCELLED,
                    ):
                        continue
                    outstanding = line.quantity - line.reserved_quantity
                    if outstanding <= 0:
                        continue

                    need = aggregated.get(line.product_id)
                    if need is None:
                        product = self.repository.get_product(line.product_id)
                        need = ProductionNeed(
                            product_id=line.product_id,
                            product_name=product.name if product else line.product_id,
                            quantity=0,
                            orders_count=0,
                            priority=TaskPriority.NORMAL,
                        )
                        aggregated[line.product_id] = need
                    need.quantity += outstanding
                    need.orders_count += 1
                    need.order_numbers.append(order.order_number)

            threshold = settings.production_high_priority_threshold
            for need in aggregated.values():
                need.priority = TaskPriority.HIGH if need.quantity > threshold else TaskPriority.NORMAL

            needs = sorted(aggregated.values(), key=lambda n: (-n.quantity, n.product_name))
            logger.info("production_needs_calculated", products=len(needs))
            return needs

        except AppError:
            raise
        except Exception as e:
            logger.error("production_needs_failed", error=str(e), error_type=type(e).__name__)
            raise DatabaseError("select", str(e))

    def get_production_cost(self, task_id: str) -> ProductionCost:
        """
        Material cost of a started task from its consumption movements.

        Raises:
            ProductionTaskNotFoundError: If the task doesn't exist
        """
        task = self._get_task(task_id)
        movements = self.repository.list_movements(production_task_id=task_id)

        lines = []
        for movement in movements:
            if movement.reason != MovementReason.PRODUCTION:
                continue
            lot = self.repository.get_lot(movement.material_lot_id)
            if lot is None:
                continue
            definition = self.repository.get_material_definition(lot.material_definition_id)
            quantity = abs(movement.quantity_change)
            lines.append(ProductionCostLine(
                material_definition_id=lot.material_definition_id,
                material_name=definition.name if definition else lot.material_definition_id,
                material_lot_id=lot.id,
                supplier_name=lot.supplier_name,
                quantity=quantity,
                cost_per_unit=lot.cost_per_unit,
                total_cost=quantity * lot.cost_per_unit,
            ))

        total = sum((l.total_cost for l in lines), Decimal("0"))
        return ProductionCost(
            task_id=task.id,
            product_id=task.product_id,
            quantity=task.quantity,
            total_cost=total,
            unit_cost=(total / task.quantity).quantize(Decimal("0.01")),
            lines=lines,
        )


# Singleton instance
_production_service: Optional[ProductionService] = None


def get_production_service() -> ProductionService:
    """Get or create production service instance."""
    global _production_service
    if _production_service is None:
        _production_service = ProductionService()
    return _production_service
