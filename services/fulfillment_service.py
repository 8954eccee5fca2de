"""
Fulfillment decision engine.

Runs decide + apply exactly once per undecided order line. Lines that
are already decided are never re-decided; their operational status is
recomputed instead.

Lines are processed sequentially, in order, so allocation planning stays
deterministic.
"""

from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.fulfillment import ApplyResult, BatchResult
from services.production_service import ProductionService
from services.order_status_service import OrderStatusService
from exceptions import (
    AppError,
    ConcurrencyConflictError,
    ExternalServiceError,
    OrderLineNotFoundError,
    OrderNotFoundError,
)

logger = structlog.get_logger(__name__)

# A lost reservation race is re-decided once against fresh stock
MAX_DECISION_ATTEMPTS = 2


class FulfillmentService:
    """Idempotent driver of the production service over order lines."""

    def __init__(
        self,
        repository: Optional[FulfillmentRepository] = None,
        production: Optional[ProductionService] = None,
        status: Optional[OrderStatusService] = None,
    ):
        self.repository = repository or get_repository()
        self.production = production or ProductionService(self.repository)
        self.status = status or OrderStatusService(self.repository)

    def process_line(self, line_id: str) -> ApplyResult:
        """
        Decide and apply one line if it is still PENDING.

        Raises:
            OrderLineNotFoundError: If the line doesn't exist
            OrderNotFoundError: If the line's order doesn't exist
            ConcurrencyConflictError: If re-deciding did not resolve a lost race
        """
        line = self.repository.get_order_line(line_id)
        if line is None:
            raise OrderLineNotFoundError(line_id)
        order = self.repository.get_order(line.order_id)
        if order is None:
            raise OrderNotFoundError(line.order_id)

        if line.is_decided:
            operational = self.status.calculate_line_status(order, line)
            logger.debug(
                "line_already_decided",
                line_id=line_id,
                type=line.fulfillment_type.value,
                operational_status=operational.value
            )
            return ApplyResult(
                order_line_id=line_id,
                applied=False,
                type=line.fulfillment_type,
                reserved_quantity=line.reserved_quantity,
                production_task_id=line.production_task_id,
                operational_status=operational,
                message="Line already decided",
            )

        for attempt in range(1, MAX_DECISION_ATTEMPTS + 1):
            decision = self.production.decide_fulfillment_scenario(
                line.product_id, line.quantity, order.channel_hint
            )
            try:
                return self.production.apply_fulfillment_scenario(line_id, decision)
            except ConcurrencyConflictError:
                if attempt == MAX_DECISION_ATTEMPTS:
                    raise
                logger.info("line_redecided_after_conflict", line_id=line_id, attempt=attempt)

    def process_lines(self, line_ids: list[str]) -> BatchResult:
        """
        Process lines in order.

        A failing line is counted and the batch continues. An upstream
        service failure aborts the remaining lines; lines already applied
        stay applied.
        """
        result = BatchResult()

        for line_id in line_ids:
            result.processed += 1
            try:
                outcome = self.process_line(line_id)
            except ExternalServiceError as e:
                result.failed += 1
                result.aborted = True
                result.errors.append(f"{line_id}: {e.message}")
                logger.error("fulfillment_batch_aborted", line_id=line_id, error=e.message)
                break
            except AppError as e:
                result.failed += 1
                result.errors.append(f"{line_id}: {e.message}")
                logger.error("line_processing_failed", line_id=line_id, error=e.message, code=e.code)
                continue

            if outcome.applied:
                result.succeeded += 1
            else:
                result.skipped += 1

        logger.info(
            "fulfillment_batch_processed",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
            aborted=result.aborted
        )
        return result

    def process_order(self, order_id: str) -> BatchResult:
        """
        Process every line of an order, then recompute its flow status.

        Raises:
            OrderNotFoundError: If the order doesn't exist
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        lines = self.repository.list_order_lines(order_id)
        result = self.process_lines([line.id for line in lines])
        self.status.recalculate_order(order_id)
        return result


# Singleton instance
_fulfillment_service: Optional[FulfillmentService] = None


def get_fulfillment_service() -> FulfillmentService:
    """Get or create fulfillment service instance."""
    global _fulfillment_service
    if _fulfillment_service is None:
        _fulfillment_service = FulfillmentService()
    return _fulfillment_service
