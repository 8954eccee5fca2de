"""
Custom exception classes for the application.

Not-found outcomes on the fulfillment decision path are NOT raised; they
degrade to a blocked status with a reason. The errors below are for
operator actions, validation, and guarded writes that lost a race.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "ORDER_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# NOT FOUND
# ===================

class ProductNotFoundError(NotFoundError):
    """Product not found."""

    def __init__(self, product_id: str):
        super().__init__(resource="Product", identifier=product_id)


class OrderNotFoundError(NotFoundError):
    """Order not found."""

    def __init__(self, order_id: str):
        super().__init__(resource="Order", identifier=order_id)


class OrderLineNotFoundError(NotFoundError):
    """Order line not found."""

    def __init__(self, line_id: str):
        super().__init__(resource="Order line", identifier=line_id, code="ORDER_LINE_NOT_FOUND")


class ProductionTaskNotFoundError(NotFoundError):
    """Production task not found."""

    def __init__(self, task_id: str):
        super().__init__(
            resource="Production task",
            identifier=task_id,
            code="PRODUCTION_TASK_NOT_FOUND"
        )


class MaterialLotNotFoundError(NotFoundError):
    """Material lot not found."""

    def __init__(self, lot_id: str):
        super().__init__(resource="Material lot", identifier=lot_id, code="MATERIAL_LOT_NOT_FOUND")


class MaterialDefinitionNotFoundError(NotFoundError):
    """Material definition not found."""

    def __init__(self, definition_id: str):
        super().__init__(
            resource="Material definition",
            identifier=definition_id,
            code="MATERIAL_DEFINITION_NOT_FOUND"
        )


class WarehouseNotFoundError(NotFoundError):
    """Warehouse not found."""

    def __init__(self, warehouse_id: str):
        super().__init__(resource="Warehouse", identifier=warehouse_id)


class RecipeNotFoundError(NotFoundError):
    """Recipe not found."""

    def __init__(self, recipe_id: str):
        super().__init__(resource="Recipe", identifier=recipe_id)


# ===================
# VALIDATION
# ===================

class InvalidQuantityError(ValidationError):
    """Quantity must be positive."""

    def __init__(self, quantity: Any, field: str = "quantity"):
        super().__init__(
            code="INVALID_QUANTITY",
            message=f"{field} must be positive",
            details={"field": field, "provided": str(quantity)}
        )


class RecipeRequiredError(ValidationError):
    """Operation needs an active recipe for the product."""

    def __init__(self, product_id: str):
        super().__init__(
            code="RECIPE_REQUIRED",
            message="No active recipe defined for product",
            details={"product_id": product_id}
        )


class InvalidStatusTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, current_status: str, new_status: str, entity: str = "order"):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot change {entity} status from {current_status} to {new_status}",
            details={
                "entity": entity,
                "current_status": current_status,
                "requested_status": new_status
            }
        )


# ===================
# INSUFFICIENT / CONFLICT
# ===================

class InsufficientStockError(ConflictError):
    """Not enough finished goods to cover the request."""

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            code="INSUFFICIENT_STOCK",
            message="Not enough finished goods in stock",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available
            }
        )


class InsufficientMaterialsError(ConflictError):
    """One or more materials cannot cover the requirement."""

    def __init__(self, missing: list[dict], task_id: Optional[str] = None):
        super().__init__(
            code="INSUFFICIENT_MATERIALS",
            message="Not enough materials to cover the requirement",
            details={"task_id": task_id, "missing_materials": missing}
        )


class ConcurrencyConflictError(ConflictError):
    """
    A guarded write affected zero rows.

    The precondition held when the caller decided but not when the write
    ran. Callers should re-read state and decide again.
    """

    def __init__(self, operation: str, details: Optional[dict] = None):
        super().__init__(
            code="CONCURRENT_MODIFICATION",
            message=f"Concurrent modification detected during {operation}",
            details={"operation": operation, **(details or {})}
        )


class RecalculationInProgressError(ConflictError):
    """A status recalculation batch is already running."""

    def __init__(self):
        super().__init__(
            code="RECALCULATION_IN_PROGRESS",
            message="Status recalculation is already running"
        )


# ===================
# INTEGRATIONS
# ===================

class ChannelError(ExternalServiceError):
    """Sales channel API failure."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(
            service="channel",
            message=message,
            details={"http_status": status_code, "endpoint": endpoint}
        )
