"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Not found
    ProductNotFoundError,
    OrderNotFoundError,
    OrderLineNotFoundError,
    ProductionTaskNotFoundError,
    MaterialLotNotFoundError,
    MaterialDefinitionNotFoundError,
    WarehouseNotFoundError,
    RecipeNotFoundError,

    # Validation
    InvalidQuantityError,
    RecipeRequiredError,
    InvalidStatusTransitionError,

    # Insufficient / conflict
    InsufficientStockError,
    InsufficientMaterialsError,
    ConcurrencyConflictError,
    RecalculationInProgressError,

    # Integrations
    ChannelError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Not found
    "ProductNotFoundError",
    "OrderNotFoundError",
    "OrderLineNotFoundError",
    "ProductionTaskNotFoundError",
    "MaterialLotNotFoundError",
    "MaterialDefinitionNotFoundError",
    "WarehouseNotFoundError",
    "RecipeNotFoundError",

    # Validation
    "InvalidQuantityError",
    "RecipeRequiredError",
    "InvalidStatusTransitionError",

    # Insufficient / conflict
    "InsufficientStockError",
    "InsufficientMaterialsError",
    "ConcurrencyConflictError",
    "RecalculationInProgressError",

    # Integrations
    "ChannelError",
]
