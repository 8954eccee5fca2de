"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.orders import router as orders_router
from routes.production import router as production_router
from routes.materials import router as materials_router
from routes.operations import router as operations_router

__all__ = [
    "orders_router",
    "production_router",
    "materials_router",
    "operations_router",
]
