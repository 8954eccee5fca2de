"""
Repository selection.

settings.data_backend picks the store:
    supabase - SupabaseRepository over the hosted database (default)
    memory   - InMemoryRepository, process-local
"""

from typing import Optional

import structlog

from config import settings
from repositories.base import FulfillmentRepository
from repositories.memory_repository import InMemoryRepository
from repositories.supabase_repository import SupabaseRepository

logger = structlog.get_logger(__name__)

_repository: Optional[FulfillmentRepository] = None


def get_repository() -> FulfillmentRepository:
    """Get or create the process-wide repository."""
    global _repository
    if _repository is None:
        if settings.data_backend == "memory":
            _repository = InMemoryRepository()
        else:
            _repository = SupabaseRepository()
        logger.info("repository_initialized", backend=settings.data_backend)
    return _repository


def set_repository(repository: Optional[FulfillmentRepository]) -> None:
    """Replace the process-wide repository (None resets to settings)."""
    global _repository
    _repository = repository


__all__ = [
    "FulfillmentRepository",
    "InMemoryRepository",
    "SupabaseRepository",
    "get_repository",
    "set_repository",
]
