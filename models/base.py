"""
Base schemas and helpers for all models.
"""

from pydantic import BaseModel, ConfigDict
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current time (UTC)."""
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """Strips string whitespace and re-validates on assignment."""
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Add timestamps to stored records."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
