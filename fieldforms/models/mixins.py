"""
Database model mixins for common functionality.
"""
from sqlalchemy import Column
from fieldforms.models.types import UTCDateTime, utcnow


class TimestampMixin:
    """
    Mixin for creation/modification timestamps.

    Timestamps are set from Python so they carry UTC on every backend.
    """
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
