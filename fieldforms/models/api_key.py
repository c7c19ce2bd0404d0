from sqlalchemy import Column, Integer, String, Boolean
from fieldforms.database import Base
from fieldforms.models.types import UTCDateTime, utcnow


class ApiKey(Base):
    """API key model - credentials of the platform services that call the engine."""

    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    key_hash = Column(String, unique=True, nullable=False, index=True)  # Hashed API key
    tenant_id = Column(Integer, nullable=False, index=True)  # tenant the caller acts for
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
