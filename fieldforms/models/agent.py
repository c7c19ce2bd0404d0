from sqlalchemy import Column, Integer, String, ForeignKey
from fieldforms.database import Base
from fieldforms.models.types import UTCDateTime, utcnow

# Profile attributes that visibility criteria may reference
CRITERIA_FIELDS = ("full_name", "email", "phone", "status", "agent_code")


class Agent(Base):
    """Agent model - field agent profile consulted by visibility criteria."""

    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    status = Column(String, nullable=True)
    agent_code = Column(String, nullable=True, index=True)
    supervisor_id = Column(Integer, ForeignKey("agents.id"), nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def profile(self) -> dict:
        """Flat field lookup table for criteria evaluation."""
        return {field: getattr(self, field) for field in CRITERIA_FIELDS}
