from sqlalchemy import Column, Integer, String, JSON
from fieldforms.database import Base
from fieldforms.models.types import UTCDateTime, utcnow

MONTHLY_ROLLOVER_EVENT = "monthly_form_log_reset"


class SystemEvent(Base):
    """System event model - operator-triggered events kept for reporting only."""

    __tablename__ = "system_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    event_data = Column(JSON, nullable=False, default=dict)
    triggered_by = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
