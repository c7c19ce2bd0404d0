from sqlalchemy import Column, Integer, String, Enum as SQLEnum, JSON
import enum
from fieldforms.database import Base
from fieldforms.models.types import UTCDateTime, utcnow


class ActionType(str, enum.Enum):
    """Action type enumeration for audit logging."""
    FORM_CREATED = "form_created"
    FORM_UPDATED = "form_updated"
    FORM_DEACTIVATED = "form_deactivated"
    ATTACHMENT_SAVED = "attachment_saved"
    ATTACHMENT_REMOVED = "attachment_removed"
    CYCLE_LOG_CREATED = "cycle_log_created"
    CYCLE_LOG_FROZEN = "cycle_log_frozen"
    CYCLE_LOG_UNFROZEN = "cycle_log_unfrozen"
    SUBMISSION_CREATED = "submission_created"
    SUBMISSION_APPROVED = "submission_approved"
    SUBMISSION_REJECTED = "submission_rejected"
    ROLLOVER_RECORDED = "rollover_recorded"


class UserType(str, enum.Enum):
    """User type enumeration for audit logging."""
    USER = "user"
    API_KEY = "api_key"
    SYSTEM = "system"


class AuditLog(Base):
    """Audit log model - trail of engine state transitions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action_type = Column(SQLEnum(ActionType), nullable=False, index=True)
    user_type = Column(SQLEnum(UserType), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)  # platform user id or api_key_id
    resource_type = Column(String, nullable=True, index=True)  # e.g., "form", "cycle_log", "submission"
    resource_id = Column(Integer, nullable=True, index=True)
    details = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="success", index=True)
    request_id = Column(String, nullable=True, index=True)  # UUID for request tracing
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
