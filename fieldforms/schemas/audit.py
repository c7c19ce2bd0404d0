from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel
from fieldforms.models.audit_log import ActionType, UserType


class AuditLogResponse(BaseModel):
    """Response schema for audit log."""
    id: int
    action_type: ActionType
    user_type: UserType
    user_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    status: str
    request_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    """Response schema for audit log list."""
    logs: list[AuditLogResponse]
    total: int
    limit: int
    offset: int
