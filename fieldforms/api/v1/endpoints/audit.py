from typing import Optional, Literal
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.schemas.audit import AuditLogResponse, AuditLogListResponse
from fieldforms.services.audit_service import AuditService
from fieldforms.models.audit_log import ActionType, UserType
from fieldforms.api.deps import AuditContext, get_audit_context_with_api_key

router = APIRouter()

# Allowed values for query parameters
ALLOWED_RESOURCE_TYPES = Literal["form", "cycle_log", "submission", "system_event"]
ALLOWED_STATUS_VALUES = Literal["success", "error"]


@router.get("", response_model=AuditLogListResponse)
async def get_audit_logs(
    action_type: Optional[ActionType] = Query(None),
    user_type: Optional[UserType] = Query(None),
    user_id: Optional[int] = Query(None),
    resource_type: Optional[ALLOWED_RESOURCE_TYPES] = Query(None),
    resource_id: Optional[int] = Query(None),
    status_filter: Optional[ALLOWED_STATUS_VALUES] = Query(None, alias="status"),
    request_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(100, le=1000),
    offset: int = Query(0, ge=0),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    """Query the engine's audit trail."""
    logs, total = await AuditService.get_audit_logs(
        db=db,
        action_type=action_type,
        user_type=user_type,
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        status=status_filter,
        request_id=request_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset
    )

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset
    )
