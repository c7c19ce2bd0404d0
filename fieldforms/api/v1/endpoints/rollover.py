from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.schemas.rollover import RolloverRequest, SystemEventListResponse, SystemEventResponse
from fieldforms.services.rollover_service import RolloverService
from fieldforms.api.deps import AuditContext, get_audit_context_with_api_key, get_rollover_service

router = APIRouter()


@router.post("", response_model=SystemEventResponse, status_code=status.HTTP_201_CREATED)
async def record_rollover(
    body: Optional[RolloverRequest] = None,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    rollover_service: RolloverService = Depends(get_rollover_service),
    db: AsyncSession = Depends(get_db)
):
    """Record the monthly rollover event. No cycle data is changed."""
    event = await rollover_service.record_rollover(
        db,
        triggered_by=body.triggered_by if body else None,
        actor=audit_context.actor,
    )
    return SystemEventResponse.model_validate(event)


@router.get("/events", response_model=SystemEventListResponse)
async def list_rollover_events(
    limit: int = Query(12, ge=1, le=120),
    offset: int = Query(0, ge=0),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    events, total = await RolloverService.list_rollover_events(db, limit=limit, offset=offset)
    return SystemEventListResponse(
        events=[SystemEventResponse.model_validate(event) for event in events],
        total=total,
    )
