from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.schemas.form import (
    FormCreateRequest,
    FormUpdateRequest,
    FormResponse,
    FormListResponse,
    FormConfigHistoryResponse,
)
from fieldforms.schemas.attachment import AttachmentSaveRequest, AttachmentResponse
from fieldforms.services.form_service import FormService
from fieldforms.services.submission_service import SubmissionService
from fieldforms.api.deps import AuditContext, get_audit_context_with_api_key, get_form_service

router = APIRouter()


@router.post("", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def create_form(
    body: FormCreateRequest,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    form_service: FormService = Depends(get_form_service),
    db: AsyncSession = Depends(get_db)
):
    """Create a recurring form for the caller's tenant."""
    form = await form_service.create_form(
        db,
        tenant_id=audit_context.tenant_id,
        title=body.title,
        description=body.description,
        form_schema=body.form_schema,
        department_id=body.department_id,
        created_by=body.created_by,
        attach_to_specific_agents=body.attach_to_specific_agents,
        cycles_per_month=body.cycles_per_month,
        freeze_enabled=body.freeze_enabled,
        freeze_duration=body.freeze_duration,
        actor=audit_context.actor,
    )
    return FormResponse.from_form(form)


@router.get("", response_model=FormListResponse)
async def list_forms(
    department_id: Optional[int] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    forms, total = await FormService.list_forms(
        db,
        tenant_id=audit_context.tenant_id,
        department_id=department_id,
        is_active=is_active,
        limit=limit,
        offset=offset,
    )
    return FormListResponse(
        forms=[FormResponse.from_form(form) for form in forms],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(
    form_id: int,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    form = await FormService.get_form(db, form_id, tenant_id=audit_context.tenant_id)
    return FormResponse.from_form(form)


@router.patch("/{form_id}", response_model=FormResponse)
async def update_form(
    form_id: int,
    body: FormUpdateRequest,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    form_service: FormService = Depends(get_form_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a form. Cycle/freeze changes apply to cycle logs created from now
    on; months already started keep their snapshot.
    """
    form = await form_service.update_form(
        db,
        form_id,
        body.to_changes(),
        changed_by=body.changed_by,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    return FormResponse.from_form(form)


@router.delete("/{form_id}", response_model=FormResponse)
async def deactivate_form(
    form_id: int,
    changed_by: Optional[int] = Query(None),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    form_service: FormService = Depends(get_form_service),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a form. Forms and their history are never removed."""
    form = await form_service.deactivate_form(
        db,
        form_id,
        changed_by=changed_by,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    return FormResponse.from_form(form)


@router.get("/{form_id}/config-history", response_model=List[FormConfigHistoryResponse])
async def get_config_history(
    form_id: int,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    history = await FormService.get_config_history(db, form_id, tenant_id=audit_context.tenant_id)
    return [FormConfigHistoryResponse.model_validate(entry) for entry in history]


@router.get("/{form_id}/submissions/export", response_class=StreamingResponse)
async def export_submissions(
    form_id: int,
    agent_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    include_rejected: bool = Query(False),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    """Form submissions as a CSV download; rejected ones only when asked for."""
    content = await SubmissionService.export_submissions_csv(
        db,
        form_id,
        tenant_id=audit_context.tenant_id,
        agent_id=agent_id,
        start_date=start_date,
        end_date=end_date,
        include_rejected=include_rejected,
    )
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="form-{form_id}-submissions.csv"'},
    )


@router.put("/{form_id}/attachments", response_model=List[AttachmentResponse])
async def save_attachments(
    form_id: int,
    body: AttachmentSaveRequest,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    form_service: FormService = Depends(get_form_service),
    db: AsyncSession = Depends(get_db)
):
    """Attach agents to the form with shared visibility criteria (upsert)."""
    attachments = await form_service.attach_agents(
        db,
        form_id,
        agent_ids=body.agent_ids,
        criteria=[rule.model_dump(mode="json") for rule in body.criteria],
        attached_by=body.attached_by,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    return [AttachmentResponse.model_validate(attachment) for attachment in attachments]


@router.get("/{form_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    form_id: int,
    include_inactive: bool = Query(False),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    attachments = await FormService.list_attachments(
        db, form_id, tenant_id=audit_context.tenant_id, include_inactive=include_inactive
    )
    return [AttachmentResponse.model_validate(attachment) for attachment in attachments]


@router.delete("/{form_id}/attachments/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def detach_agent(
    form_id: int,
    agent_id: int,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    form_service: FormService = Depends(get_form_service),
    db: AsyncSession = Depends(get_db)
):
    await form_service.detach_agent(
        db, form_id, agent_id, tenant_id=audit_context.tenant_id, actor=audit_context.actor
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
