import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.models.agent import Agent
from fieldforms.schemas.cycle_log import CycleLogResponse
from fieldforms.schemas.submission import SubmissionCreateRequest, SubmissionCreateResponse
from fieldforms.schemas.visibility import (
    AvailableFormResponse,
    AvailableFormsResponse,
    VisibilityResponse,
)
from fieldforms.services.form_service import FormService
from fieldforms.services.submission_service import SubmissionService
from fieldforms.services.visibility_service import VisibilityService
from fieldforms.core.exceptions import FormNotFoundException
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.middleware.rate_limit import rate_limit_submissions
from fieldforms.api.deps import (
    AuditContext,
    get_audit_context_with_api_key,
    get_submission_service,
    get_tenant_agent,
    get_visibility_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{agent_id}/forms", response_model=AvailableFormsResponse)
async def get_available_forms(
    agent: Agent = Depends(get_tenant_agent),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    visibility_service: VisibilityService = Depends(get_visibility_service),
    db: AsyncSession = Depends(get_db)
):
    """Forms the agent can submit right now."""
    available = await visibility_service.get_available_forms(
        db, agent.id, tenant_id=audit_context.tenant_id, actor=audit_context.actor
    )
    return AvailableFormsResponse(
        agent_id=agent.id,
        forms=[
            AvailableFormResponse(
                form_id=form.id,
                internal_form_id=form.internal_form_id,
                title=form.title,
                visibility=VisibilityResponse.from_result(form.id, agent.id, result),
            )
            for form, result in available
        ],
    )


@router.get("/{agent_id}/forms/{form_id}/visibility", response_model=VisibilityResponse)
async def check_visibility(
    form_id: int,
    agent: Agent = Depends(get_tenant_agent),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    visibility_service: VisibilityService = Depends(get_visibility_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Whether the agent may submit the form now. Not-visible outcomes are
    answered with 200 and a reason, never as errors.
    """
    result = await visibility_service.check_visibility(
        db, form_id, agent.id, tenant_id=audit_context.tenant_id, actor=audit_context.actor
    )
    return VisibilityResponse.from_result(form_id, agent.id, result)


@router.get("/{agent_id}/forms/{form_id}/cycle-log", response_model=CycleLogResponse)
async def get_current_cycle_log(
    form_id: int,
    agent: Agent = Depends(get_tenant_agent),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    visibility_service: VisibilityService = Depends(get_visibility_service),
    db: AsyncSession = Depends(get_db)
):
    """This month's cycle log for the pair. Read only: 404 until the pair is first touched."""
    await FormService.get_form(db, form_id, tenant_id=audit_context.tenant_id)
    log = await visibility_service.cycle_logs.get_current_log(db, form_id, agent.id)
    if log is None:
        raise FormNotFoundException(detail="No cycle log for the current month")
    return CycleLogResponse.model_validate(log)


@router.post(
    "/{agent_id}/forms/{form_id}/submissions",
    response_model=SubmissionCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
@rate_limit_submissions()
async def submit_form(
    request: Request,
    form_id: int,
    submission: SubmissionCreateRequest,
    agent: Agent = Depends(get_tenant_agent),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    submission_service: SubmissionService = Depends(get_submission_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a form for the agent, consuming one of this month's cycles.
    Answers 409 with the visibility reason when the form is not available.
    """
    result = await submission_service.submit(
        db,
        form_id,
        agent.id,
        payload=submission.submission_data,
        submitted_by=submission.submitted_by,
        latitude=submission.latitude,
        longitude=submission.longitude,
        time_spent_seconds=submission.time_spent_seconds,
        supervisor_name=submission.supervisor_name,
        supervisor_code=submission.supervisor_code,
        form_started_at=submission.form_started_at,
        form_end_time=submission.form_end_time,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    logger.debug(
        sanitize_log_message(
            "Submit endpoint completed",
            SubmissionID=result.submission_id,
            Latitude=submission.latitude,
            Longitude=submission.longitude,
            RequestID=audit_context.request_id,
        )
    )
    return SubmissionCreateResponse(
        submission_id=result.submission_id,
        cycle_number=result.cycle_number,
        frozen_until=result.frozen_until,
    )
