from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.models.submission import SubmissionStatus
from fieldforms.schemas.submission import (
    ApproveRequest,
    RejectRequest,
    SubmissionListResponse,
    SubmissionResponse,
)
from fieldforms.services.review_service import ReviewService
from fieldforms.services.submission_service import SubmissionService
from fieldforms.middleware.rate_limit import rate_limit_reviews
from fieldforms.api.deps import AuditContext, get_audit_context_with_api_key, get_review_service

router = APIRouter()


@router.get("", response_model=SubmissionListResponse)
async def list_submissions(
    form_id: Optional[int] = Query(None),
    agent_id: Optional[int] = Query(None),
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    exclude_rejected: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    submissions, total = await SubmissionService.list_submissions(
        db,
        tenant_id=audit_context.tenant_id,
        form_id=form_id,
        agent_id=agent_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        exclude_rejected=exclude_rejected,
        limit=limit,
        offset=offset,
    )
    return SubmissionListResponse(
        submissions=[SubmissionResponse.model_validate(s) for s in submissions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: int,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    db: AsyncSession = Depends(get_db)
):
    submission = await SubmissionService.get_submission(db, submission_id, tenant_id=audit_context.tenant_id)
    return SubmissionResponse.model_validate(submission)


@router.post("/{submission_id}/approve", response_model=SubmissionResponse)
@rate_limit_reviews()
async def approve_submission(
    request: Request,
    submission_id: int,
    review: ApproveRequest,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    review_service: ReviewService = Depends(get_review_service),
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending submission. The reviewer must not be the submitter."""
    submission = await review_service.approve(
        db,
        submission_id,
        reviewer_id=review.reviewer_id,
        notes=review.notes,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    return SubmissionResponse.model_validate(submission)


@router.post("/{submission_id}/reject", response_model=SubmissionResponse)
@rate_limit_reviews()
async def reject_submission(
    request: Request,
    submission_id: int,
    review: RejectRequest,
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    review_service: ReviewService = Depends(get_review_service),
    db: AsyncSession = Depends(get_db)
):
    """Reject a pending submission with a reason. The reviewer must not be the submitter."""
    submission = await review_service.reject(
        db,
        submission_id,
        reviewer_id=review.reviewer_id,
        reason=review.reason,
        tenant_id=audit_context.tenant_id,
        actor=audit_context.actor,
    )
    return SubmissionResponse.model_validate(submission)
