import logging
from typing import Optional, Dict, Any
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.models.audit_log import ActionType
from fieldforms.models.form import Form
from fieldforms.models.submission import Submission, SubmissionStatus
from fieldforms.core.clock import Clock, system_clock
from fieldforms.core.exceptions import (
    AlreadyReviewedException,
    RejectionReasonRequiredException,
    SelfReviewForbiddenException,
    SubmissionNotFoundException,
)
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.services.audit_service import AuditActor, AuditService
from fieldforms.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Four-eye review of submissions.

    A submission is decided exactly once, by someone other than its
    submitter. The decision is a single guarded UPDATE; when it matches no
    row the current state explains which rule was broken.
    """

    def __init__(self, clock: Optional[Clock] = None, audit: Optional[AuditService] = None):
        self.clock = clock or system_clock
        self.audit = audit or AuditService()

    async def approve(
        self,
        db: AsyncSession,
        submission_id: int,
        reviewer_id: int,
        notes: Optional[str] = None,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> Submission:
        """
        Raises:
            SubmissionNotFoundException, SelfReviewForbiddenException, AlreadyReviewedException
        """
        now = self.clock.now()
        return await self._decide(
            db,
            submission_id,
            reviewer_id,
            values={
                "status": SubmissionStatus.APPROVED,
                "approved_by": reviewer_id,
                "approved_at": now,
                "review_notes": notes,
                "updated_at": now,
            },
            action=ActionType.SUBMISSION_APPROVED,
            details={"reviewer_id": reviewer_id, "notes": notes},
            tenant_id=tenant_id,
            actor=actor,
        )

    async def reject(
        self,
        db: AsyncSession,
        submission_id: int,
        reviewer_id: int,
        reason: str,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> Submission:
        """
        Reject with a mandatory reason, stored as both rejection reason and review notes.

        Raises:
            RejectionReasonRequiredException, SubmissionNotFoundException,
            SelfReviewForbiddenException, AlreadyReviewedException
        """
        reason = (reason or "").strip()
        if not reason:
            raise RejectionReasonRequiredException()

        now = self.clock.now()
        return await self._decide(
            db,
            submission_id,
            reviewer_id,
            values={
                "status": SubmissionStatus.REJECTED,
                "rejected_by": reviewer_id,
                "rejected_at": now,
                "rejection_reason": reason,
                "review_notes": reason,
                "updated_at": now,
            },
            action=ActionType.SUBMISSION_REJECTED,
            details={"reviewer_id": reviewer_id, "reason": reason},
            tenant_id=tenant_id,
            actor=actor,
        )

    async def _decide(
        self,
        db: AsyncSession,
        submission_id: int,
        reviewer_id: int,
        values: Dict[str, Any],
        action: ActionType,
        details: Dict[str, Any],
        tenant_id: Optional[int],
        actor: Optional[AuditActor],
    ) -> Submission:
        conditions = [
            Submission.id == submission_id,
            Submission.submitted_by != reviewer_id,
            Submission.approved_by.is_(None),
            Submission.rejected_by.is_(None),
        ]
        if tenant_id is not None:
            conditions.append(Submission.form_id.in_(select(Form.id).where(Form.tenant_id == tenant_id)))

        try:
            result = await db.execute(
                update(Submission)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                await db.commit()
            else:
                await db.rollback()
        except Exception:
            await db.rollback()
            raise

        if result.rowcount != 1:
            await self._raise_rejected_decision(db, submission_id, reviewer_id, tenant_id, action)

        submission = await SubmissionService.get_submission(db, submission_id)
        logger.info(
            sanitize_log_message(
                "Submission reviewed",
                SubmissionID=submission_id,
                Status=submission.status.value,
                ReviewerID=reviewer_id,
                RequestID=actor.request_id if actor else None,
            )
        )
        await self.audit.record(
            action,
            resource_type="submission",
            resource_id=submission_id,
            details={**details, "submitted_by": submission.submitted_by},
            actor=actor,
        )
        return submission

    @staticmethod
    async def _raise_rejected_decision(
        db: AsyncSession,
        submission_id: int,
        reviewer_id: int,
        tenant_id: Optional[int],
        action: ActionType,
    ) -> None:
        try:
            submission = await SubmissionService.get_submission(db, submission_id, tenant_id=tenant_id)
        except SubmissionNotFoundException:
            logger.info(sanitize_log_message("Review of unknown submission", SubmissionID=submission_id))
            raise

        if submission.submitted_by == reviewer_id:
            logger.warning(
                sanitize_log_message(
                    "Self review refused",
                    SubmissionID=submission_id,
                    ReviewerID=reviewer_id,
                    Action=action.value,
                )
            )
            raise SelfReviewForbiddenException()

        logger.info(
            sanitize_log_message(
                "Submission already reviewed",
                SubmissionID=submission_id,
                Status=submission.status.value,
                ReviewerID=reviewer_id,
            )
        )
        raise AlreadyReviewedException(
            detail=f"Submission has already been {submission.status.value}"
        )
