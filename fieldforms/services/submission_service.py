import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.config import settings
from fieldforms.models.audit_log import ActionType
from fieldforms.models.agent import Agent
from fieldforms.models.form import Form
from fieldforms.models.submission import Submission, SubmissionStatus
from fieldforms.core.clock import Clock, ensure_utc, system_clock
from fieldforms.core.exceptions import (
    CycleConflictException,
    FormNotVisibleException,
    SubmissionNotFoundException,
)
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.services.audit_service import AuditActor, AuditService
from fieldforms.services.form_service import FormService
from fieldforms.services.visibility_service import VisibilityService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Submission ID",
    "Agent Name",
    "Agent Code",
    "Cycle",
    "Status",
    "Submitted At",
    "Latitude",
    "Longitude",
    "Time Spent (s)",
    "Supervisor Name",
    "Supervisor Code",
    "Form Started At",
    "Form Ended At",
    "Reviewed By",
    "Reviewed At",
    "Review Notes",
    "Rejection Reason",
]


@dataclass
class SubmissionResult:
    submission_id: int
    cycle_number: int
    frozen_until: Optional[datetime] = None


class SubmissionService:
    """Records form submissions against the agent's monthly cycle budget."""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        audit: Optional[AuditService] = None,
        conflict_retries: Optional[int] = None,
    ):
        self.clock = clock or system_clock
        self.audit = audit or AuditService()
        self.visibility = VisibilityService(self.clock, self.audit)
        self.conflict_retries = settings.SUBMIT_CONFLICT_RETRIES if conflict_retries is None else conflict_retries

    async def submit(
        self,
        db: AsyncSession,
        form_id: int,
        agent_id: int,
        payload: Dict[str, Any],
        submitted_by: int,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        time_spent_seconds: Optional[int] = None,
        supervisor_name: Optional[str] = None,
        supervisor_code: Optional[str] = None,
        form_started_at: Optional[datetime] = None,
        form_end_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> SubmissionResult:
        """
        Consume one cycle and store the submission.

        The cycle log row is the one the visibility check returned; it is
        incremented with a compare-and-set and the submission is inserted in
        the same transaction. Losing the compare-and-set to a concurrent
        submission re-runs the visibility check, so a caller that raced for
        the last cycle ends with FormNotVisibleException(max_cycles_reached).

        Raises:
            FormNotVisibleException: the form is not visible to the agent
            CycleConflictException: every attempt lost to concurrent submissions
        """
        now = ensure_utc(now) if now else self.clock.now()
        request_id = actor.request_id if actor else None

        for attempt in range(self.conflict_retries + 1):
            visibility = await self.visibility.check_visibility(
                db, form_id, agent_id, now=now, tenant_id=tenant_id, actor=actor
            )
            if not visibility.visible:
                logger.info(
                    sanitize_log_message(
                        "Submission refused, form not visible",
                        FormID=form_id,
                        AgentID=agent_id,
                        Reason=visibility.reason,
                        RequestID=request_id,
                    )
                )
                raise FormNotVisibleException(visibility.reason, visibility)

            try:
                consumed = await self.visibility.cycle_logs.consume_cycle(
                    db, visibility.cycle_log, visibility.current, now
                )
                if consumed is None:
                    await db.rollback()
                    logger.warning(
                        sanitize_log_message(
                            "Cycle update lost to a concurrent submission",
                            FormID=form_id,
                            AgentID=agent_id,
                            CycleLogID=visibility.log_id,
                            Attempt=attempt + 1,
                            RequestID=request_id,
                        )
                    )
                    continue

                submission = Submission(
                    form_id=form_id,
                    agent_id=agent_id,
                    cycle_log_id=consumed.cycle_log_id,
                    submission_data=payload or {},
                    cycle_number=consumed.cycle_number,
                    submitted_by=submitted_by,
                    latitude=latitude,
                    longitude=longitude,
                    time_spent_seconds=time_spent_seconds,
                    supervisor_name=supervisor_name,
                    supervisor_code=supervisor_code,
                    form_started_at=form_started_at,
                    form_end_time=form_end_time,
                    status=SubmissionStatus.PENDING,
                    submitted_at=now,
                    updated_at=now,
                )
                db.add(submission)
                await db.flush()
                submission_id = submission.id
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            logger.info(
                sanitize_log_message(
                    "Submission created",
                    SubmissionID=submission_id,
                    FormID=form_id,
                    AgentID=agent_id,
                    CycleNumber=consumed.cycle_number,
                    FrozenUntil=consumed.frozen_until.isoformat() if consumed.frozen_until else None,
                    RequestID=request_id,
                )
            )
            await self.audit.record(
                ActionType.SUBMISSION_CREATED,
                resource_type="submission",
                resource_id=submission_id,
                details={
                    "form_id": form_id,
                    "agent_id": agent_id,
                    "cycle_log_id": consumed.cycle_log_id,
                    "cycle_number": consumed.cycle_number,
                    "submitted_by": submitted_by,
                },
                actor=actor,
            )
            if consumed.frozen_until is not None:
                await self.audit.record(
                    ActionType.CYCLE_LOG_FROZEN,
                    resource_type="cycle_log",
                    resource_id=consumed.cycle_log_id,
                    details={"frozen_until": consumed.frozen_until.isoformat(), "submission_id": submission_id},
                    actor=actor,
                )

            return SubmissionResult(
                submission_id=submission_id,
                cycle_number=consumed.cycle_number,
                frozen_until=consumed.frozen_until,
            )

        logger.error(
            sanitize_log_message(
                "Submission gave up after repeated cycle conflicts",
                FormID=form_id,
                AgentID=agent_id,
                Attempts=self.conflict_retries + 1,
                RequestID=request_id,
            )
        )
        raise CycleConflictException()

    @staticmethod
    async def get_submission(
        db: AsyncSession,
        submission_id: int,
        tenant_id: Optional[int] = None,
    ) -> Submission:
        """
        Raises:
            SubmissionNotFoundException: unknown id, or a form of another tenant
        """
        query = select(Submission).where(Submission.id == submission_id)
        if tenant_id is not None:
            query = query.join(Form, Form.id == Submission.form_id).where(Form.tenant_id == tenant_id)
        result = await db.execute(query.execution_options(populate_existing=True))
        submission = result.scalar_one_or_none()
        if submission is None:
            raise SubmissionNotFoundException()
        return submission

    @staticmethod
    async def list_submissions(
        db: AsyncSession,
        tenant_id: Optional[int] = None,
        form_id: Optional[int] = None,
        agent_id: Optional[int] = None,
        status: Optional[SubmissionStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        exclude_rejected: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Submission], int]:
        """
        Submissions newest first, with the total count for pagination.
        """
        conditions = []
        if tenant_id is not None:
            conditions.append(Form.tenant_id == tenant_id)
        if form_id:
            conditions.append(Submission.form_id == form_id)
        if agent_id:
            conditions.append(Submission.agent_id == agent_id)
        if status:
            conditions.append(Submission.status == status)
        if start_date:
            conditions.append(Submission.submitted_at >= start_date)
        if end_date:
            conditions.append(Submission.submitted_at <= end_date)
        if exclude_rejected:
            conditions.append(Submission.status != SubmissionStatus.REJECTED)

        query = select(Submission).join(Form, Form.id == Submission.form_id)
        count_query = select(func.count(Submission.id)).select_from(Submission).join(Form, Form.id == Submission.form_id)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def export_submissions_csv(
        db: AsyncSession,
        form_id: int,
        tenant_id: Optional[int] = None,
        agent_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        include_rejected: bool = False,
    ) -> str:
        """
        Render a form's submissions as CSV, oldest first.

        Fixed columns (agent, cycle, status, geo, field tracking, review)
        are followed by one column per entry of the form schema, labelled
        with the field's label and filled from submission_data by field id.

        Raises:
            FormNotFoundException: unknown id or a form of another tenant
        """
        form = await FormService.get_form(db, form_id, tenant_id)

        conditions = [Submission.form_id == form.id]
        if agent_id:
            conditions.append(Submission.agent_id == agent_id)
        if start_date:
            conditions.append(Submission.submitted_at >= start_date)
        if end_date:
            conditions.append(Submission.submitted_at <= end_date)
        if not include_rejected:
            conditions.append(Submission.status != SubmissionStatus.REJECTED)

        result = await db.execute(
            select(Submission, Agent)
            .join(Agent, Agent.id == Submission.agent_id)
            .where(and_(*conditions))
            .order_by(Submission.submitted_at, Submission.id)
            .execution_options(populate_existing=True)
        )
        rows = result.all()

        schema_fields = [f for f in (form.form_schema or []) if isinstance(f, dict)]

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS + [_schema_label(f) for f in schema_fields])
        for submission, agent in rows:
            reviewer = submission.approved_by or submission.rejected_by
            reviewed_at = submission.approved_at or submission.rejected_at
            writer.writerow([
                submission.id,
                agent.full_name,
                agent.agent_code or "",
                submission.cycle_number,
                submission.status.value,
                _csv_timestamp(submission.submitted_at),
                _csv_value(submission.latitude),
                _csv_value(submission.longitude),
                _csv_value(submission.time_spent_seconds),
                submission.supervisor_name or "",
                submission.supervisor_code or "",
                _csv_timestamp(submission.form_started_at),
                _csv_timestamp(submission.form_end_time),
                _csv_value(reviewer),
                _csv_timestamp(reviewed_at),
                submission.review_notes or "",
                submission.rejection_reason or "",
            ] + [_csv_value((submission.submission_data or {}).get(_schema_key(f))) for f in schema_fields])

        logger.info(
            sanitize_log_message("Submissions exported", FormID=form.id, Rows=len(rows))
        )
        return buffer.getvalue()


def _schema_key(schema_field: dict) -> Optional[str]:
    return schema_field.get("id") or schema_field.get("name")


def _schema_label(schema_field: dict) -> str:
    return str(schema_field.get("label") or _schema_key(schema_field) or "")


def _csv_timestamp(value: Optional[datetime]) -> str:
    return ensure_utc(value).isoformat() if value is not None else ""


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list) and value and all(isinstance(item, dict) and item.get("url") for item in value):
        return " | ".join(item["url"] for item in value)
    if isinstance(value, dict) and (value.get("url") or value.get("data")):
        return str(value.get("url") or value.get("data"))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
