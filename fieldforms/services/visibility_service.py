"""
Visibility evaluation: may this agent submit this form right now?

Outcomes are values, not exceptions. Each carries a stable ``reason``
string that API clients switch on.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.models.agent import Agent
from fieldforms.models.audit_log import ActionType
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.form import Form, FormAttachment
from fieldforms.core.clock import Clock, ensure_utc, system_clock, tracking_month
from fieldforms.core.criteria import InvalidCriteriaError, evaluate_criteria
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.services.audit_service import AuditActor, AuditService
from fieldforms.services.cycle_log_service import CycleLogService

logger = logging.getLogger(__name__)


class VisibilityResult:
    reason: str = ""
    visible: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"visible": self.visible, "reason": self.reason}

    def __eq__(self, other):
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items() if k not in ("visible", "reason"))
        return f"{type(self).__name__}({fields})"


class NotFound(VisibilityResult):
    reason = "form_not_found_or_inactive"


class NotAttached(VisibilityResult):
    reason = "not_attached_to_agent"


class CriteriaNotMet(VisibilityResult):
    reason = "criteria_not_met"


class Misconfigured(VisibilityResult):
    reason = "misconfigured"

    def __init__(self, message: str = ""):
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "message": self.message}


class Frozen(VisibilityResult):
    reason = "form_frozen"

    def __init__(self, remaining: timedelta, expires_at: datetime):
        self.remaining = remaining
        self.expires_at = expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "remaining_seconds": int(self.remaining.total_seconds()),
            "freeze_expires_at": self.expires_at.isoformat(),
        }


class MaxCyclesReached(VisibilityResult):
    reason = "max_cycles_reached"

    def __init__(self, current: int, max_cycles: int):
        self.current = current
        self.max = max_cycles

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "current_cycle": self.current, "max_cycles": self.max}


class Visible(VisibilityResult):
    reason = "accessible"
    visible = True

    def __init__(self, current: int, max_cycles: int, remaining: int, log_id: int,
                 cycle_log: Optional[CycleLog] = None):
        self.current = current
        self.max = max_cycles
        self.remaining = remaining
        self.log_id = log_id
        # Row the submit path increments; not part of the public payload
        self.cycle_log = cycle_log

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "current_cycle": self.current,
            "max_cycles": self.max,
            "remaining_cycles": self.remaining,
            "cycle_log_id": self.log_id,
        }


class VisibilityService:
    """Decides, per (form, agent, now), whether a submission is allowed."""

    def __init__(self, clock: Optional[Clock] = None, audit: Optional[AuditService] = None):
        self.clock = clock or system_clock
        self.audit = audit or AuditService()
        self.cycle_logs = CycleLogService(self.clock)

    async def _check_attachment(self, db: AsyncSession, form: Form, agent_id: int) -> Optional[VisibilityResult]:
        result = await db.execute(
            select(FormAttachment).where(
                FormAttachment.form_id == form.id,
                FormAttachment.agent_id == agent_id,
                FormAttachment.is_active.is_(True),
            )
        )
        attachment = result.scalar_one_or_none()
        if attachment is None:
            return NotAttached()

        if not attachment.criteria:
            return None

        agent = await db.get(Agent, agent_id)
        profile = agent.profile() if agent is not None else None
        try:
            if not evaluate_criteria(attachment.criteria, profile):
                return CriteriaNotMet()
        except InvalidCriteriaError as e:
            logger.error(
                sanitize_log_message(
                    "Invalid criteria on form attachment",
                    FormID=form.id,
                    AgentID=agent_id,
                    AttachmentID=attachment.id,
                    Error=e.message,
                )
            )
            return Misconfigured(e.message)
        return None

    async def check_visibility(
        self,
        db: AsyncSession,
        form_id: int,
        agent_id: int,
        now: Optional[datetime] = None,
        tenant_id: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> VisibilityResult:
        """
        Evaluate whether ``agent_id`` may submit ``form_id`` at ``now``.

        Touching a (form, agent) pair for the first time in a month creates
        its cycle log, and an expired freeze is lifted here. Those writes are
        committed before returning.
        """
        now = ensure_utc(now) if now else self.clock.now()

        form = await db.get(Form, form_id, populate_existing=True)
        if form is None or not form.is_active or (tenant_id is not None and form.tenant_id != tenant_id):
            return NotFound()

        if form.attach_to_specific_agents:
            denied = await self._check_attachment(db, form, agent_id)
            if denied is not None:
                return denied

        log, created = await self.cycle_logs.get_or_create_log(db, form, agent_id, tracking_month(now), now)

        unfrozen = False
        if log.is_frozen and log.freeze_expires_at is not None:
            if log.freeze_expires_at > now:
                await db.commit()
                if created:
                    await self._audit_created(log, actor)
                return Frozen(log.freeze_expires_at - now, log.freeze_expires_at)
            lifted = await self.cycle_logs.clear_expired_freeze(db, log, now)
            if lifted is not None:
                log, unfrozen = lifted, True
            else:
                log = await self.cycle_logs.refresh(db, log.id)

        await db.commit()

        if created:
            await self._audit_created(log, actor)
        if unfrozen:
            await self.audit.record(
                ActionType.CYCLE_LOG_UNFROZEN,
                resource_type="cycle_log",
                resource_id=log.id,
                details={"form_id": log.form_id, "agent_id": log.agent_id, "unfrozen_at": now.isoformat()},
                actor=actor,
            )

        if log.is_frozen and log.freeze_expires_at is not None and log.freeze_expires_at > now:
            # A concurrent submission froze the log after our read
            return Frozen(log.freeze_expires_at - now, log.freeze_expires_at)

        if log.current_cycle >= log.max_cycles_allowed:
            return MaxCyclesReached(log.current_cycle, log.max_cycles_allowed)

        return Visible(log.current_cycle, log.max_cycles_allowed, log.remaining_cycles, log.id, cycle_log=log)

    async def _audit_created(self, log: CycleLog, actor: Optional[AuditActor]) -> None:
        await self.audit.record(
            ActionType.CYCLE_LOG_CREATED,
            resource_type="cycle_log",
            resource_id=log.id,
            details={
                "form_id": log.form_id,
                "agent_id": log.agent_id,
                "tracking_month": log.tracking_month.isoformat(),
                "max_cycles_allowed": log.max_cycles_allowed,
                "config_snapshot": log.config_snapshot,
            },
            actor=actor,
        )

    async def get_available_forms(
        self,
        db: AsyncSession,
        agent_id: int,
        tenant_id: Optional[int] = None,
        now: Optional[datetime] = None,
        actor: Optional[AuditActor] = None,
    ) -> List[Tuple[Form, VisibilityResult]]:
        """Every active form of the tenant that the agent can submit now, with its outcome."""
        now = ensure_utc(now) if now else self.clock.now()
        if tenant_id is None:
            agent = await db.get(Agent, agent_id)
            if agent is None:
                return []
            tenant_id = agent.tenant_id

        result = await db.execute(
            select(Form)
            .where(Form.tenant_id == tenant_id, Form.is_active.is_(True))
            .order_by(Form.id)
        )
        forms = list(result.scalars().all())

        available = []
        for form in forms:
            visibility = await self.check_visibility(db, form.id, agent_id, now=now, tenant_id=tenant_id, actor=actor)
            if visibility.visible:
                available.append((form, visibility))
        return available
