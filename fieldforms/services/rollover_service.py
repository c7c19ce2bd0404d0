"""
Monthly rollover bookkeeping.

Nothing is reset at a month boundary: cycle logs are keyed by tracking
month, so the first touch in a new month simply creates a fresh log from
the form's current configuration. Recording a rollover only leaves a
SystemEvent summarising the month that just closed.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.models.audit_log import ActionType
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.system_event import SystemEvent, MONTHLY_ROLLOVER_EVENT
from fieldforms.core.clock import Clock, ensure_utc, previous_month, system_clock, tracking_month
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.services.audit_service import AuditActor, AuditService

logger = logging.getLogger(__name__)


class RolloverService:

    def __init__(self, clock: Optional[Clock] = None, audit: Optional[AuditService] = None):
        self.clock = clock or system_clock
        self.audit = audit or AuditService()

    async def record_rollover(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
        triggered_by: Optional[int] = None,
        actor: Optional[AuditActor] = None,
    ) -> SystemEvent:
        """Write a monthly_form_log_reset event counting the previous month's logs."""
        now = ensure_utc(now) if now else self.clock.now()
        reset_month = tracking_month(now)
        closed_month = previous_month(reset_month)

        logs_count = (await db.execute(
            select(func.count(CycleLog.id)).where(CycleLog.tracking_month == closed_month)
        )).scalar_one()

        event = SystemEvent(
            event_type=MONTHLY_ROLLOVER_EVENT,
            event_data={
                "reset_month": reset_month.isoformat(),
                "previous_month": closed_month.isoformat(),
                "logs_count": logs_count,
            },
            triggered_by=triggered_by,
            created_at=now,
        )
        db.add(event)
        await db.commit()

        logger.info(
            sanitize_log_message(
                "Monthly rollover recorded",
                EventID=event.id,
                ResetMonth=reset_month.isoformat(),
                PreviousMonthLogs=logs_count,
            )
        )
        await self.audit.record(
            ActionType.ROLLOVER_RECORDED,
            resource_type="system_event",
            resource_id=event.id,
            details=event.event_data,
            actor=actor,
        )
        return event

    @staticmethod
    async def list_rollover_events(
        db: AsyncSession,
        limit: int = 12,
        offset: int = 0,
    ) -> Tuple[List[SystemEvent], int]:
        condition = SystemEvent.event_type == MONTHLY_ROLLOVER_EVENT
        total = (await db.execute(select(func.count(SystemEvent.id)).where(condition))).scalar_one()
        result = await db.execute(
            select(SystemEvent)
            .where(condition)
            .order_by(SystemEvent.created_at.desc(), SystemEvent.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
