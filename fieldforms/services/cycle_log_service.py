import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import dialect_insert
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.form import Form
from fieldforms.core.clock import Clock, system_clock, tracking_month
from fieldforms.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)


@dataclass
class ConsumedCycle:
    """Outcome of a successful cycle increment."""
    cycle_log_id: int
    cycle_number: int
    frozen_until: Optional[datetime]


class CycleLogService:
    """
    Month-scoped submission counters.

    Every mutation here is a single conditional statement, so concurrent
    callers never need a lock: creation is insert-or-fetch, the increment is
    a compare-and-set on current_cycle, and unfreezing only succeeds while
    the freeze is still in place and expired.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or system_clock

    @staticmethod
    async def _load(db: AsyncSession, *conditions) -> Optional[CycleLog]:
        result = await db.execute(
            select(CycleLog).where(*conditions).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_log(
        self,
        db: AsyncSession,
        form: Form,
        agent_id: int,
        month: date,
        now: Optional[datetime] = None,
    ) -> Tuple[CycleLog, bool]:
        """
        Return the (form, agent, month) log, creating it on first touch.

        A new log takes max_cycles_allowed and the freeze snapshot from the
        form as it is right now. An existing log is only read; when two
        callers race to create it, exactly one insert lands and both read
        back the same row.

        Returns:
            (cycle log, whether this call created it)
        """
        now = now or self.clock.now()
        key = (
            CycleLog.form_id == form.id,
            CycleLog.agent_id == agent_id,
            CycleLog.tracking_month == month,
        )
        existing = await self._load(db, *key)
        if existing is not None:
            return existing, False

        stmt = (
            dialect_insert(db, CycleLog)
            .values(
                form_id=form.id,
                agent_id=agent_id,
                tracking_month=month,
                current_cycle=0,
                max_cycles_allowed=form.cycles_per_month,
                submissions_count=0,
                is_frozen=False,
                config_snapshot=form.config_snapshot(),
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["form_id", "agent_id", "tracking_month"])
        )
        result = await db.execute(stmt)
        created = result.rowcount == 1

        log = await self._load(db, *key)
        if created:
            logger.info(
                sanitize_log_message(
                    "Cycle log created",
                    CycleLogID=log.id,
                    FormID=form.id,
                    AgentID=agent_id,
                    TrackingMonth=month.isoformat(),
                    MaxCycles=log.max_cycles_allowed,
                )
            )
        return log, created

    async def get_current_log(
        self,
        db: AsyncSession,
        form_id: int,
        agent_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[CycleLog]:
        """Current month's log for the pair, without creating one."""
        month = tracking_month(now or self.clock.now())
        return await self._load(
            db,
            CycleLog.form_id == form_id,
            CycleLog.agent_id == agent_id,
            CycleLog.tracking_month == month,
        )

    async def clear_expired_freeze(self, db: AsyncSession, log: CycleLog, now: datetime) -> Optional[CycleLog]:
        """
        Lift a freeze whose expiry has passed.

        Returns the refreshed log when this call lifted the freeze, None when
        the freeze was already gone (another caller got there first).
        """
        result = await db.execute(
            update(CycleLog)
            .where(
                CycleLog.id == log.id,
                CycleLog.is_frozen.is_(True),
                CycleLog.freeze_expires_at <= now,
            )
            .values(is_frozen=False, freeze_expires_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        refreshed = await self._load(db, CycleLog.id == log.id)
        if result.rowcount == 1:
            logger.info(sanitize_log_message("Cycle log unfrozen", CycleLogID=log.id))
            return refreshed
        return None

    async def refresh(self, db: AsyncSession, log_id: int) -> Optional[CycleLog]:
        return await self._load(db, CycleLog.id == log_id)

    async def consume_cycle(
        self,
        db: AsyncSession,
        log: CycleLog,
        observed_cycle: int,
        now: datetime,
    ) -> Optional[ConsumedCycle]:
        """
        Compare-and-set increment of current_cycle.

        Matches only while current_cycle still equals ``observed_cycle`` and
        is below the month's maximum. Starts a freeze when the log's snapshot
        enables one. Does not commit.

        Returns:
            ConsumedCycle, or None when another submission won the row
        """
        values = {
            "current_cycle": CycleLog.current_cycle + 1,
            "submissions_count": CycleLog.submissions_count + 1,
            "last_submission_at": now,
            "updated_at": now,
        }

        frozen_until = None
        snapshot = log.config_snapshot or {}
        freeze_seconds = snapshot.get("freeze_duration_seconds")
        if snapshot.get("freeze_enabled") and freeze_seconds:
            frozen_until = now + timedelta(seconds=freeze_seconds)
            values["is_frozen"] = True
            values["freeze_expires_at"] = frozen_until

        result = await db.execute(
            update(CycleLog)
            .where(
                CycleLog.id == log.id,
                CycleLog.current_cycle == observed_cycle,
                CycleLog.current_cycle < CycleLog.max_cycles_allowed,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        return ConsumedCycle(
            cycle_log_id=log.id,
            cycle_number=observed_cycle + 1,
            frozen_until=frozen_until,
        )
