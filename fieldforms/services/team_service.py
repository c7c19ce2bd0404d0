from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from fieldforms.models.agent import Agent
from fieldforms.models.cycle_log import CycleLog
from fieldforms.core.clock import Clock, ensure_utc, system_clock, tracking_month
from fieldforms.core.exceptions import AgentNotFoundException


@dataclass
class AgentFormStats:
    agent: Agent
    cycle_logs: List[CycleLog] = field(default_factory=list)

    @property
    def completed_cycles(self) -> int:
        return sum(log.current_cycle for log in self.cycle_logs)

    @property
    def allowed_cycles(self) -> int:
        return sum(log.max_cycles_allowed for log in self.cycle_logs)

    @property
    def completion_rate(self) -> float:
        if not self.allowed_cycles:
            return 0.0
        return round(self.completed_cycles / self.allowed_cycles * 100, 2)


@dataclass
class TeamFormStats:
    supervisor_id: int
    tracking_month: date
    members: List[AgentFormStats]

    @property
    def completion_rate(self) -> float:
        allowed = sum(member.allowed_cycles for member in self.members)
        if not allowed:
            return 0.0
        completed = sum(member.completed_cycles for member in self.members)
        return round(completed / allowed * 100, 2)


class TeamService:
    """Current-month form progress of everyone reporting to a supervisor."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or system_clock

    @staticmethod
    async def get_subordinate_ids(db: AsyncSession, supervisor_id: int) -> List[int]:
        """Direct and indirect reports, following supervisor_id down the tree."""
        subordinates = (
            select(Agent.id)
            .where(Agent.supervisor_id == supervisor_id)
            .cte(name="subordinates", recursive=True)
        )
        # UNION (not UNION ALL) stops on a cyclic supervisor chain
        subordinates = subordinates.union(
            select(Agent.id).where(Agent.supervisor_id == subordinates.c.id)
        )
        result = await db.execute(select(subordinates.c.id).order_by(subordinates.c.id))
        return [agent_id for agent_id in result.scalars().all() if agent_id != supervisor_id]

    async def get_team_form_stats(
        self,
        db: AsyncSession,
        supervisor_id: int,
        form_id: Optional[int] = None,
        tenant_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TeamFormStats:
        """
        Raises:
            AgentNotFoundException: unknown supervisor, or one from another tenant
        """
        supervisor = await db.get(Agent, supervisor_id)
        if supervisor is None or (tenant_id is not None and supervisor.tenant_id != tenant_id):
            raise AgentNotFoundException(detail="Supervisor not found")

        month = tracking_month(ensure_utc(now) if now else self.clock.now())
        member_ids = await self.get_subordinate_ids(db, supervisor_id)
        if not member_ids:
            return TeamFormStats(supervisor_id=supervisor_id, tracking_month=month, members=[])

        agents = (await db.execute(
            select(Agent).where(Agent.id.in_(member_ids)).order_by(Agent.full_name, Agent.id)
        )).scalars().all()

        log_query = (
            select(CycleLog)
            .options(selectinload(CycleLog.form))
            .where(CycleLog.agent_id.in_(member_ids), CycleLog.tracking_month == month)
            .order_by(CycleLog.form_id)
        )
        if form_id is not None:
            log_query = log_query.where(CycleLog.form_id == form_id)
        logs = (await db.execute(log_query)).scalars().all()

        by_agent = {agent.id: AgentFormStats(agent=agent) for agent in agents}
        for log in logs:
            by_agent[log.agent_id].cycle_logs.append(log)

        return TeamFormStats(
            supervisor_id=supervisor_id,
            tracking_month=month,
            members=[by_agent[agent.id] for agent in agents],
        )
