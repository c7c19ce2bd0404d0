from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.database import get_db
from fieldforms.schemas.team import MemberFormLog, TeamFormStatsResponse, TeamMemberStats
from fieldforms.services.team_service import TeamService
from fieldforms.api.deps import AuditContext, get_audit_context_with_api_key, get_team_service

router = APIRouter()


@router.get("/{supervisor_id}/form-stats", response_model=TeamFormStatsResponse)
async def get_team_form_stats(
    supervisor_id: int,
    form_id: Optional[int] = Query(None),
    audit_context: AuditContext = Depends(get_audit_context_with_api_key),
    team_service: TeamService = Depends(get_team_service),
    db: AsyncSession = Depends(get_db)
):
    """Current-month cycle progress of everyone reporting (directly or not) to the supervisor."""
    stats = await team_service.get_team_form_stats(
        db, supervisor_id, form_id=form_id, tenant_id=audit_context.tenant_id
    )
    return TeamFormStatsResponse(
        supervisor_id=stats.supervisor_id,
        tracking_month=stats.tracking_month,
        completion_rate=stats.completion_rate,
        members=[
            TeamMemberStats(
                agent_id=member.agent.id,
                full_name=member.agent.full_name,
                agent_code=member.agent.agent_code,
                completed_cycles=member.completed_cycles,
                allowed_cycles=member.allowed_cycles,
                completion_rate=member.completion_rate,
                forms=[
                    MemberFormLog(
                        form_id=log.form_id,
                        form_title=log.form.title,
                        current_cycle=log.current_cycle,
                        max_cycles_allowed=log.max_cycles_allowed,
                        is_frozen=log.is_frozen,
                        freeze_expires_at=log.freeze_expires_at,
                        last_submission_at=log.last_submission_at,
                        completion_rate=log.completion_rate,
                    )
                    for log in member.cycle_logs
                ],
            )
            for member in stats.members
        ],
    )
