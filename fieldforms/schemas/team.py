from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel


class MemberFormLog(BaseModel):
    form_id: int
    form_title: str
    current_cycle: int
    max_cycles_allowed: int
    is_frozen: bool
    freeze_expires_at: Optional[datetime] = None
    last_submission_at: Optional[datetime] = None
    completion_rate: float


class TeamMemberStats(BaseModel):
    agent_id: int
    full_name: str
    agent_code: Optional[str] = None
    completed_cycles: int
    allowed_cycles: int
    completion_rate: float
    forms: List[MemberFormLog]


class TeamFormStatsResponse(BaseModel):
    supervisor_id: int
    tracking_month: date
    completion_rate: float
    members: List[TeamMemberStats]
