from typing import Optional, Dict, Any
from datetime import date, datetime
from pydantic import BaseModel


class CycleLogResponse(BaseModel):
    """Response schema for a month's cycle log."""
    id: int
    form_id: int
    agent_id: int
    tracking_month: date
    current_cycle: int
    max_cycles_allowed: int
    remaining_cycles: int
    submissions_count: int
    is_frozen: bool
    freeze_expires_at: Optional[datetime] = None
    last_submission_at: Optional[datetime] = None
    config_snapshot: Dict[str, Any]
    completion_rate: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
