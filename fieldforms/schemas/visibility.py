from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel


class VisibilityResponse(BaseModel):
    """Visibility outcome; fields beyond visible/reason depend on the reason."""
    form_id: int
    agent_id: int
    visible: bool
    reason: str
    current_cycle: Optional[int] = None
    max_cycles: Optional[int] = None
    remaining_cycles: Optional[int] = None
    cycle_log_id: Optional[int] = None
    remaining_seconds: Optional[int] = None
    freeze_expires_at: Optional[datetime] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, form_id: int, agent_id: int, result) -> "VisibilityResponse":
        return cls(form_id=form_id, agent_id=agent_id, **result.to_dict())


class AvailableFormResponse(BaseModel):
    form_id: int
    internal_form_id: str
    title: str
    visibility: VisibilityResponse


class AvailableFormsResponse(BaseModel):
    agent_id: int
    forms: List[AvailableFormResponse]
