from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
from fieldforms.core.criteria import CriteriaOperator
from fieldforms.models.agent import CRITERIA_FIELDS


class CriteriaRule(BaseModel):
    """Single visibility rule evaluated against the agent profile."""
    field: str = Field(..., description=f"One of: {', '.join(CRITERIA_FIELDS)}")
    operator: CriteriaOperator
    value: str


class AttachmentSaveRequest(BaseModel):
    """Attach agents to a form; every listed agent gets the same criteria."""
    agent_ids: List[int] = Field(..., min_length=1)
    criteria: List[CriteriaRule] = Field(default_factory=list)
    attached_by: Optional[int] = None


class AttachmentResponse(BaseModel):
    id: int
    form_id: int
    agent_id: int
    criteria: list
    is_active: bool
    attached_at: datetime
    attached_by: Optional[int] = None

    class Config:
        from_attributes = True
