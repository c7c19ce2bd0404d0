from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from fieldforms.models.submission import SubmissionStatus


class SubmissionCreateRequest(BaseModel):
    """Request schema for submitting a form on behalf of an agent."""
    submission_data: Dict[str, Any] = Field(default_factory=dict)
    submitted_by: int
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)
    supervisor_name: Optional[str] = None
    supervisor_code: Optional[str] = None
    form_started_at: Optional[datetime] = None
    form_end_time: Optional[datetime] = None


class SubmissionCreateResponse(BaseModel):
    submission_id: int
    cycle_number: int
    frozen_until: Optional[datetime] = None
    message: str = "Form submitted successfully"


class SubmissionResponse(BaseModel):
    """Response schema for a stored submission."""
    id: int
    form_id: int
    agent_id: int
    cycle_log_id: int
    cycle_number: int
    submission_data: Dict[str, Any]
    submitted_by: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time_spent_seconds: Optional[int] = None
    supervisor_name: Optional[str] = None
    supervisor_code: Optional[str] = None
    form_started_at: Optional[datetime] = None
    form_end_time: Optional[datetime] = None
    status: SubmissionStatus
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]
    total: int
    limit: int
    offset: int


class ApproveRequest(BaseModel):
    reviewer_id: int
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reviewer_id: int
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("reason must not be blank")
        return v.strip()
