"""Pydantic schemas for request/response contracts."""
from fieldforms.schemas.form import (
    FormCreateRequest,
    FormUpdateRequest,
    FormResponse,
    FormListResponse,
    FormConfigHistoryResponse,
)
from fieldforms.schemas.attachment import (
    CriteriaRule,
    AttachmentSaveRequest,
    AttachmentResponse,
)
from fieldforms.schemas.visibility import (
    VisibilityResponse,
    AvailableFormResponse,
    AvailableFormsResponse,
)
from fieldforms.schemas.cycle_log import CycleLogResponse
from fieldforms.schemas.submission import (
    SubmissionCreateRequest,
    SubmissionCreateResponse,
    SubmissionResponse,
    SubmissionListResponse,
    ApproveRequest,
    RejectRequest,
)
from fieldforms.schemas.team import (
    MemberFormLog,
    TeamMemberStats,
    TeamFormStatsResponse,
)
from fieldforms.schemas.rollover import (
    RolloverRequest,
    SystemEventResponse,
    SystemEventListResponse,
)
from fieldforms.schemas.audit import (
    AuditLogResponse,
    AuditLogListResponse,
)

__all__ = [
    "FormCreateRequest",
    "FormUpdateRequest",
    "FormResponse",
    "FormListResponse",
    "FormConfigHistoryResponse",
    "CriteriaRule",
    "AttachmentSaveRequest",
    "AttachmentResponse",
    "VisibilityResponse",
    "AvailableFormResponse",
    "AvailableFormsResponse",
    "CycleLogResponse",
    "SubmissionCreateRequest",
    "SubmissionCreateResponse",
    "SubmissionResponse",
    "SubmissionListResponse",
    "ApproveRequest",
    "RejectRequest",
    "MemberFormLog",
    "TeamMemberStats",
    "TeamFormStatsResponse",
    "RolloverRequest",
    "SystemEventResponse",
    "SystemEventListResponse",
    "AuditLogResponse",
    "AuditLogListResponse",
]
