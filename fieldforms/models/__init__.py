"""Database models."""
from fieldforms.models.form import Form, FormAttachment, FormConfigHistory, CYCLES_PER_MONTH_CHOICES
from fieldforms.models.agent import Agent, CRITERIA_FIELDS
from fieldforms.models.cycle_log import CycleLog
from fieldforms.models.submission import Submission, SubmissionStatus
from fieldforms.models.system_event import SystemEvent, MONTHLY_ROLLOVER_EVENT
from fieldforms.models.audit_log import AuditLog, ActionType, UserType
from fieldforms.models.api_key import ApiKey

__all__ = [
    "Form",
    "FormAttachment",
    "FormConfigHistory",
    "CYCLES_PER_MONTH_CHOICES",
    "Agent",
    "CRITERIA_FIELDS",
    "CycleLog",
    "Submission",
    "SubmissionStatus",
    "SystemEvent",
    "MONTHLY_ROLLOVER_EVENT",
    "AuditLog",
    "ActionType",
    "UserType",
    "ApiKey",
]
