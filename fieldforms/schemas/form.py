from typing import Optional, Any, List
from datetime import date, datetime, timedelta
from pydantic import BaseModel, Field, model_validator
from fieldforms.models.form import Form

NON_NULLABLE_UPDATE_FIELDS = (
    "title",
    "form_schema",
    "attach_to_specific_agents",
    "cycles_per_month",
    "freeze_enabled",
    "is_active",
)


class FormCreateRequest(BaseModel):
    """Request schema for creating a form."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    form_schema: Any = Field(default_factory=list)  # rendered by the client, opaque here
    department_id: Optional[int] = None
    created_by: Optional[int] = None
    attach_to_specific_agents: bool = False
    cycles_per_month: int = Field(default=1, ge=1, le=4)
    freeze_enabled: bool = False
    freeze_duration_seconds: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_freeze_config(self):
        if self.freeze_enabled and self.freeze_duration_seconds is None:
            raise ValueError("freeze_duration_seconds is required when freeze_enabled is true")
        if not self.freeze_enabled and self.freeze_duration_seconds is not None:
            raise ValueError("freeze_duration_seconds must be omitted when freeze_enabled is false")
        return self

    @property
    def freeze_duration(self) -> Optional[timedelta]:
        if self.freeze_duration_seconds is None:
            return None
        return timedelta(seconds=self.freeze_duration_seconds)


class FormUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    form_schema: Optional[Any] = None
    department_id: Optional[int] = None
    attach_to_specific_agents: Optional[bool] = None
    cycles_per_month: Optional[int] = Field(default=None, ge=1, le=4)
    freeze_enabled: Optional[bool] = None
    freeze_duration_seconds: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None
    changed_by: Optional[int] = None

    @model_validator(mode="after")
    def check_not_null(self):
        nulled = sorted(
            name for name in NON_NULLABLE_UPDATE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self

    def to_changes(self) -> dict:
        """Model fields to apply, keyed by column name."""
        changes = self.model_dump(exclude_unset=True, exclude={"changed_by", "freeze_duration_seconds"})
        if "freeze_duration_seconds" in self.model_fields_set:
            seconds = self.freeze_duration_seconds
            changes["freeze_duration"] = timedelta(seconds=seconds) if seconds is not None else None
        return changes


class FormResponse(BaseModel):
    """Response schema for a form."""
    id: int
    tenant_id: int
    internal_form_id: str
    title: str
    description: Optional[str] = None
    form_schema: Any = None
    department_id: Optional[int] = None
    created_by: Optional[int] = None
    attach_to_specific_agents: bool
    cycles_per_month: int
    freeze_enabled: bool
    freeze_duration_seconds: Optional[int] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_form(cls, form: Form) -> "FormResponse":
        return cls(
            id=form.id,
            tenant_id=form.tenant_id,
            internal_form_id=form.internal_form_id,
            title=form.title,
            description=form.description,
            form_schema=form.form_schema,
            department_id=form.department_id,
            created_by=form.created_by,
            attach_to_specific_agents=form.attach_to_specific_agents,
            cycles_per_month=form.cycles_per_month,
            freeze_enabled=form.freeze_enabled,
            freeze_duration_seconds=(
                int(form.freeze_duration.total_seconds()) if form.freeze_duration is not None else None
            ),
            is_active=form.is_active,
            created_at=form.created_at,
            updated_at=form.updated_at,
        )


class FormListResponse(BaseModel):
    forms: List[FormResponse]
    total: int
    limit: int
    offset: int


class FormConfigHistoryResponse(BaseModel):
    """One changed configuration field."""
    id: int
    form_id: int
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: Optional[int] = None
    changed_at: datetime
    effective_month: date

    class Config:
        from_attributes = True
