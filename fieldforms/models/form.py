from sqlalchemy import (
    Column, Integer, String, Boolean, Date, ForeignKey, Interval, JSON, Text,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from fieldforms.database import Base
from fieldforms.models.mixins import TimestampMixin
from fieldforms.models.types import UTCDateTime, utcnow

CYCLES_PER_MONTH_CHOICES = (1, 2, 3, 4)


class Form(TimestampMixin, Base):
    """Form model - definition of a recurring form and its cycle/freeze configuration."""

    __tablename__ = "forms"
    __table_args__ = (
        CheckConstraint("cycles_per_month IN (1, 2, 3, 4)", name="ck_forms_cycles_per_month"),
        CheckConstraint(
            "(NOT freeze_enabled AND freeze_duration IS NULL) OR "
            "(freeze_enabled AND freeze_duration IS NOT NULL)",
            name="ck_forms_valid_freeze_config",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    internal_form_id = Column(String(32), unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    form_schema = Column(JSON, nullable=False, default=list)  # opaque to the engine
    department_id = Column(Integer, nullable=True, index=True)
    created_by = Column(Integer, nullable=True)

    # Visibility and cycle configuration
    attach_to_specific_agents = Column(Boolean, default=False, nullable=False)
    cycles_per_month = Column(Integer, default=1, nullable=False)
    freeze_enabled = Column(Boolean, default=False, nullable=False)
    freeze_duration = Column(Interval, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    attachments = relationship("FormAttachment", back_populates="form")
    config_history = relationship("FormConfigHistory", back_populates="form")

    def config_snapshot(self) -> dict:
        """Cycle/freeze settings copied into a new month's cycle log."""
        return {
            "cycles_per_month": self.cycles_per_month,
            "freeze_enabled": bool(self.freeze_enabled),
            "freeze_duration_seconds": (
                self.freeze_duration.total_seconds() if self.freeze_duration is not None else None
            ),
        }


class FormAttachment(Base):
    """Form attachment model - restricts a form to a specific agent, with visibility criteria."""

    __tablename__ = "form_attachments"
    __table_args__ = (
        UniqueConstraint("form_id", "agent_id", name="uq_form_attachments_form_agent"),
    )

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    criteria = Column(JSON, nullable=False, default=list)  # ordered list of {field, operator, value}
    is_active = Column(Boolean, default=True, nullable=False)
    attached_at = Column(UTCDateTime, default=utcnow, nullable=False)
    attached_by = Column(Integer, nullable=True)

    # Relationships
    form = relationship("Form", back_populates="attachments")
    agent = relationship("Agent")


class FormConfigHistory(Base):
    """Form config history model - one row per changed configuration field."""

    __tablename__ = "form_config_history"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id"), nullable=False, index=True)
    changed_by = Column(Integer, nullable=True)
    changed_at = Column(UTCDateTime, default=utcnow, nullable=False)
    field_name = Column(String, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    effective_month = Column(Date, nullable=False)  # first tracking month created with the new value

    # Relationships
    form = relationship("Form", back_populates="config_history")
