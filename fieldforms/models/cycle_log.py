from sqlalchemy import (
    Column, Integer, Boolean, Date, ForeignKey, JSON, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from fieldforms.database import Base
from fieldforms.models.mixins import TimestampMixin
from fieldforms.models.types import UTCDateTime


class CycleLog(TimestampMixin, Base):
    """
    Cycle log model - month-scoped submission counter for one (form, agent) pair.

    Exactly one row exists per (form, agent, tracking month); the unique
    constraint turns a losing concurrent create into a lookup of the winner.
    """

    __tablename__ = "form_cycle_logs"
    __table_args__ = (
        UniqueConstraint("form_id", "agent_id", "tracking_month", name="uq_cycle_logs_form_agent_month"),
        CheckConstraint("current_cycle >= 0", name="ck_cycle_logs_cycle_non_negative"),
        CheckConstraint("current_cycle <= max_cycles_allowed", name="ck_cycle_logs_cycle_within_max"),
    )

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    tracking_month = Column(Date, nullable=False, index=True)  # first day of month

    current_cycle = Column(Integer, default=0, nullable=False)
    max_cycles_allowed = Column(Integer, nullable=False)
    submissions_count = Column(Integer, default=0, nullable=False)

    is_frozen = Column(Boolean, default=False, nullable=False, index=True)
    freeze_expires_at = Column(UTCDateTime, nullable=True)
    last_submission_at = Column(UTCDateTime, nullable=True)

    # Form cycle/freeze settings at the moment this log was created
    config_snapshot = Column(JSON, nullable=False)

    # Relationships
    form = relationship("Form")
    agent = relationship("Agent")
    submissions = relationship("Submission", back_populates="cycle_log")

    @property
    def remaining_cycles(self) -> int:
        return max(self.max_cycles_allowed - self.current_cycle, 0)

    @property
    def completion_rate(self) -> float:
        """Share of the month's cycles consumed, in percent."""
        if not self.max_cycles_allowed:
            return 0.0
        return round(self.current_cycle / self.max_cycles_allowed * 100, 2)
