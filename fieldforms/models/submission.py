from sqlalchemy import (
    Column, Integer, String, Float, ForeignKey, JSON, Text, CheckConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
import enum
from fieldforms.database import Base
from fieldforms.models.types import UTCDateTime, utcnow


class SubmissionStatus(str, enum.Enum):
    """Submission review status enumeration."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Submission(Base):
    """
    Submission model - one completed form fill, reviewed exactly once.

    The four-eye rules are table constraints: a reviewer is never the
    submitter and at most one of approved_by/rejected_by is ever set.
    """

    __tablename__ = "form_submissions"
    __table_args__ = (
        CheckConstraint(
            "(approved_by IS NULL OR approved_by != submitted_by) AND "
            "(rejected_by IS NULL OR rejected_by != submitted_by)",
            name="ck_submissions_no_self_review",
        ),
        CheckConstraint(
            "approved_by IS NULL OR rejected_by IS NULL",
            name="ck_submissions_single_review_action",
        ),
        CheckConstraint(
            "(status = 'PENDING' AND approved_by IS NULL AND rejected_by IS NULL) OR "
            "(status = 'APPROVED' AND approved_by IS NOT NULL) OR "
            "(status = 'REJECTED' AND rejected_by IS NOT NULL AND rejection_reason IS NOT NULL)",
            name="ck_submissions_status_matches_reviewer",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    cycle_log_id = Column(Integer, ForeignKey("form_cycle_logs.id"), nullable=False, index=True)
    submission_data = Column(JSON, nullable=False, default=dict)
    cycle_number = Column(Integer, nullable=False)  # 1-based slot consumed in the tracking month
    submitted_by = Column(Integer, nullable=False, index=True)

    # Optional geolocation (stored only)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Field tracking captured by the client
    time_spent_seconds = Column(Integer, nullable=True)
    supervisor_name = Column(String, nullable=True)
    supervisor_code = Column(String, nullable=True)
    form_started_at = Column(UTCDateTime, nullable=True)
    form_end_time = Column(UTCDateTime, nullable=True)

    # Four-eye review
    status = Column(SQLEnum(SubmissionStatus), default=SubmissionStatus.PENDING, nullable=False, index=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rejected_by = Column(Integer, nullable=True)
    rejected_at = Column(UTCDateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    submitted_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    form = relationship("Form")
    agent = relationship("Agent")
    cycle_log = relationship("CycleLog", back_populates="submissions")

    @property
    def reviewed_by(self):
        return self.approved_by or self.rejected_by

    @property
    def reviewed_at(self):
        return self.approved_at or self.rejected_at
