from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from interview_engine.core.database import Base
from interview_engine.utils.datetime import utcnow
from interview_engine.utils.enums import InterviewMode, InterviewStatus, InterviewType


def _enum(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Interview(Base):
    __tablename__ = "interviews"
    __table_args__ = (
        CheckConstraint("time_slot_start < time_slot_end", name="ck_interview_slot_order"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    application_id = Column(BigInteger, nullable=False, index=True)
    candidate_id = Column(BigInteger, nullable=False, index=True)
    created_by = Column(BigInteger, nullable=False, index=True)

    scheduled_at = Column(DateTime, nullable=False, index=True)
    time_slot_start = Column(DateTime, nullable=False)
    time_slot_end = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    timezone = Column(String(50), nullable=False, default="UTC")

    mode = Column(_enum(InterviewMode), nullable=False, default=InterviewMode.LIVE)
    interview_type = Column(_enum(InterviewType), nullable=False)
    status = Column(
        _enum(InterviewStatus),
        nullable=False,
        default=InterviewStatus.SCHEDULED,
        index=True,
    )

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    ai_score = Column(Numeric(5, 2), nullable=True)
    ai_feedback_summary = Column(Text, nullable=True)
    plagiarism_flagged = Column(Boolean, nullable=False, default=False)
    integrity_flags = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    assignments = relationship(
        "InterviewQuestionAssignment",
        back_populates="interview",
        cascade="all, delete-orphan",
        order_by="InterviewQuestionAssignment.order_index",
    )
