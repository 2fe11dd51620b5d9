from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)

from interview_engine.core.database import Base
from interview_engine.utils.datetime import utcnow


class CodeSubmission(Base):
    __tablename__ = "code_submissions"
    __table_args__ = (
        UniqueConstraint(
            "assignment_id", "candidate_id", "attempt_number", name="uq_submission_attempt"
        ),
        # at most one final submission per (assignment, candidate)
        Index(
            "uq_submission_final",
            "assignment_id",
            "candidate_id",
            unique=True,
            sqlite_where=text("submitted = 1"),
            postgresql_where=text("submitted = true"),
        ),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    assignment_id = Column(
        BigInteger,
        ForeignKey("interview_questions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    interview_id = Column(BigInteger, ForeignKey("interviews.id"), nullable=False, index=True)
    candidate_id = Column(BigInteger, nullable=False, index=True)

    code = Column(Text, nullable=False)
    language = Column(String(50), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    submitted = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, nullable=True)

    execution_time_ms = Column(Integer, nullable=True)
    memory_kb = Column(Integer, nullable=True)
    test_cases_passed = Column(Integer, nullable=False, default=0)
    total_test_cases = Column(Integer, nullable=False, default=0)
    score = Column(Numeric(5, 2), nullable=True)
    feedback = Column(Text, nullable=True)
    test_results = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
