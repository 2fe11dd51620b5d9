from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from interview_engine.core.database import Base
from interview_engine.utils.datetime import utcnow


class InterviewQuestionAssignment(Base):
    __tablename__ = "interview_questions"
    __table_args__ = (
        UniqueConstraint("interview_id", "question_id", name="uq_interview_question"),
        UniqueConstraint("interview_id", "order_index", name="uq_interview_question_order"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    interview_id = Column(
        BigInteger,
        ForeignKey("interviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        BigInteger,
        ForeignKey("coding_questions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    order_index = Column(Integer, nullable=False)
    time_limit_minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    interview = relationship("Interview", back_populates="assignments")
    question = relationship("CodingQuestion", lazy="joined")
