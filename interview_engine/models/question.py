from sqlalchemy import BigInteger, Boolean, Column, DateTime, Enum, Integer, JSON, String, Text

from interview_engine.core.database import Base
from interview_engine.utils.datetime import utcnow
from interview_engine.utils.enums import Difficulty

MAX_TEST_CASES = 3


class CodingQuestion(Base):
    __tablename__ = "coding_questions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    title = Column(String(255), nullable=False)
    problem_statement = Column(Text, nullable=False)
    input_format = Column(Text, nullable=False, default="")
    output_format = Column(Text, nullable=False, default="")
    constraints = Column(Text, nullable=False, default="")
    explanation = Column(Text, nullable=False, default="")
    input_example = Column(Text, nullable=False, default="")
    output_example = Column(Text, nullable=False, default="")

    # [{"input": "...", "output": "..."}], hidden from candidates
    test_cases = Column(JSON, nullable=False)

    difficulty = Column(
        Enum(
            Difficulty,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        index=True,
    )
    topic = Column(String(100), nullable=False, default="", index=True)
    time_limit_minutes = Column(Integer, nullable=True, default=30)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(BigInteger, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
