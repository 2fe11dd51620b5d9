from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from interview_engine.models.question import MAX_TEST_CASES
from interview_engine.utils.enums import Difficulty


class HiddenCase(BaseModel):
    input: str = ""
    output: str


class QuestionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    problem_statement: str = Field(min_length=1)
    input_format: str = ""
    output_format: str = ""
    constraints: str = ""
    explanation: str = ""
    input_example: str = ""
    output_example: str = ""
    test_cases: list[HiddenCase]
    difficulty: Difficulty
    topic: str = ""
    time_limit_minutes: Optional[int] = Field(default=30, gt=0)
    is_active: bool = True
    created_by: Optional[int] = None

    @field_validator("test_cases")
    @classmethod
    def test_case_count(cls, value: list[HiddenCase]) -> list[HiddenCase]:
        if not 1 <= len(value) <= MAX_TEST_CASES:
            raise ValueError(f"A question needs between 1 and {MAX_TEST_CASES} test cases")
        return value


class QuestionSummary(BaseModel):
    """What a candidate may see: no hidden test cases."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    problem_statement: str
    input_format: str
    output_format: str
    constraints: str
    explanation: str
    input_example: str
    output_example: str
    difficulty: Difficulty
    topic: str
    time_limit_minutes: Optional[int] = None


class QuestionResponse(QuestionSummary):
    test_cases: list[HiddenCase]
    is_active: bool
    created_by: Optional[int] = None
    created_at: datetime


class QuestionActiveUpdate(BaseModel):
    is_active: bool


def check_tier_plan(value: dict[Difficulty, int]) -> dict[Difficulty, int]:
    """Shared rule for every tier plan: no negative counts, at least one question."""
    if not value:
        raise ValueError("At least one tier must be requested")
    for tier, count in value.items():
        if count < 0:
            raise ValueError(f"Count for tier '{tier.value}' must not be negative")
    if sum(value.values()) == 0:
        raise ValueError("At least one question must be requested")
    return value


class AssignQuestionsRequest(BaseModel):
    tiers: dict[Difficulty, int]

    @field_validator("tiers")
    @classmethod
    def positive_counts(cls, value: dict[Difficulty, int]) -> dict[Difficulty, int]:
        return check_tier_plan(value)


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    interview_id: int
    question_id: int
    order_index: int
    time_limit_minutes: Optional[int] = None
    question: QuestionSummary


class InterviewQuestionsResponse(BaseModel):
    interview_id: int
    questions: list[AssignmentResponse]
    current_question_index: int


class QuestionImportResult(BaseModel):
    total_processed: int
    successful: int
    failed: int
    errors: list[str]
