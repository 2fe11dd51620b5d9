from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from interview_engine.utils.enums import Language, Verdict


class CodeRequest(BaseModel):
    assignment_id: int
    candidate_id: int
    code: str = Field(min_length=1)
    language: Language


class CaseResult(BaseModel):
    index: int
    verdict: Verdict
    passed: bool
    actual_output: str = ""
    detail: str = ""
    execution_time_ms: Optional[int] = None
    memory_kb: Optional[int] = None


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    assignment_id: int
    interview_id: int
    candidate_id: int
    language: str
    attempt_number: int
    submitted: bool
    submitted_at: Optional[datetime] = None
    execution_time_ms: Optional[int] = None
    memory_kb: Optional[int] = None
    test_cases_passed: int
    total_test_cases: int
    score: Optional[Decimal] = None
    feedback: Optional[str] = None
    test_results: Optional[list[CaseResult]] = None
    created_at: datetime
