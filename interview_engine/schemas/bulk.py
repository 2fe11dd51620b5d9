from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from interview_engine.core.config import settings
from interview_engine.schemas.question import check_tier_plan
from interview_engine.utils.datetime import is_valid_timezone, parse_time_of_day, to_utc
from interview_engine.utils.enums import (
    BulkLineStatus,
    BulkPolicy,
    Difficulty,
    InterviewMode,
    InterviewType,
)


class BulkCandidate(BaseModel):
    candidate_id: int
    application_id: int


class BulkAssignRequest(BaseModel):
    recruiter_id: int
    candidates: list[BulkCandidate] = Field(min_length=1)
    duration_minutes: int = Field(default=60, gt=0)
    interview_type: InterviewType = InterviewType.CODING
    mode: InterviewMode = InterviewMode.LIVE
    timezone: str = "UTC"
    notes: Optional[str] = None

    start: datetime
    number_of_days: int = Field(default=settings.DEFAULT_SEARCH_DAYS, gt=0)
    day_start: str = settings.DEFAULT_DAY_START
    day_end: str = settings.DEFAULT_DAY_END

    question_plan: Optional[dict[Difficulty, int]] = None
    policy: Optional[BulkPolicy] = None

    @field_validator("start")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @field_validator("day_start", "day_end")
    @classmethod
    def time_of_day(cls, value: str) -> str:
        parse_time_of_day(value)
        return value

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @field_validator("question_plan")
    @classmethod
    def valid_plan(cls, value: Optional[dict[Difficulty, int]]) -> Optional[dict[Difficulty, int]]:
        return None if value is None else check_tier_plan(value)


class BulkLineResult(BaseModel):
    index: int
    candidate_id: int
    application_id: int
    status: BulkLineStatus
    interview_id: Optional[int] = None
    slot_start: Optional[datetime] = None
    slot_end: Optional[datetime] = None
    error: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False


class BulkAssignResult(BaseModel):
    policy: BulkPolicy
    successful: int
    failed: int
    results: list[BulkLineResult]
