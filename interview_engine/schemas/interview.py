from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from interview_engine.schemas.question import check_tier_plan
from interview_engine.utils.datetime import is_valid_timezone, to_utc
from interview_engine.utils.enums import (
    Difficulty,
    InterviewMode,
    InterviewStatus,
    InterviewType,
)


class InterviewCreate(BaseModel):
    application_id: int
    candidate_id: int
    created_by: int
    time_slot_start: datetime
    time_slot_end: datetime
    interview_type: InterviewType = InterviewType.CODING
    mode: InterviewMode = InterviewMode.LIVE
    timezone: str = "UTC"
    notes: Optional[str] = None
    # None means "use the configured plan for coding interviews"
    question_plan: Optional[dict[Difficulty, int]] = None

    @field_validator("time_slot_start", "time_slot_end")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return to_utc(value)

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

    @model_validator(mode="after")
    def slot_order(self):
        if self.time_slot_start >= self.time_slot_end:
            raise ValueError("time_slot_start must be before time_slot_end")
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.time_slot_end - self.time_slot_start).total_seconds() // 60)


class InterviewUpdate(BaseModel):
    """Reschedule or edit a scheduled interview. Omitted fields stay as they are."""

    time_slot_start: Optional[datetime] = None
    time_slot_end: Optional[datetime] = None
    timezone: Optional[str] = None
    mode: Optional[InterviewMode] = None
    notes: Optional[str] = None

    @field_validator("time_slot_start", "time_slot_end")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else to_utc(value)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @model_validator(mode="after")
    def slot_given_whole(self):
        if (self.time_slot_start is None) != (self.time_slot_end is None):
            raise ValueError("time_slot_start and time_slot_end must be changed together")
        if self.time_slot_start is not None and self.time_slot_start >= self.time_slot_end:
            raise ValueError("time_slot_start must be before time_slot_end")
        return self


class InterviewOutcome(BaseModel):
    ai_score: Optional[Decimal] = Field(default=None, ge=0, le=100)
    ai_feedback_summary: Optional[str] = None
    plagiarism_flagged: Optional[bool] = None
    integrity_flags: Optional[dict[str, Any]] = None


class InterviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    candidate_id: int
    created_by: int
    scheduled_at: datetime
    time_slot_start: datetime
    time_slot_end: datetime
    duration_minutes: int
    timezone: str
    mode: InterviewMode
    interview_type: InterviewType
    status: InterviewStatus
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    ai_score: Optional[Decimal] = None
    ai_feedback_summary: Optional[str] = None
    plagiarism_flagged: bool = False
    integrity_flags: Optional[dict[str, Any]] = None


class InterviewStats(BaseModel):
    total: int = 0
    scheduled: int = 0
    in_progress: int = 0
    ended: int = 0
    cancelled: int = 0
