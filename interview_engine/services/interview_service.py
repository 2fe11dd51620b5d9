import logging
import threading
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from interview_engine.core.config import settings
from interview_engine.core.errors import (
    InterviewClosed,
    InterviewHasSubmissions,
    InterviewNotFound,
    InvalidTransition,
    PersistenceUnavailable,
    SlotConflict,
    ValidationError,
)
from interview_engine.models.interview import Interview
from interview_engine.models.submission import CodeSubmission
from interview_engine.schemas.interview import (
    InterviewCreate,
    InterviewOutcome,
    InterviewStats,
    InterviewUpdate,
)
from interview_engine.services.question_planner import assign_questions
from interview_engine.services.slot_allocator import TimeSlot
from interview_engine.utils.datetime import to_utc, utcnow
from interview_engine.utils.enums import Difficulty, InterviewStatus

logger = logging.getLogger(__name__)

# target status -> statuses it may be entered from
TRANSITIONS = {
    InterviewStatus.IN_PROGRESS: (InterviewStatus.SCHEDULED,),
    InterviewStatus.ENDED: (InterviewStatus.IN_PROGRESS,),
    InterviewStatus.CANCELLED: (InterviewStatus.SCHEDULED, InterviewStatus.IN_PROGRESS),
}


class RecruiterLocks:
    """One lock per recruiter, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def for_recruiter(self, recruiter_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(recruiter_id)
            if lock is None:
                lock = self._locks[recruiter_id] = threading.Lock()
            return lock


# shared by direct scheduling and bulk assignment in this process
recruiter_locks = RecruiterLocks()


def _ensure_slot_free(
    db: Session,
    recruiter_id: int,
    start: datetime,
    end: datetime,
    exclude_id: Optional[int] = None,
):
    query = select(Interview.id).where(
        Interview.created_by == recruiter_id,
        Interview.status != InterviewStatus.CANCELLED,
        Interview.time_slot_start < end,
        Interview.time_slot_end > start,
    )
    if exclude_id is not None:
        query = query.where(Interview.id != exclude_id)

    clash = db.execute(query.order_by(Interview.time_slot_start).limit(1)).scalar()
    if clash is not None:
        raise SlotConflict(recruiter_id, start, end, clash)


def create_interview(
    db: Session,
    data: InterviewCreate,
    question_plan: Optional[dict[Difficulty, int]] = None,
    commit: bool = True,
    check_overlap: bool = True,
    locks: Optional[RecruiterLocks] = None,
) -> Interview:
    """Create an interview in `scheduled` state, with its initial questions.

    The interview row and its question assignments are written as one unit:
    if the questions cannot be attached nothing is kept. Unless the caller
    already holds the recruiter's lock and allocated a free slot
    (`check_overlap=False`), the slot is checked against the recruiter's
    calendar under that lock.
    """
    if data.time_slot_start >= data.time_slot_end:
        raise ValidationError("time_slot_start must be before time_slot_end")

    if not check_overlap:
        return _insert_interview(db, data, question_plan, commit, check_overlap=False)

    with (locks or recruiter_locks).for_recruiter(data.created_by):
        return _insert_interview(db, data, question_plan, commit, check_overlap=True)


def _insert_interview(
    db: Session,
    data: InterviewCreate,
    question_plan: Optional[dict[Difficulty, int]],
    commit: bool,
    check_overlap: bool,
) -> Interview:
    interview = Interview(
        application_id=data.application_id,
        candidate_id=data.candidate_id,
        created_by=data.created_by,
        scheduled_at=data.time_slot_start,
        time_slot_start=data.time_slot_start,
        time_slot_end=data.time_slot_end,
        duration_minutes=data.duration_minutes,
        timezone=data.timezone,
        mode=data.mode,
        interview_type=data.interview_type,
        status=InterviewStatus.SCHEDULED,
        notes=data.notes,
    )

    try:
        if check_overlap:
            _ensure_slot_free(db, data.created_by, data.time_slot_start, data.time_slot_end)
        db.add(interview)
        db.flush()
        if question_plan:
            assign_questions(db, interview.id, question_plan, commit=False)
        if commit:
            db.commit()
    except OperationalError as e:
        db.rollback()
        raise PersistenceUnavailable(f"Could not create interview: {e.orig}") from e
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Interview created",
        extra={
            "interview_id": interview.id,
            "application_id": data.application_id,
            "interview_type": data.interview_type.value,
        },
    )
    return interview


def get_interview(db: Session, interview_id: int) -> Interview:
    interview = db.get(Interview, interview_id)
    if not interview:
        raise InterviewNotFound(interview_id)
    return interview


def _guarded_update(db: Session, interview_id: int, allowed, **values) -> bool:
    """Apply `values` only while the interview's status is one of `allowed`."""
    result = db.execute(
        update(Interview)
        .where(Interview.id == interview_id, Interview.status.in_(allowed))
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _status_after_miss(db: Session, interview_id: int) -> InterviewStatus:
    db.rollback()
    current = db.execute(
        select(Interview.status).where(Interview.id == interview_id)
    ).scalar_one_or_none()
    if current is None:
        raise InterviewNotFound(interview_id)
    return current


def _transition(db: Session, interview_id: int, target: InterviewStatus, **values) -> Interview:
    if not _guarded_update(db, interview_id, TRANSITIONS[target], status=target, **values):
        current = _status_after_miss(db, interview_id)
        logger.warning(
            "Rejected interview transition",
            extra={"interview_id": interview_id, "current": current.value, "target": target.value},
        )
        raise InvalidTransition(interview_id, current, target)

    db.commit()
    interview = db.get(Interview, interview_id, populate_existing=True)
    logger.info(
        "Interview transitioned",
        extra={"interview_id": interview_id, "status": target.value},
    )
    return interview


def start_interview(db: Session, interview_id: int) -> Interview:
    now = utcnow()
    if settings.ENFORCE_SLOT_WINDOW:
        interview = get_interview(db, interview_id)
        if interview.status == InterviewStatus.SCHEDULED:
            if now < interview.time_slot_start:
                raise ValidationError(
                    "Interview cannot be started early; it opens at "
                    f"{interview.time_slot_start.isoformat()}"
                )
            if now > interview.time_slot_end:
                raise ValidationError(
                    "Interview time slot has expired; ask the recruiter to reschedule"
                )

    return _transition(db, interview_id, InterviewStatus.IN_PROGRESS, started_at=now)


def end_interview(
    db: Session, interview_id: int, outcome: Optional[InterviewOutcome] = None
) -> Interview:
    values = {"ended_at": utcnow()}
    if outcome is not None:
        values.update(outcome.model_dump(exclude_none=True))
    return _transition(db, interview_id, InterviewStatus.ENDED, **values)


def cancel_interview(db: Session, interview_id: int) -> Interview:
    return _transition(db, interview_id, InterviewStatus.CANCELLED, cancelled_at=utcnow())


def reschedule_interview(
    db: Session,
    interview_id: int,
    data: InterviewUpdate,
    locks: Optional[RecruiterLocks] = None,
) -> Interview:
    """Move a scheduled interview to a new slot and/or edit its details.

    Only `scheduled` interviews can change; a new slot must be free in the
    recruiter's calendar.
    """
    interview = get_interview(db, interview_id)
    values = data.model_dump(exclude_none=True)
    if not values:
        return interview
    if "time_slot_start" in values:
        start, end = values["time_slot_start"], values["time_slot_end"]
        values["scheduled_at"] = start
        values["duration_minutes"] = int((end - start).total_seconds() // 60)

    with (locks or recruiter_locks).for_recruiter(interview.created_by):
        try:
            if "time_slot_start" in values:
                _ensure_slot_free(
                    db, interview.created_by, start, end, exclude_id=interview_id
                )
            if not _guarded_update(db, interview_id, (InterviewStatus.SCHEDULED,), **values):
                raise InterviewClosed(interview_id, _status_after_miss(db, interview_id))
            db.commit()
        except OperationalError as e:
            db.rollback()
            raise PersistenceUnavailable(f"Could not update interview: {e.orig}") from e

    interview = db.get(Interview, interview_id, populate_existing=True)
    logger.info(
        "Interview updated",
        extra={"interview_id": interview_id, "fields": sorted(values)},
    )
    return interview


def delete_interview(db: Session, interview_id: int):
    """Physically remove an interview and its question assignments.

    Interviews with code submissions are kept; those can only be cancelled.
    """
    interview = get_interview(db, interview_id)
    submissions = db.execute(
        select(func.count(CodeSubmission.id)).where(CodeSubmission.interview_id == interview_id)
    ).scalar()
    if submissions:
        raise InterviewHasSubmissions(interview_id, submissions)

    try:
        db.delete(interview)
        db.commit()
    except IntegrityError as e:
        # a submission landed after the count
        db.rollback()
        raise InterviewHasSubmissions(interview_id, 1) from e
    except OperationalError as e:
        db.rollback()
        raise PersistenceUnavailable(f"Could not delete interview: {e.orig}") from e

    logger.info("Interview deleted", extra={"interview_id": interview_id})


def list_interviews(
    db: Session,
    recruiter_id: Optional[int] = None,
    candidate_id: Optional[int] = None,
    status: Optional[InterviewStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Interview]:
    query = select(Interview)
    if recruiter_id is not None:
        query = query.where(Interview.created_by == recruiter_id)
    if candidate_id is not None:
        query = query.where(Interview.candidate_id == candidate_id)
    if status is not None:
        query = query.where(Interview.status == status)
    if start is not None:
        query = query.where(Interview.scheduled_at >= to_utc(start))
    if end is not None:
        query = query.where(Interview.scheduled_at <= to_utc(end))

    query = query.order_by(Interview.scheduled_at.asc(), Interview.id.asc())
    return list(db.execute(query.limit(limit).offset(offset)).scalars())


def interview_stats(db: Session, recruiter_id: int) -> InterviewStats:
    rows = db.execute(
        select(Interview.status, func.count(Interview.id))
        .where(Interview.created_by == recruiter_id)
        .group_by(Interview.status)
    ).all()

    stats = InterviewStats()
    for status, count in rows:
        setattr(stats, status.value, count)
        stats.total += count
    return stats


def busy_intervals(
    db: Session, recruiter_id: int, start: datetime, end: datetime
) -> list[TimeSlot]:
    """Slots a recruiter already has booked that overlap [start, end)."""
    try:
        rows = db.execute(
            select(Interview.time_slot_start, Interview.time_slot_end)
            .where(
                and_(
                    Interview.created_by == recruiter_id,
                    Interview.status != InterviewStatus.CANCELLED,
                    Interview.time_slot_start < end,
                    Interview.time_slot_end > start,
                )
            )
            .order_by(Interview.time_slot_start)
        ).all()
    except OperationalError as e:
        db.rollback()
        raise PersistenceUnavailable(f"Could not read recruiter calendar: {e.orig}") from e
    return [TimeSlot(row.time_slot_start, row.time_slot_end) for row in rows]
