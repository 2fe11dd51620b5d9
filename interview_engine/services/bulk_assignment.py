"""
Bulk interview assignment for one recruiter.

Slots are allocated against a single snapshot of the recruiter's calendar
while holding that recruiter's lock, then each candidate's interview and its
questions are created as one unit. Two policies:

- best_effort: every candidate stands alone; failures are reported per line
- all_or_nothing: the first failure rolls the whole batch back
"""

import logging
from typing import Callable, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from interview_engine.core.config import settings
from interview_engine.core.errors import EngineError, PersistenceUnavailable
from interview_engine.schemas.bulk import (
    BulkAssignRequest,
    BulkAssignResult,
    BulkCandidate,
    BulkLineResult,
)
from interview_engine.schemas.interview import InterviewCreate
from interview_engine.services.interview_service import (
    RecruiterLocks,
    busy_intervals,
    create_interview,
    recruiter_locks,
)
from interview_engine.services.slot_allocator import SearchWindow, SlotAllocation, TimeSlot, allocate_slots
from interview_engine.utils.datetime import parse_time_of_day
from interview_engine.utils.enums import BulkLineStatus, BulkPolicy, Difficulty, InterviewType

logger = logging.getLogger(__name__)

Allocator = Callable[..., list[SlotAllocation]]


def _failure_line(index: int, candidate: BulkCandidate, error: Exception) -> BulkLineResult:
    if isinstance(error, EngineError):
        code, message, retryable = error.code, error.message, error.retryable
    else:
        code, message, retryable = "validation_error", str(error), False
    return BulkLineResult(
        index=index,
        candidate_id=candidate.candidate_id,
        application_id=candidate.application_id,
        status=BulkLineStatus.FAILED,
        error=code,
        message=message,
        retryable=retryable,
    )


class BulkAssignmentOrchestrator:
    def __init__(
        self,
        allocator: Allocator = allocate_slots,
        locks: Optional[RecruiterLocks] = None,
        default_policy: Optional[BulkPolicy] = None,
        coding_plan: Optional[dict[Difficulty, int]] = None,
    ):
        self.allocator = allocator
        self.locks = locks or recruiter_locks
        self.default_policy = default_policy or settings.BULK_DEFAULT_POLICY
        self.coding_plan = coding_plan if coding_plan is not None else settings.CODING_TIER_PLAN

    def assign(self, db: Session, request: BulkAssignRequest) -> BulkAssignResult:
        policy = request.policy or self.default_policy
        window = SearchWindow(
            start=request.start,
            days=request.number_of_days,
            day_start=parse_time_of_day(request.day_start),
            day_end=parse_time_of_day(request.day_end),
        )
        window.validate()

        question_plan = request.question_plan
        if question_plan is None and request.interview_type == InterviewType.CODING:
            question_plan = self.coding_plan

        with self.locks.for_recruiter(request.recruiter_id):
            busy = busy_intervals(db, request.recruiter_id, window.start, window.end)
            allocations = self.allocator(
                request.candidates, request.duration_minutes, busy, window
            )
            logger.info(
                "Bulk assignment slots allocated",
                extra={
                    "recruiter_id": request.recruiter_id,
                    "candidates": len(request.candidates),
                    "allocated": sum(1 for a in allocations if a.ok),
                    "busy": len(busy),
                    "policy": policy.value,
                },
            )

            if policy == BulkPolicy.ALL_OR_NOTHING:
                lines = self._all_or_nothing(db, request, allocations, question_plan)
            else:
                lines = self._best_effort(db, request, allocations, question_plan)

        successful = sum(1 for line in lines if line.status == BulkLineStatus.CREATED)
        result = BulkAssignResult(
            policy=policy,
            successful=successful,
            failed=len(lines) - successful,
            results=lines,
        )
        logger.info(
            "Bulk assignment finished",
            extra={
                "recruiter_id": request.recruiter_id,
                "successful": result.successful,
                "failed": result.failed,
            },
        )
        return result

    def _interview_data(
        self, request: BulkAssignRequest, candidate: BulkCandidate, slot: TimeSlot
    ) -> InterviewCreate:
        return InterviewCreate(
            application_id=candidate.application_id,
            candidate_id=candidate.candidate_id,
            created_by=request.recruiter_id,
            time_slot_start=slot.start,
            time_slot_end=slot.end,
            interview_type=request.interview_type,
            mode=request.mode,
            timezone=request.timezone,
            notes=request.notes,
        )

    def _best_effort(self, db, request, allocations, question_plan) -> list[BulkLineResult]:
        lines = []
        for index, allocation in enumerate(allocations):
            candidate = allocation.candidate
            if not allocation.ok:
                lines.append(_failure_line(index, candidate, allocation.error))
                continue
            try:
                interview = create_interview(
                    db,
                    self._interview_data(request, candidate, allocation.slot),
                    question_plan=question_plan,
                    commit=True,
                    check_overlap=False,
                )
            except (EngineError, SchemaValidationError) as e:
                logger.warning(
                    "Bulk assignment line failed",
                    extra={"index": index, "candidate_id": candidate.candidate_id, "error": str(e)},
                )
                lines.append(_failure_line(index, candidate, e))
                continue

            lines.append(
                BulkLineResult(
                    index=index,
                    candidate_id=candidate.candidate_id,
                    application_id=candidate.application_id,
                    status=BulkLineStatus.CREATED,
                    interview_id=interview.id,
                    slot_start=allocation.slot.start,
                    slot_end=allocation.slot.end,
                )
            )
        return lines

    def _all_or_nothing(self, db, request, allocations, question_plan) -> list[BulkLineResult]:
        created = {}
        failure: Optional[BulkLineResult] = None

        for index, allocation in enumerate(allocations):
            candidate = allocation.candidate
            if not allocation.ok:
                failure = _failure_line(index, candidate, allocation.error)
                break
            try:
                created[index] = create_interview(
                    db,
                    self._interview_data(request, candidate, allocation.slot),
                    question_plan=question_plan,
                    commit=False,
                    check_overlap=False,
                )
            except (EngineError, SchemaValidationError) as e:
                failure = _failure_line(index, candidate, e)
                break

        if failure is None:
            try:
                db.commit()
            except OperationalError as e:
                db.rollback()
                raise PersistenceUnavailable(f"Bulk assignment could not be saved: {e.orig}") from e
        else:
            db.rollback()
            logger.warning(
                "Bulk assignment rolled back",
                extra={"recruiter_id": request.recruiter_id, "failed_index": failure.index},
            )

        lines = []
        for index, allocation in enumerate(allocations):
            candidate = allocation.candidate
            if failure is not None and index == failure.index:
                lines.append(failure)
            elif failure is not None:
                lines.append(
                    BulkLineResult(
                        index=index,
                        candidate_id=candidate.candidate_id,
                        application_id=candidate.application_id,
                        status=BulkLineStatus.ROLLED_BACK,
                        message=f"Batch aborted because line {failure.index} failed",
                    )
                )
            else:
                lines.append(
                    BulkLineResult(
                        index=index,
                        candidate_id=candidate.candidate_id,
                        application_id=candidate.application_id,
                        status=BulkLineStatus.CREATED,
                        interview_id=created[index].id,
                        slot_start=allocation.slot.start,
                        slot_end=allocation.slot.end,
                    )
                )
        return lines
