"""
Typed failures raised by the engine.

Three families matter to callers:
- validation errors: input rejected before any state change
- conflict errors: business rules violated, never worth retrying as-is
- infrastructure errors: executor or database trouble, retryable with backoff
"""


class EngineError(Exception):
    code = "engine_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class ValidationError(EngineError, ValueError):
    code = "validation_error"
    status_code = 422


class NotFoundError(EngineError):
    code = "not_found"
    status_code = 404


class InterviewNotFound(NotFoundError):
    code = "interview_not_found"

    def __init__(self, interview_id: int):
        super().__init__(f"Interview {interview_id} not found")
        self.interview_id = interview_id


class AssignmentNotFound(NotFoundError):
    code = "assignment_not_found"

    def __init__(self, assignment_id: int):
        super().__init__(f"Question assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class QuestionNotFound(NotFoundError):
    code = "question_not_found"

    def __init__(self, question_id: int):
        super().__init__(f"Coding question {question_id} not found")
        self.question_id = question_id


class ConflictError(EngineError):
    code = "conflict"
    status_code = 409


class InvalidTransition(ConflictError):
    code = "invalid_transition"

    def __init__(self, interview_id: int, current, target):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Interview {interview_id} cannot move from "
            f"'{current_value}' to '{target_value}'"
        )
        self.interview_id = interview_id
        self.current = current
        self.target = target


class InterviewClosed(ConflictError):
    code = "interview_closed"

    def __init__(self, interview_id: int, status):
        status_value = getattr(status, "value", status)
        super().__init__(
            f"Interview {interview_id} is '{status_value}' and does not accept this request"
        )
        self.interview_id = interview_id
        self.status = status


class AlreadySubmitted(ConflictError):
    code = "already_submitted"

    def __init__(self, assignment_id: int, candidate_id: int):
        super().__init__(
            f"Candidate {candidate_id} already has a final submission "
            f"for assignment {assignment_id}"
        )
        self.assignment_id = assignment_id
        self.candidate_id = candidate_id


class SlotExhausted(ConflictError):
    code = "slot_exhausted"

    def __init__(self, duration_minutes: int, horizon_start, horizon_end):
        super().__init__(
            f"No free {duration_minutes}-minute slot between "
            f"{horizon_start.isoformat()} and {horizon_end.isoformat()}; "
            "try fewer candidates or a wider date range"
        )
        self.duration_minutes = duration_minutes
        self.horizon_start = horizon_start
        self.horizon_end = horizon_end


class SlotConflict(ConflictError):
    code = "slot_conflict"

    def __init__(self, recruiter_id: int, start, end, interview_id: int):
        super().__init__(
            f"Recruiter {recruiter_id} is already booked between "
            f"{start.isoformat()} and {end.isoformat()} (interview {interview_id})"
        )
        self.recruiter_id = recruiter_id
        self.interview_id = interview_id


class InterviewHasSubmissions(ConflictError):
    code = "interview_has_submissions"

    def __init__(self, interview_id: int, submissions: int):
        super().__init__(
            f"Interview {interview_id} has {submissions} code submissions and cannot be "
            "deleted; cancel it instead"
        )
        self.interview_id = interview_id


class InsufficientQuestions(ConflictError):
    code = "insufficient_questions"

    def __init__(self, tier, requested: int, available: int):
        tier_value = getattr(tier, "value", tier)
        super().__init__(
            f"Requested {requested} '{tier_value}' questions but only "
            f"{available} eligible active questions exist"
        )
        self.tier = tier
        self.requested = requested
        self.available = available


class InfrastructureError(EngineError):
    code = "infrastructure_error"
    status_code = 503
    retryable = True


class ExecutorUnavailable(InfrastructureError):
    code = "executor_unavailable"


class PersistenceUnavailable(InfrastructureError):
    code = "persistence_unavailable"
