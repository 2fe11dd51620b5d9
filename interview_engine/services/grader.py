import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from interview_engine.core.errors import (
    AlreadySubmitted,
    AssignmentNotFound,
    ExecutorUnavailable,
    InterviewClosed,
    InterviewNotFound,
    PersistenceUnavailable,
    ValidationError,
)
from interview_engine.models.assignment import InterviewQuestionAssignment
from interview_engine.models.interview import Interview
from interview_engine.models.submission import CodeSubmission
from interview_engine.schemas.submission import CaseResult, CodeRequest
from interview_engine.services.executor import CodeExecutor, ExecutionResult, ExecutionTimeout
from interview_engine.utils.datetime import utcnow
from interview_engine.utils.enums import ExecutionStatus, InterviewStatus, Language, Verdict

logger = logging.getLogger(__name__)

MAX_RECORD_RETRIES = 5

EXECUTION_VERDICTS = {
    ExecutionStatus.COMPILATION_ERROR: Verdict.COMPILATION_ERROR,
    ExecutionStatus.RUNTIME_ERROR: Verdict.RUNTIME_ERROR,
    ExecutionStatus.TIME_LIMIT_EXCEEDED: Verdict.TIME_LIMIT_EXCEEDED,
    ExecutionStatus.MEMORY_LIMIT_EXCEEDED: Verdict.MEMORY_LIMIT_EXCEEDED,
    ExecutionStatus.INTERNAL_ERROR: Verdict.ERROR,
}


def normalize_output(text: Optional[str]) -> str:
    """Drop trailing whitespace on every line and trailing blank lines."""
    if not text:
        return ""
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


@dataclass
class GradeReport:
    results: list[CaseResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def execution_time_ms(self) -> Optional[int]:
        times = [r.execution_time_ms for r in self.results if r.execution_time_ms is not None]
        return max(times) if times else None

    @property
    def memory_kb(self) -> Optional[int]:
        memory = [r.memory_kb for r in self.results if r.memory_kb is not None]
        return max(memory) if memory else None

    @property
    def score(self) -> float:
        if not self.total:
            return 0.0
        return round(self.passed / self.total * 100, 2)

    @property
    def feedback(self) -> str:
        lines = []
        for r in self.results:
            line = f"Test Case {r.index + 1}: {r.verdict.value.replace('_', ' ').upper()}"
            if r.detail:
                line += f" - {r.detail}"
            lines.append(line)
        return "\n".join(lines)


def judge_case(index: int, expected: str, execution: ExecutionResult) -> CaseResult:
    actual = normalize_output(execution.stdout)
    if execution.status == ExecutionStatus.OK:
        passed = actual == normalize_output(expected)
        verdict = Verdict.PASSED if passed else Verdict.WRONG_ANSWER
        detail = ""
    else:
        passed = False
        verdict = EXECUTION_VERDICTS[execution.status]
        detail = (execution.stderr or execution.description).strip()[:500]

    return CaseResult(
        index=index,
        verdict=verdict,
        passed=passed,
        actual_output=actual,
        detail=detail,
        execution_time_ms=execution.execution_time_ms,
        memory_kb=execution.memory_kb,
    )


class SubmissionGrader:
    """Runs candidate code against an assignment's hidden test cases and
    records each attempt."""

    def __init__(
        self,
        executor: CodeExecutor,
        max_workers: int = 4,
        dispatch_timeout: float = 20.0,
        time_limit: float = 2.0,
    ):
        self.executor = executor
        self.max_workers = max(1, max_workers)
        self.dispatch_timeout = dispatch_timeout
        self.time_limit = time_limit

    def grade(self, code: str, language: Language, test_cases: list[dict]) -> GradeReport:
        if not test_cases:
            return GradeReport()

        workers = min(self.max_workers, len(test_cases))
        # each dispatch gets dispatch_timeout; queued cases wait for a free worker
        budget = self.dispatch_timeout * math.ceil(len(test_cases) / workers)

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="grader")
        try:
            futures = {
                pool.submit(self.executor.execute, code, language, case.get("input", ""), self.time_limit): index
                for index, case in enumerate(test_cases)
            }
            _, pending = wait(futures, timeout=budget)
        finally:
            # a hung dispatch must not hold up the attempt
            pool.shutdown(wait=False, cancel_futures=True)

        results: list[Optional[CaseResult]] = [None] * len(test_cases)
        for future, index in futures.items():
            if future in pending:
                results[index] = CaseResult(
                    index=index,
                    verdict=Verdict.TIMEOUT,
                    passed=False,
                    detail=f"No result within {self.dispatch_timeout:g}s",
                )
                continue
            try:
                execution = future.result()
            except ExecutorUnavailable:
                raise
            except ExecutionTimeout as e:
                results[index] = CaseResult(
                    index=index, verdict=Verdict.TIMEOUT, passed=False, detail=str(e)
                )
                continue
            except Exception as e:
                logger.exception("Executor crashed on test case", extra={"test_case": index})
                results[index] = CaseResult(
                    index=index, verdict=Verdict.ERROR, passed=False, detail=str(e)
                )
                continue
            results[index] = judge_case(index, test_cases[index].get("output", ""), execution)

        return GradeReport(results=results)

    def run_code(self, db: Session, request: CodeRequest) -> CodeSubmission:
        """Non-final attempt: graded and recorded, never authoritative."""
        return self._grade_and_record(db, request, final=False)

    def submit_code(self, db: Session, request: CodeRequest) -> CodeSubmission:
        """Final attempt. Only one per (assignment, candidate)."""
        return self._grade_and_record(db, request, final=True)

    def _grade_and_record(self, db: Session, request: CodeRequest, final: bool) -> CodeSubmission:
        assignment = db.get(InterviewQuestionAssignment, request.assignment_id)
        if not assignment:
            raise AssignmentNotFound(request.assignment_id)

        interview = db.get(Interview, assignment.interview_id, populate_existing=True)
        if not interview:
            raise InterviewNotFound(assignment.interview_id)
        if interview.candidate_id != request.candidate_id:
            raise ValidationError(
                f"Candidate {request.candidate_id} is not the candidate of interview {interview.id}"
            )
        if interview.status != InterviewStatus.IN_PROGRESS:
            raise InterviewClosed(interview.id, interview.status)
        if final and _has_final(db, assignment.id, request.candidate_id):
            raise AlreadySubmitted(assignment.id, request.candidate_id)

        interview_id = interview.id
        test_cases = list(assignment.question.test_cases or [])
        # no transaction stays open across executor calls
        db.commit()

        logger.info(
            "Grading attempt",
            extra={
                "assignment_id": request.assignment_id,
                "candidate_id": request.candidate_id,
                "language": request.language.value,
                "final": final,
                "test_cases": len(test_cases),
            },
        )
        report = self.grade(request.code, request.language, test_cases)

        submission = self._record(db, request, interview_id, report, final)
        logger.info(
            "Attempt recorded",
            extra={
                "submission_id": submission.id,
                "attempt_number": submission.attempt_number,
                "passed": report.passed,
                "total": report.total,
                "final": final,
            },
        )
        return submission

    def _record(
        self,
        db: Session,
        request: CodeRequest,
        interview_id: int,
        report: GradeReport,
        final: bool,
    ) -> CodeSubmission:
        for _ in range(MAX_RECORD_RETRIES):
            try:
                submission = CodeSubmission(
                    assignment_id=request.assignment_id,
                    interview_id=interview_id,
                    candidate_id=request.candidate_id,
                    code=request.code,
                    language=request.language.value,
                    attempt_number=_next_attempt(db, request.assignment_id, request.candidate_id),
                    submitted=final,
                    submitted_at=utcnow() if final else None,
                    execution_time_ms=report.execution_time_ms,
                    memory_kb=report.memory_kb,
                    test_cases_passed=report.passed,
                    total_test_cases=report.total,
                    score=report.score,
                    feedback=report.feedback,
                    test_results=[r.model_dump(mode="json") for r in report.results],
                )
                db.add(submission)
                db.commit()
                return submission
            except IntegrityError:
                db.rollback()
                if final and _has_final(db, request.assignment_id, request.candidate_id):
                    raise AlreadySubmitted(request.assignment_id, request.candidate_id)
                logger.warning(
                    "Attempt number taken by a concurrent attempt, retrying",
                    extra={"assignment_id": request.assignment_id, "candidate_id": request.candidate_id},
                )
            except OperationalError as e:
                db.rollback()
                raise PersistenceUnavailable(f"Could not record attempt: {e.orig}") from e

        raise PersistenceUnavailable("Could not allocate an attempt number, try again")


def _next_attempt(db: Session, assignment_id: int, candidate_id: int) -> int:
    current = db.execute(
        select(func.max(CodeSubmission.attempt_number)).where(
            CodeSubmission.assignment_id == assignment_id,
            CodeSubmission.candidate_id == candidate_id,
        )
    ).scalar()
    return (current or 0) + 1


def _has_final(db: Session, assignment_id: int, candidate_id: int) -> bool:
    return (
        db.execute(
            select(CodeSubmission.id).where(
                CodeSubmission.assignment_id == assignment_id,
                CodeSubmission.candidate_id == candidate_id,
                CodeSubmission.submitted.is_(True),
            )
        ).first()
        is not None
    )


def submissions_for_interview(
    db: Session, interview_id: int, candidate_id: Optional[int] = None
) -> list[CodeSubmission]:
    if not db.get(Interview, interview_id):
        raise InterviewNotFound(interview_id)
    query = select(CodeSubmission).where(CodeSubmission.interview_id == interview_id)
    if candidate_id is not None:
        query = query.where(CodeSubmission.candidate_id == candidate_id)
    query = query.order_by(CodeSubmission.assignment_id, CodeSubmission.attempt_number)
    return list(db.execute(query).scalars())


def submissions_for_assignment(
    db: Session, assignment_id: int, candidate_id: int
) -> list[CodeSubmission]:
    if not db.get(InterviewQuestionAssignment, assignment_id):
        raise AssignmentNotFound(assignment_id)
    return list(
        db.execute(
            select(CodeSubmission)
            .where(
                CodeSubmission.assignment_id == assignment_id,
                CodeSubmission.candidate_id == candidate_id,
            )
            .order_by(CodeSubmission.attempt_number)
        ).scalars()
    )
