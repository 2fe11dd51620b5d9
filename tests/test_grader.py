import pytest

from interview_engine.core.errors import (
    AlreadySubmitted,
    AssignmentNotFound,
    ExecutorUnavailable,
    InterviewClosed,
    ValidationError,
)
from interview_engine.models.submission import CodeSubmission
from interview_engine.schemas.submission import CodeRequest
from interview_engine.services.executor import ExecutionResult, ExecutionTimeout
from interview_engine.services import grader as grader_module
from interview_engine.services.grader import (
    SubmissionGrader,
    normalize_output,
    submissions_for_assignment,
    submissions_for_interview,
)
from interview_engine.services.interview_service import cancel_interview, end_interview, start_interview
from interview_engine.services.question_planner import interview_questions
from interview_engine.utils.enums import Difficulty, ExecutionStatus, Language, Verdict
from conftest import ScriptedExecutor, ok

THREE_CASES = [
    {"input": "a", "output": "A"},
    {"input": "b", "output": "B"},
    {"input": "c", "output": "C"},
]


@pytest.fixture
def coding_setup(db, make_interview, make_question):
    make_question(Difficulty.EASY, test_cases=THREE_CASES)
    make_question(Difficulty.MEDIUM, test_cases=THREE_CASES)
    interview = make_interview(question_plan={Difficulty.EASY: 1, Difficulty.MEDIUM: 1})
    start_interview(db, interview.id)
    assignments, _ = interview_questions(db, interview.id)
    return interview, assignments


def request_for(interview, assignment, code="print(input().upper())"):
    return CodeRequest(
        assignment_id=assignment.id,
        candidate_id=interview.candidate_id,
        code=code,
        language=Language.PYTHON,
    )


def all_pass_executor():
    return ScriptedExecutor({"a": ok("A"), "b": ok("B"), "c": ok("C")})


class TestNormalizeOutput:
    def test_trailing_whitespace_and_blank_lines_ignored(self):
        assert normalize_output("1 2  \n3\t\n\n\n") == "1 2\n3"

    def test_crlf(self):
        assert normalize_output("x\r\ny\r\n") == "x\ny"

    def test_leading_and_inner_whitespace_kept(self):
        assert normalize_output("  x") != normalize_output("x")
        assert normalize_output("a  b") != normalize_output("a b")

    def test_empty(self):
        assert normalize_output(None) == ""


class TestGrade:
    def test_aggregates_by_index_regardless_of_completion_order(self):
        executor = ScriptedExecutor(
            {"a": ok("A", time_ms=30), "b": ok("wrong", time_ms=5), "c": ok("C", memory_kb=4096)},
            delays={"a": 0.2, "b": 0.1},
        )
        grader = SubmissionGrader(executor, max_workers=3)

        report = grader.grade("code", Language.PYTHON, THREE_CASES)

        assert executor.completed[0] == "c"
        assert [r.index for r in report.results] == [0, 1, 2]
        assert [r.passed for r in report.results] == [True, False, True]
        assert report.passed == 2
        assert report.total == 3
        assert report.execution_time_ms == 30
        assert report.memory_kb == 4096
        assert report.score == pytest.approx(66.67)
        assert report.results[1].verdict == Verdict.WRONG_ANSWER

    def test_program_failures_are_failed_cases(self):
        executor = ScriptedExecutor(
            {
                "a": ExecutionResult(stdout="", status=ExecutionStatus.TIME_LIMIT_EXCEEDED),
                "b": ExecutionResult(
                    stdout="", status=ExecutionStatus.RUNTIME_ERROR, stderr="ZeroDivisionError"
                ),
                "c": ExecutionTimeout("still running"),
            }
        )
        report = SubmissionGrader(executor).grade("code", Language.PYTHON, THREE_CASES)

        assert report.passed == 0
        assert [r.verdict for r in report.results] == [
            Verdict.TIME_LIMIT_EXCEEDED,
            Verdict.RUNTIME_ERROR,
            Verdict.TIMEOUT,
        ]
        assert "ZeroDivisionError" in report.results[1].detail

    def test_hung_dispatch_marked_timeout(self):
        executor = ScriptedExecutor({"a": ok("A"), "c": ok("C")}, delays={"b": 1.0})
        grader = SubmissionGrader(executor, max_workers=3, dispatch_timeout=0.2)

        report = grader.grade("code", Language.PYTHON, THREE_CASES)

        assert report.results[1].verdict == Verdict.TIMEOUT
        assert report.passed == 2

    def test_executor_crash_is_failed_case(self):
        executor = ScriptedExecutor({"a": ok("A"), "b": RuntimeError("sandbox died"), "c": ok("C")})
        report = SubmissionGrader(executor).grade("code", Language.PYTHON, THREE_CASES)

        assert report.results[1].verdict == Verdict.ERROR
        assert report.passed == 2

    def test_executor_unavailable_propagates(self):
        executor = ScriptedExecutor({"b": ExecutorUnavailable("connection refused")})

        with pytest.raises(ExecutorUnavailable):
            SubmissionGrader(executor).grade("code", Language.PYTHON, THREE_CASES)


class TestAttempts:
    def test_attempts_numbered_in_call_order(self, db, coding_setup):
        interview, assignments = coding_setup
        grader = SubmissionGrader(all_pass_executor())
        req = request_for(interview, assignments[0])

        attempts = [grader.run_code(db, req).attempt_number for _ in range(3)]

        assert attempts == [1, 2, 3]

    def test_run_never_marks_submitted(self, db, coding_setup):
        interview, assignments = coding_setup
        submission = SubmissionGrader(all_pass_executor()).run_code(
            db, request_for(interview, assignments[0])
        )

        assert submission.test_cases_passed == 3
        assert submission.submitted is False
        assert submission.submitted_at is None

    def test_second_submit_rejected_but_run_still_allowed(self, db, coding_setup):
        interview, assignments = coding_setup
        grader = SubmissionGrader(all_pass_executor())
        req = request_for(interview, assignments[0])

        final = grader.submit_code(db, req)
        assert final.submitted is True
        assert final.attempt_number == 1

        with pytest.raises(AlreadySubmitted):
            grader.submit_code(db, req)

        later_run = grader.run_code(db, req)
        assert later_run.submitted is False
        assert later_run.attempt_number == 2

        finals = [s for s in submissions_for_assignment(db, assignments[0].id, interview.candidate_id) if s.submitted]
        assert [s.id for s in finals] == [final.id]

    def test_attempts_are_per_assignment(self, db, coding_setup):
        interview, assignments = coding_setup
        grader = SubmissionGrader(all_pass_executor())

        grader.run_code(db, request_for(interview, assignments[0]))
        other = grader.submit_code(db, request_for(interview, assignments[1]))

        assert other.attempt_number == 1

    def test_partial_result_recorded(self, db, coding_setup):
        interview, assignments = coding_setup
        executor = ScriptedExecutor({"a": ok("A"), "b": ok("nope"), "c": ok("C")})

        submission = SubmissionGrader(executor).submit_code(db, request_for(interview, assignments[0]))

        assert submission.test_cases_passed == 2
        assert submission.total_test_cases == 3
        assert submission.test_results[1]["verdict"] == "wrong_answer"
        assert "Test Case 2: WRONG ANSWER" in submission.feedback

    def test_executor_outage_records_nothing(self, db, coding_setup):
        interview, assignments = coding_setup
        executor = ScriptedExecutor({"a": ExecutorUnavailable("down")})

        with pytest.raises(ExecutorUnavailable):
            SubmissionGrader(executor).submit_code(db, request_for(interview, assignments[0]))

        assert db.query(CodeSubmission).count() == 0


    def test_concurrent_final_caught_by_unique_index(self, db, coding_setup, monkeypatch):
        interview, assignments = coding_setup
        grader = SubmissionGrader(all_pass_executor())
        req = request_for(interview, assignments[0])
        winner = grader.submit_code(db, req)

        # the pre-grading check misses the other final, as if it landed mid-grade
        real_has_final = grader_module._has_final
        checks = []

        def stale_has_final(session, assignment_id, candidate_id):
            checks.append(assignment_id)
            if len(checks) == 1:
                return False
            return real_has_final(session, assignment_id, candidate_id)

        monkeypatch.setattr(grader_module, "_has_final", stale_has_final)

        with pytest.raises(AlreadySubmitted):
            grader.submit_code(db, req)

        assert len(checks) == 2
        finals = db.query(CodeSubmission).filter(CodeSubmission.submitted.is_(True)).all()
        assert [s.id for s in finals] == [winner.id]


class TestPreconditions:
    def test_cancelled_interview_rejects_new_attempts(self, db, coding_setup):
        interview, assignments = coding_setup
        cancel_interview(db, interview.id)

        with pytest.raises(InterviewClosed):
            SubmissionGrader(all_pass_executor()).run_code(db, request_for(interview, assignments[0]))

    def test_ended_interview_rejects_submit(self, db, coding_setup):
        interview, assignments = coding_setup
        end_interview(db, interview.id)

        with pytest.raises(InterviewClosed):
            SubmissionGrader(all_pass_executor()).submit_code(db, request_for(interview, assignments[0]))

    def test_wrong_candidate(self, db, coding_setup):
        interview, assignments = coding_setup
        req = request_for(interview, assignments[0]).model_copy(update={"candidate_id": 999})

        with pytest.raises(ValidationError):
            SubmissionGrader(all_pass_executor()).run_code(db, req)

    def test_unknown_assignment(self, db, coding_setup):
        interview, _ = coding_setup
        req = CodeRequest(assignment_id=12345, candidate_id=interview.candidate_id, code="x", language="python")

        with pytest.raises(AssignmentNotFound):
            SubmissionGrader(all_pass_executor()).run_code(db, req)


class TestQueries:
    def test_submissions_for_interview(self, db, coding_setup):
        interview, assignments = coding_setup
        grader = SubmissionGrader(all_pass_executor())
        grader.run_code(db, request_for(interview, assignments[1]))
        grader.run_code(db, request_for(interview, assignments[0]))
        grader.submit_code(db, request_for(interview, assignments[0]))

        subs = submissions_for_interview(db, interview.id)

        assert [(s.assignment_id, s.attempt_number) for s in subs] == [
            (assignments[0].id, 1),
            (assignments[0].id, 2),
            (assignments[1].id, 1),
        ]

    def test_current_question_moves_after_submit(self, db, coding_setup):
        interview, assignments = coding_setup
        SubmissionGrader(all_pass_executor()).submit_code(db, request_for(interview, assignments[0]))

        _, current = interview_questions(db, interview.id, interview.candidate_id)

        assert current == 1
