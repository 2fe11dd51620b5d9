"""Shared fixtures: in-memory database, scripted executor, data factories."""

import threading
import time
from datetime import datetime, timedelta

import pytest

from interview_engine.core.database import Database
from interview_engine.schemas.interview import InterviewCreate
from interview_engine.schemas.question import QuestionCreate
from interview_engine.services.executor import ExecutionResult
from interview_engine.services.interview_service import create_interview
from interview_engine.services.question_bank import create_question
from interview_engine.utils.enums import Difficulty, ExecutionStatus, InterviewType


class ScriptedExecutor:
    """Answers by stdin. A script entry is an ExecutionResult, an exception to
    raise, or a callable returning either. Unknown stdin echoes back."""

    def __init__(self, script=None, delays=None):
        self.script = script or {}
        self.delays = delays or {}
        self.calls = []
        self.completed = []
        self._lock = threading.Lock()

    def execute(self, code, language, stdin, time_limit):
        with self._lock:
            self.calls.append(stdin)
        delay = self.delays.get(stdin)
        if delay:
            time.sleep(delay)

        outcome = self.script.get(stdin)
        if callable(outcome):
            outcome = outcome()
        with self._lock:
            self.completed.append(stdin)

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ExecutionResult):
            return outcome
        return ExecutionResult(
            stdout=stdin, status=ExecutionStatus.OK, execution_time_ms=10, memory_kb=1024
        )


def ok(stdout, time_ms=10, memory_kb=1024):
    return ExecutionResult(
        stdout=stdout, status=ExecutionStatus.OK, execution_time_ms=time_ms, memory_kb=memory_kb
    )


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.open()
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def executor():
    return ScriptedExecutor()


@pytest.fixture
def make_question(db):
    counter = {"n": 0}

    def _make(difficulty=Difficulty.EASY, test_cases=None, is_active=True, topic="arrays"):
        counter["n"] += 1
        data = QuestionCreate(
            title=f"Question {counter['n']}",
            problem_statement="Echo the input.",
            difficulty=difficulty,
            topic=topic,
            is_active=is_active,
            test_cases=test_cases or [{"input": "1", "output": "1"}],
        )
        return create_question(db, data)

    return _make


@pytest.fixture
def make_interview(db):
    counter = {"n": 0}

    def _make(
        candidate_id=100,
        recruiter_id=1,
        start=None,
        minutes=60,
        interview_type=InterviewType.TECHNICAL,
        question_plan=None,
    ):
        counter["n"] += 1
        # one day apart so the recruiter is never double-booked
        start = start or datetime(2030, 1, 7, 10, 0) + timedelta(days=counter["n"] - 1)
        data = InterviewCreate(
            application_id=1000 + counter["n"],
            candidate_id=candidate_id,
            created_by=recruiter_id,
            time_slot_start=start,
            time_slot_end=start + timedelta(minutes=minutes),
            interview_type=interview_type,
        )
        return create_interview(db, data, question_plan=question_plan)

    return _make
