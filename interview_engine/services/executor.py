"""
Code execution backends.

The grader only needs `execute(code, language, stdin, time_limit)`. Program
failures (bad exit, time limit, compile error) come back as an
ExecutionResult with a non-OK status; only transport failures raise
ExecutorUnavailable.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import requests

from interview_engine.core.errors import ExecutorUnavailable
from interview_engine.utils.enums import ExecutionStatus, Language

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    stdout: str
    status: ExecutionStatus
    execution_time_ms: Optional[int] = None
    memory_kb: Optional[int] = None
    stderr: str = ""
    description: str = ""


class ExecutionTimeout(Exception):
    """The sandbox did not finish the program in time. Not an infrastructure error."""


class CodeExecutor(Protocol):
    def execute(
        self, code: str, language: Language, stdin: str, time_limit: float
    ) -> ExecutionResult: ...


JUDGE0_LANGUAGE_IDS = {
    Language.JAVASCRIPT: 63,  # Node.js
    Language.PYTHON: 71,  # Python 3
    Language.JAVA: 62,
    Language.CPP: 54,  # C++17
    Language.C: 50,
}

JUDGE0_STATUS_DESCRIPTIONS = {
    1: "In Queue",
    2: "Processing",
    3: "Accepted",
    4: "Wrong Answer",
    5: "Time Limit Exceeded",
    6: "Compilation Error",
    7: "Runtime Error (SIGSEGV)",
    8: "Runtime Error (SIGXFSZ)",
    9: "Runtime Error (SIGFPE)",
    10: "Runtime Error (SIGABRT)",
    11: "Runtime Error (NZEC)",
    12: "Runtime Error (Other)",
    13: "Internal Error",
    14: "Exec Format Error",
}


def _judge0_status(status_id: int, stderr: str) -> ExecutionStatus:
    # 3 and 4 both mean the program ran to completion; output is compared by the grader
    if status_id in (3, 4):
        return ExecutionStatus.OK
    if status_id == 5:
        return ExecutionStatus.TIME_LIMIT_EXCEEDED
    if status_id == 6:
        return ExecutionStatus.COMPILATION_ERROR
    if status_id in (7, 8, 9, 10, 11, 12):
        if "memory" in stderr.lower():
            return ExecutionStatus.MEMORY_LIMIT_EXCEEDED
        return ExecutionStatus.RUNTIME_ERROR
    return ExecutionStatus.INTERNAL_ERROR


class Judge0Executor:
    """Talks to a Judge0 CE instance over HTTP: submit, then poll the token."""

    def __init__(
        self,
        base_url: str,
        poll_interval: float = 1.0,
        max_poll_attempts: int = 15,
        request_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.request_timeout = request_timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.request_timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Executor request failed", extra={"url": url, "error": str(e)})
            raise ExecutorUnavailable(f"Code executor unreachable: {e}") from e

    def execute(
        self, code: str, language: Language, stdin: str, time_limit: float
    ) -> ExecutionResult:
        language = Language(language)
        created = self._request(
            "POST",
            "/submissions",
            params={"base64_encoded": "false", "wait": "false"},
            json={
                "source_code": code,
                "language_id": JUDGE0_LANGUAGE_IDS[language],
                "stdin": stdin,
                "cpu_time_limit": time_limit,
            },
        )
        token = created.get("token")
        if not token:
            raise ExecutorUnavailable("Code executor returned no submission token")

        for _ in range(self.max_poll_attempts):
            time.sleep(self.poll_interval)
            result = self._request(
                "GET",
                f"/submissions/{token}",
                params={
                    "base64_encoded": "false",
                    "fields": "stdout,stderr,compile_output,status,time,memory",
                },
            )
            status_id = (result.get("status") or {}).get("id", 0)
            if status_id > 2:
                return self._to_result(result, status_id)

        raise ExecutionTimeout(f"Submission {token} still running after {self.max_poll_attempts} polls")

    @staticmethod
    def _to_result(payload: dict, status_id: int) -> ExecutionResult:
        stderr = payload.get("stderr") or payload.get("compile_output") or ""
        seconds = payload.get("time")
        return ExecutionResult(
            stdout=payload.get("stdout") or "",
            stderr=stderr,
            status=_judge0_status(status_id, stderr),
            execution_time_ms=int(round(float(seconds) * 1000)) if seconds is not None else None,
            memory_kb=payload.get("memory"),
            description=JUDGE0_STATUS_DESCRIPTIONS.get(status_id, "Unknown Status"),
        )
