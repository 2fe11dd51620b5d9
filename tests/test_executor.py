from unittest.mock import MagicMock, patch

import pytest
import requests

from interview_engine.core.errors import ExecutorUnavailable
from interview_engine.services.executor import ExecutionTimeout, Judge0Executor
from interview_engine.utils.enums import ExecutionStatus, Language


def response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def judge0(responses, max_poll_attempts=3):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = responses
    executor = Judge0Executor(
        "http://judge0:2358/",
        poll_interval=0,
        max_poll_attempts=max_poll_attempts,
        session=session,
    )
    return executor, session


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("interview_engine.services.executor.time.sleep"):
        yield


class TestJudge0Executor:
    def test_submit_then_poll(self):
        executor, session = judge0(
            [
                response({"token": "abc"}),
                response({"status": {"id": 2}}),
                response(
                    {"status": {"id": 3}, "stdout": "3\n", "time": "0.042", "memory": 3120}
                ),
            ]
        )

        result = executor.execute("print(3)", Language.PYTHON, "1 2", 2.0)

        assert result.status == ExecutionStatus.OK
        assert result.stdout == "3\n"
        assert result.execution_time_ms == 42
        assert result.memory_kb == 3120

        method, url = session.request.call_args_list[0].args
        assert (method, url) == ("POST", "http://judge0:2358/submissions")
        body = session.request.call_args_list[0].kwargs["json"]
        assert body["language_id"] == 71
        assert body["stdin"] == "1 2"
        assert session.request.call_args_list[-1].args[1] == "http://judge0:2358/submissions/abc"

    def test_wrong_answer_status_still_runs_to_completion(self):
        executor, _ = judge0(
            [response({"token": "t"}), response({"status": {"id": 4}, "stdout": "5"})]
        )

        result = executor.execute("x", Language.JAVA, "", 2.0)

        assert result.status == ExecutionStatus.OK
        assert result.execution_time_ms is None

    @pytest.mark.parametrize(
        "status_id, stderr, expected",
        [
            (5, "", ExecutionStatus.TIME_LIMIT_EXCEEDED),
            (6, "", ExecutionStatus.COMPILATION_ERROR),
            (11, "Traceback", ExecutionStatus.RUNTIME_ERROR),
            (7, "Out of memory", ExecutionStatus.MEMORY_LIMIT_EXCEEDED),
            (13, "", ExecutionStatus.INTERNAL_ERROR),
        ],
    )
    def test_failure_statuses(self, status_id, stderr, expected):
        executor, _ = judge0(
            [response({"token": "t"}), response({"status": {"id": status_id}, "stderr": stderr})]
        )

        assert executor.execute("x", Language.C, "", 2.0).status == expected

    def test_compile_output_used_as_stderr(self):
        executor, _ = judge0(
            [
                response({"token": "t"}),
                response({"status": {"id": 6}, "compile_output": "error: expected ';'"}),
            ]
        )

        result = executor.execute("int main(", Language.CPP, "", 2.0)

        assert result.stderr == "error: expected ';'"
        assert result.description == "Compilation Error"

    def test_never_finishes(self):
        executor, _ = judge0(
            [response({"token": "t"})] + [response({"status": {"id": 1}})] * 3,
            max_poll_attempts=3,
        )

        with pytest.raises(ExecutionTimeout):
            executor.execute("x", Language.PYTHON, "", 2.0)

    def test_connection_error_is_unavailable(self):
        executor, _ = judge0([requests.ConnectionError("refused")])

        with pytest.raises(ExecutorUnavailable):
            executor.execute("x", Language.PYTHON, "", 2.0)

    def test_http_error_is_unavailable(self):
        bad = MagicMock()
        bad.raise_for_status.side_effect = requests.HTTPError("503 Service Unavailable")
        executor, _ = judge0([bad])

        with pytest.raises(ExecutorUnavailable) as exc:
            executor.execute("x", Language.PYTHON, "", 2.0)
        assert exc.value.retryable is True

    def test_missing_token(self):
        executor, _ = judge0([response({"error": "queue full"})])

        with pytest.raises(ExecutorUnavailable):
            executor.execute("x", Language.PYTHON, "", 2.0)
