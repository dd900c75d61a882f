from unittest.mock import MagicMock

from tutor_repl.errors import ExecutionError, ExecutionTimeoutError
from tutor_repl.sandbox.pipeline import Completed, ExecutionPipeline, Failed
from tutor_repl.sandbox.runtime import ExecOutput


def _pipeline(runtime: MagicMock) -> ExecutionPipeline:
    return ExecutionPipeline(runtime)


def test_successful_run_returns_completed():
    runtime = MagicMock()
    runtime.execute_in_container.return_value = ExecOutput(output="43", error=None, exit_code=0)

    outcome = _pipeline(runtime).run("session_1_abc", "x + 1", "python", 5, container_id="c1")

    assert isinstance(outcome, Completed)
    assert outcome.succeeded is True
    assert outcome.output == "43"
    assert outcome.execution_time_ms >= 0
    runtime.execute_in_container.assert_called_once_with(
        "python", "x + 1", "session_1_abc", 5, container_id="c1"
    )


def test_code_is_sanitized_before_runtime_sees_it():
    runtime = MagicMock()
    runtime.execute_in_container.return_value = ExecOutput(output="", error=None, exit_code=0)

    _pipeline(runtime).run("session_1_abc", "const cp = require('child_process')\n", "javascript", 5)

    sent = runtime.execute_in_container.call_args.args[1]
    assert sent == "const cp = // require('child_process') blocked"


def test_program_error_is_completed_but_not_succeeded():
    runtime = MagicMock()
    runtime.execute_in_container.return_value = ExecOutput(output="", error="Traceback ...", exit_code=1)

    outcome = _pipeline(runtime).run("session_1_abc", "1/0", "python", 5)

    assert isinstance(outcome, Completed)
    assert outcome.succeeded is False
    result = outcome.to_result()
    assert result.error == "Traceback ..."
    assert result.exit_code == 1


def test_timeout_becomes_failed_outcome():
    runtime = MagicMock()
    runtime.execute_in_container.side_effect = ExecutionTimeoutError(30, "session_1_abc")

    outcome = _pipeline(runtime).run("session_1_abc", "while True: pass", "python", 30)

    assert isinstance(outcome, Failed)
    assert outcome.timed_out is True
    assert outcome.output == ""
    result = outcome.to_result()
    assert result.timed_out is True
    assert result.error == "Execution timed out after 30s"


def test_runtime_errors_become_failed_outcome():
    runtime = MagicMock()
    runtime.execute_in_container.side_effect = ExecutionError("container gone", "session_1_abc")

    outcome = _pipeline(runtime).run("session_1_abc", "1", "python", 5)

    assert isinstance(outcome, Failed)
    assert outcome.timed_out is False
    assert outcome.error == "container gone"


def test_unexpected_exceptions_become_failed_outcome():
    runtime = MagicMock()
    runtime.execute_in_container.side_effect = ConnectionResetError("socket closed")

    outcome = _pipeline(runtime).run("session_1_abc", "1", "python", 5)

    assert isinstance(outcome, Failed)
    assert outcome.error == "socket closed"
    assert outcome.execution_time_ms >= 0
