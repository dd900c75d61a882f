"""
Execution Pipeline - sanitize, run in the session's container, time it.

Failures of the sandbox become data here: ``run`` returns ``Failed`` instead
of raising, so the registry only ever records outcomes.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Union

from tutor_repl.errors import ExecutionTimeoutError, ReplError
from tutor_repl.sandbox.runtime import DockerRuntimeClient
from tutor_repl.sandbox.sanitizer import Sanitizer
from tutor_repl.schemas import ExecutionResult
from tutor_repl.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completed:
    """The process ran to completion; it may still have failed on its own terms."""
    output: str
    error: Optional[str]
    exit_code: Optional[int]
    execution_time_ms: float
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return not self.exit_code and self.error is None

    def to_result(self, variables: Optional[Dict[str, str]] = None) -> ExecutionResult:
        return ExecutionResult(
            output=self.output,
            error=self.error,
            variables=dict(variables or {}),
            execution_time_ms=self.execution_time_ms,
            timestamp=self.timestamp,
            exit_code=self.exit_code,
        )


@dataclass(frozen=True)
class Failed:
    """The sandbox could not produce a result (timeout, missing container, engine error)."""
    error: str
    execution_time_ms: float
    timed_out: bool = False
    timestamp: datetime = field(default_factory=utcnow)
    output: str = ""

    succeeded = False

    def to_result(self, variables: Optional[Dict[str, str]] = None) -> ExecutionResult:
        return ExecutionResult(
            output=self.output,
            error=self.error,
            variables=dict(variables or {}),
            execution_time_ms=self.execution_time_ms,
            timestamp=self.timestamp,
            timed_out=self.timed_out,
        )


ExecutionOutcome = Union[Completed, Failed]


class ExecutionPipeline:
    """Composes the sanitizer and the runtime client with end-to-end timing."""

    def __init__(self, runtime: DockerRuntimeClient, sanitizer: Optional[Sanitizer] = None):
        self.runtime = runtime
        self.sanitizer = sanitizer or Sanitizer()

    def run(
        self,
        session_id: str,
        code: str,
        language: str,
        timeout: float,
        container_id: Optional[str] = None,
    ) -> ExecutionOutcome:
        start = time.perf_counter()
        try:
            sanitized = self.sanitizer.sanitize(code, language)
            exec_output = self.runtime.execute_in_container(
                language, sanitized, session_id, timeout, container_id=container_id
            )
        except ExecutionTimeoutError as e:
            return Failed(error=e.message, execution_time_ms=_elapsed_ms(start), timed_out=True)
        except ReplError as e:
            logger.warning("Execution in session %s failed: %s", session_id, e)
            return Failed(error=e.message, execution_time_ms=_elapsed_ms(start))
        except Exception as e:
            logger.exception("Unexpected error executing code in session %s", session_id)
            return Failed(error=str(e) or type(e).__name__, execution_time_ms=_elapsed_ms(start))

        return Completed(
            output=exec_output.output,
            error=exec_output.error,
            exit_code=exec_output.exit_code,
            execution_time_ms=_elapsed_ms(start),
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
