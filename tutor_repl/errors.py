"""
Error types raised by the REPL session engine.

Caller errors (bad language, bad or stale session id) map to 4xx responses,
environment errors (Docker unreachable, image missing) map to 5xx.
"""

from typing import Optional


class ReplError(Exception):
    """Base class for every engine error. Carries the session id for correlation."""

    status_code = 500

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id


class UnsupportedLanguageError(ReplError):
    """The requested language id is not in the language registry."""

    status_code = 400

    def __init__(self, language: str, session_id: Optional[str] = None):
        super().__init__(f"Language {language!r} is not supported", session_id)
        self.language = language


class SessionError(ReplError):
    """The session id is malformed, unknown or stale."""

    status_code = 404


class InvalidSessionIdError(SessionError):
    pass


class SessionNotFoundError(SessionError):
    pass


class SessionExpiredError(SessionError):
    pass


class SessionCreationError(ReplError):
    """A session could not be given a running container."""
    pass


class ContainerCreationError(ReplError):
    """Docker rejected the container options or the image is unavailable."""
    pass


class ExecutionError(ReplError):
    """Submitted code could not be run in the session's sandbox."""

    status_code = 400


class ExecutionTimeoutError(ExecutionError):
    """Waiting for output exceeded the timeout. The process may still be running."""

    def __init__(self, timeout: float, session_id: Optional[str] = None):
        super().__init__(f"Execution timed out after {timeout:g}s", session_id)
        self.timeout = timeout


def http_status_for(error: Exception) -> int:
    """HTTP status a route layer should answer with for ``error``."""
    if isinstance(error, ReplError):
        return error.status_code
    return 500
