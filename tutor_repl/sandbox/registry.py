"""
Session Registry - sole owner of REPL session state.

Responsibilities:
- Create sessions and bind each one to exactly one container
- Validate, look up and expire sessions
- Run code through the execution pipeline and keep bounded history
- Reset and delete sessions, destroying only their own container
- Sweep idle sessions and orphaned containers

The session map is guarded by one lock that is never held across container
I/O. Each session also has its own lock so that execute and reset calls on the
same session run one at a time while other sessions proceed independently.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from tutor_repl.config import Config, get_config
from tutor_repl.errors import (
    ExecutionError,
    InvalidSessionIdError,
    SessionCreationError,
    SessionExpiredError,
    SessionNotFoundError,
    UnsupportedLanguageError,
)
from tutor_repl.languages import is_language_supported
from tutor_repl.sandbox.pipeline import ExecutionPipeline
from tutor_repl.sandbox.runtime import DockerRuntimeClient
from tutor_repl.sandbox.variables import extract_variables
from tutor_repl.schemas import (
    ContainerBinding,
    ExecutionRecord,
    ExecutionResult,
    SessionSnapshot,
    SessionStats,
)
from tutor_repl.utils import generate_execution_id, generate_session_id, is_expired, is_valid_session_id, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    DELETED = "deleted"


@dataclass
class Session:
    """Mutable state of one session. Only the registry touches it."""
    session_id: str
    language: str
    created_at: datetime
    last_activity: datetime
    execution_history: Deque[ExecutionRecord]
    user_id: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)
    binding: Optional[ContainerBinding] = None
    status: SessionStatus = SessionStatus.PENDING
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            language=self.language,
            status=self.status.value,
            created_at=self.created_at,
            last_activity=self.last_activity,
            container_id=self.binding.container_id if self.binding else None,
            variables=dict(self.variables),
            execution_history=list(self.execution_history),
        )


# =============================================================================
# REGISTRY CLASS
# =============================================================================

class SessionRegistry:
    """
    Manages REPL sessions and their containers.

    Thread-safe operations for:
    - Creating, resetting and deleting sessions
    - Executing code with per-session serialization
    - Idle expiry and container sweeps
    """

    def __init__(
        self,
        runtime: DockerRuntimeClient,
        pipeline: Optional[ExecutionPipeline] = None,
        session_timeout: float = 3600.0,
        execution_timeout: float = 30.0,
        max_history: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.runtime = runtime
        self.pipeline = pipeline or ExecutionPipeline(runtime)
        self.session_timeout = session_timeout
        self.execution_timeout = execution_timeout
        self.max_history = max_history
        self._clock = clock
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}

    @classmethod
    def from_config(cls, config: Config) -> "SessionRegistry":
        runtime = DockerRuntimeClient.from_config(config)
        return cls(
            runtime=runtime,
            session_timeout=config.session_timeout,
            execution_timeout=config.default_timeout,
            max_history=config.max_history,
        )

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def create_session(self, language: str, user_id: Optional[str] = None) -> str:
        """
        Create a session and start its container.

        Returns:
            The new session id

        Raises:
            UnsupportedLanguageError: unknown language id
            SessionCreationError: the container could not be started
        """
        if not is_language_supported(language):
            raise UnsupportedLanguageError(language)

        now = self._clock()
        session = Session(
            session_id=generate_session_id(),
            language=language,
            created_at=now,
            last_activity=now,
            execution_history=deque(maxlen=self.max_history),
            user_id=user_id,
        )
        with self._lock:
            self._sessions[session.session_id] = session

        try:
            binding = self._start_container(session)
        except Exception as e:
            with self._lock:
                self._sessions.pop(session.session_id, None)
            raise SessionCreationError(f"Failed to create session: {e}", session.session_id) from e

        if not self._attach(session, binding):
            self._destroy_quietly(binding.container_id)
            raise SessionCreationError("Session was removed while starting", session.session_id)

        logger.info("Created %s session %s", language, session.session_id)
        return session.session_id

    def execute_code(self, session_id: str, code: str, language: str) -> ExecutionResult:
        """
        Run code in the session's container and record it in history.

        Sandbox failures (timeouts, crashes) come back as results with the
        ``error`` field set.

        Raises:
            InvalidSessionIdError, SessionNotFoundError, SessionExpiredError
            UnsupportedLanguageError: unknown language id
            ExecutionError: language mismatch, no container, or pipeline failure
        """
        self._check_id(session_id)
        if not is_language_supported(language):
            raise UnsupportedLanguageError(language, session_id)

        session = self._get_live_session(session_id)
        if language != session.language:
            raise ExecutionError(
                f"Session {session_id} runs {session.language}, not {language}", session_id
            )

        with session.lock:
            self._check_registered(session)
            binding = session.binding
            if binding is None:
                self._touch(session)
                raise ExecutionError(f"Session {session_id} has no running container", session_id)

            try:
                outcome = self.pipeline.run(
                    session_id, code, language, self.execution_timeout, container_id=binding.container_id
                )
            except Exception as e:
                self._touch(session)
                raise ExecutionError(f"Code execution failed: {e}", session_id) from e

            variables = extract_variables(language, code) if outcome.succeeded else {}
            record = ExecutionRecord(
                id=generate_execution_id(),
                timestamp=outcome.timestamp,
                input=code,
                output=outcome.output,
                error=outcome.error,
                execution_time_ms=outcome.execution_time_ms,
            )
            with self._lock:
                session.execution_history.append(record)
                session.variables.update(variables)
                session.last_activity = self._clock()
                merged = dict(session.variables)

        return outcome.to_result(merged)

    def get_session_state(self, session_id: str) -> SessionSnapshot:
        """Return a copy of the session. Reading counts as activity."""
        self._check_id(session_id)
        session = self._get_live_session(session_id)
        with self._lock:
            session.last_activity = self._clock()
            return session.snapshot()

    def reset_session(self, session_id: str) -> None:
        """
        Clear history and variables and give the session a fresh container.

        Raises:
            InvalidSessionIdError, SessionNotFoundError, SessionExpiredError
            SessionCreationError: the new container could not be started
        """
        self._check_id(session_id)
        session = self._get_live_session(session_id)

        with session.lock:
            with self._lock:
                self._check_registered(session)
                old_binding = session.binding
                session.binding = None
                session.status = SessionStatus.PENDING
                session.execution_history.clear()
                session.variables.clear()
                session.last_activity = self._clock()

            if old_binding is not None:
                self._destroy_quietly(old_binding.container_id)

            try:
                binding = self._start_container(session)
            except Exception as e:
                logger.warning("Failed to recreate container for session %s: %s", session_id, e)
                raise SessionCreationError(f"Failed to reset session: {e}", session_id) from e

            if not self._attach(session, binding):
                self._destroy_quietly(binding.container_id)
                raise SessionNotFoundError(f"Session {session_id} was deleted during reset", session_id)

        logger.info("Reset session %s", session_id)

    def delete_session(self, session_id: str) -> None:
        """Remove a session and destroy its container. Never raises."""
        if not is_valid_session_id(session_id):
            return
        self._evict(session_id, SessionStatus.DELETED)

    def cleanup_expired_sessions(self) -> int:
        """
        Evict idle sessions, then sweep aged containers nobody owns.

        Returns:
            Number of sessions evicted
        """
        now = self._clock()
        with self._lock:
            candidates = [
                s.session_id for s in self._sessions.values()
                if is_expired(s.last_activity, self.session_timeout, now)
            ]

        evicted = 0
        for session_id in candidates:
            try:
                if self._evict(session_id, SessionStatus.EXPIRED, only_if_idle=True):
                    evicted += 1
            except Exception:
                logger.exception("Failed to clean up expired session %s", session_id)

        with self._lock:
            live_containers = [s.binding.container_id for s in self._sessions.values() if s.binding]
        try:
            swept = self.runtime.cleanup_containers(exclude=live_containers)
        except Exception:
            logger.exception("Failed to sweep containers")
            swept = 0

        if evicted or swept:
            logger.info("Cleaned up %d expired sessions and %d orphaned containers", evicted, swept)
        return evicted

    def get_session_stats(self) -> SessionStats:
        """Aggregate counts over the live registry, computed on demand."""
        now = self._clock()
        with self._lock:
            sessions = list(self._sessions.values())
            breakdown: Dict[str, int] = {}
            for s in sessions:
                breakdown[s.language] = breakdown.get(s.language, 0) + 1
            total_age_ms = sum((now - s.created_at).total_seconds() * 1000 for s in sessions)
            return SessionStats(
                total_sessions=len(sessions),
                active_sessions=sum(
                    1 for s in sessions if not is_expired(s.last_activity, self.session_timeout, now)
                ),
                language_breakdown=breakdown,
                average_age_ms=total_age_ms / len(sessions) if sessions else 0.0,
                total_executions=sum(len(s.execution_history) for s in sessions),
            )

    def list_sessions(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def shutdown(self) -> None:
        """Delete every session, e.g. on process exit."""
        for session_id in self.list_sessions():
            self.delete_session(session_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_id(self, session_id: str) -> None:
        if not is_valid_session_id(session_id):
            raise InvalidSessionIdError("Invalid session ID", session_id)

    def _get_live_session(self, session_id: str) -> Session:
        """Look up a session, evicting it if it has been idle too long."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError("Session not found", session_id)
            expired = is_expired(session.last_activity, self.session_timeout, self._clock())

        if expired:
            self._evict(session_id, SessionStatus.EXPIRED)
            raise SessionExpiredError("Session has expired", session_id)
        return session

    def _check_registered(self, session: Session) -> None:
        """Raise if the session was deleted or evicted while waiting for its lock."""
        with self._lock:
            if self._sessions.get(session.session_id) is not session:
                raise SessionNotFoundError("Session not found", session.session_id)

    def _touch(self, session: Session) -> None:
        with self._lock:
            session.last_activity = self._clock()

    def _start_container(self, session: Session) -> ContainerBinding:
        container_id = self.runtime.create_container(session.language, session.session_id)
        limits = self.runtime.limits
        return ContainerBinding(
            container_id=container_id,
            language=session.language,
            image=self.runtime.image_for(session.language),
            created_at=self._clock(),
            memory_limit=limits.memory,
            cpu_quota=limits.cpus,
            tmpfs_size=limits.tmpfs_size,
        )

    def _destroy_quietly(self, container_id: str) -> None:
        try:
            self.runtime.destroy_container(container_id)
        except Exception:
            logger.exception("Failed to destroy container %s", container_id)

    def _attach(self, session: Session, binding: ContainerBinding) -> bool:
        """Bind a fresh container, unless the session left the registry meanwhile."""
        with self._lock:
            if self._sessions.get(session.session_id) is not session:
                return False
            session.binding = binding
            session.status = SessionStatus.ACTIVE
            return True

    def _evict(self, session_id: str, status: SessionStatus, only_if_idle: bool = False) -> bool:
        """Remove a session and destroy its container. Returns False if nothing was removed."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if only_if_idle:
                if session.lock.locked():
                    return False
                if not is_expired(session.last_activity, self.session_timeout, self._clock()):
                    return False
            del self._sessions[session_id]
            session.status = status
            binding, session.binding = session.binding, None

        if binding is not None:
            self._destroy_quietly(binding.container_id)

        logger.info("Session %s %s", session_id, status.value)
        return True


# =============================================================================
# MODULE-LEVEL FUNCTIONS
# =============================================================================

_registry: Optional[SessionRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> SessionRegistry:
    """Get the process-wide registry, built from configuration on first use."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = SessionRegistry.from_config(get_config())
        return _registry
