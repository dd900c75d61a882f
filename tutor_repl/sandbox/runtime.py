"""
Container Runtime Client - the only component that talks to Docker.

Security Requirements:
- One long-lived container per session, kept alive with ``tail -f /dev/null``
- Network disabled
- Read-only root filesystem, size-capped tmpfs at /tmp
- Memory ceiling and CPU quota (128MB, 0.5 CPU by default)
- Labeled with the owning session and language so containers can be found
  again without the in-process registry
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from tutor_repl.config import Config
from tutor_repl.errors import ContainerCreationError, ExecutionError, ExecutionTimeoutError, UnsupportedLanguageError
from tutor_repl.languages import Language, get_language
from tutor_repl.utils import truncate_output

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SESSION_LABEL = "tutorial-session"
LANGUAGE_LABEL = "tutorial-language"

CPU_PERIOD = 100000
KEEPALIVE_COMMAND = ["tail", "-f", "/dev/null"]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ResourceLimits:
    """Limits applied to every session container."""
    memory: str = "128m"
    cpus: float = 0.5
    tmpfs_size: str = "100m"
    working_dir: str = "/tmp"

    @property
    def cpu_quota(self) -> int:
        return int(CPU_PERIOD * self.cpus)

    @classmethod
    def from_config(cls, config: Config) -> "ResourceLimits":
        return cls(
            memory=config.max_memory,
            cpus=config.max_cpu,
            tmpfs_size=config.tmpfs_size,
            working_dir=config.working_dir,
        )


@dataclass(frozen=True)
class ExecOutput:
    """Demultiplexed output of one exec inside a container."""
    output: str
    error: Optional[str]
    exit_code: Optional[int]


# =============================================================================
# RUNTIME CLIENT
# =============================================================================

class DockerRuntimeClient:
    """Creates, execs into and destroys session containers."""

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        limits: Optional[ResourceLimits] = None,
        session_timeout: float = 3600.0,
        max_output_size: int = 10000,
        image_overrides: Optional[Dict[str, str]] = None,
        docker_host: Optional[str] = None,
    ):
        self._client = client
        self._client_lock = threading.Lock()
        self.limits = limits or ResourceLimits()
        self.session_timeout = session_timeout
        self.max_output_size = max_output_size
        self.image_overrides = dict(image_overrides or {})
        self.docker_host = docker_host

    @classmethod
    def from_config(cls, config: Config) -> "DockerRuntimeClient":
        return cls(
            limits=ResourceLimits.from_config(config),
            session_timeout=config.session_timeout,
            max_output_size=config.max_output_size,
            image_overrides=config.image_overrides(),
            docker_host=config.docker_host,
        )

    @property
    def client(self) -> docker.DockerClient:
        """Docker client, connected on first use."""
        with self._client_lock:
            if self._client is None:
                if self.docker_host:
                    self._client = docker.DockerClient(base_url=self.docker_host)
                else:
                    self._client = docker.from_env()
            return self._client

    def ping(self) -> bool:
        """Check whether the Docker daemon is reachable."""
        try:
            return bool(self.client.ping())
        except DockerException as e:
            logger.warning("Docker daemon is not reachable: %s", e)
            return False

    def image_for(self, language: str) -> str:
        return self.image_overrides.get(language) or self._language(language).image

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_container(self, language: str, session_id: str) -> str:
        """
        Create and start the container bound to a session.

        Args:
            language: Language id, selects the image
            session_id: Owning session, stored as a label

        Returns:
            The container id assigned by Docker

        Raises:
            UnsupportedLanguageError: language has no image configured
            ContainerCreationError: Docker rejected the container options or the image is unavailable
        """
        image = self.image_for(language)

        try:
            self._ensure_image(image)
            container = self.client.containers.run(
                image=image,
                command=KEEPALIVE_COMMAND,
                labels={SESSION_LABEL: session_id, LANGUAGE_LABEL: language},
                working_dir=self.limits.working_dir,
                mem_limit=self.limits.memory,
                cpu_period=CPU_PERIOD,
                cpu_quota=self.limits.cpu_quota,
                network_mode="none",
                read_only=True,
                tmpfs={"/tmp": f"rw,noexec,nosuid,size={self.limits.tmpfs_size}"},
                security_opt=["no-new-privileges:true"],
                detach=True,
                tty=False,
                stdin_open=False,
            )
        except DockerException as e:
            logger.error("Failed to create %s container for session %s: %s", language, session_id, e)
            raise ContainerCreationError(
                f"Failed to create container for {language}: {e}", session_id
            ) from e

        logger.info("Started container %s (%s) for session %s", container.id[:12], image, session_id)
        return container.id

    def destroy_container(self, container_id: str) -> bool:
        """
        Kill and remove a container. Never raises.

        Returns:
            True if the container was removed, False otherwise
        """
        try:
            container = self.client.containers.get(container_id)
        except NotFound:
            logger.debug("Container %s already gone", container_id[:12])
            return False
        except Exception as e:
            logger.warning("Failed to look up container %s: %s", container_id[:12], e)
            return False

        try:
            container.kill()
        except APIError as e:
            # 409 when the container is not running, remove still applies
            logger.debug("Kill of container %s failed: %s", container_id[:12], e)
        except Exception as e:
            logger.warning("Failed to kill container %s: %s", container_id[:12], e)

        try:
            container.remove(force=True)
        except NotFound:
            return False
        except Exception as e:
            logger.warning("Failed to remove container %s: %s", container_id[:12], e)
            return False

        logger.info("Destroyed container %s", container_id[:12])
        return True

    def list_containers(self) -> List[str]:
        """Ids of every container carrying the session label."""
        return [info["Id"] for info in self._labeled_containers()]

    def cleanup_containers(self, max_age: Optional[float] = None, exclude: Iterable[str] = ()) -> int:
        """
        Destroy labeled containers older than ``max_age`` seconds.

        Args:
            max_age: Age ceiling in seconds, defaults to the session timeout
            exclude: Container ids to keep regardless of age

        Returns:
            Number of containers destroyed
        """
        max_age = self.session_timeout if max_age is None else max_age
        keep = set(exclude)
        now = time.time()
        destroyed = 0

        for info in self._labeled_containers():
            container_id = info["Id"]
            if container_id in keep:
                continue
            age = now - float(info.get("Created", now))
            if age > max_age:
                session_id = (info.get("Labels") or {}).get(SESSION_LABEL)
                logger.info(
                    "Sweeping container %s (session %s, age %.0fs)", container_id[:12], session_id, age
                )
                if self.destroy_container(container_id):
                    destroyed += 1

        return destroyed

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_in_container(
        self,
        language: str,
        code: str,
        session_id: str,
        timeout: float,
        container_id: Optional[str] = None,
    ) -> ExecOutput:
        """
        Run code inside the session's running container.

        Waiting is bounded by ``timeout``; a process still running afterwards
        is left alone until its container is destroyed.

        Raises:
            UnsupportedLanguageError: no invocation command for language
            ExecutionError: container missing or the exec call failed
            ExecutionTimeoutError: no result within ``timeout`` seconds
        """
        command = self._language(language).build_command(code)
        container_id = container_id or self._find_session_container(session_id)

        try:
            container = self.client.containers.get(container_id)
        except NotFound as e:
            raise ExecutionError(f"Container for session {session_id} no longer exists", session_id) from e
        except DockerException as e:
            raise ExecutionError(f"Execution failed: {e}", session_id) from e

        exit_code, (stdout, stderr) = self._exec_with_timeout(container, command, session_id, timeout)

        error = truncate_output(stderr, self.max_output_size).strip()
        if not error and exit_code:
            error = f"Process exited with code {exit_code}"

        return ExecOutput(
            output=truncate_output(stdout, self.max_output_size).strip(),
            error=error or None,
            exit_code=exit_code,
        )

    def _exec_with_timeout(
        self, container, command: List[str], session_id: str, timeout: float
    ) -> Tuple[Optional[int], Tuple[Optional[bytes], Optional[bytes]]]:
        """Race ``exec_run`` in a worker thread against the timeout."""
        outcome: Dict[str, object] = {}

        def execute():
            try:
                outcome["result"] = container.exec_run(
                    command,
                    stdout=True,
                    stderr=True,
                    stdin=False,
                    tty=False,
                    demux=True,
                    workdir=self.limits.working_dir,
                )
            except Exception as e:
                outcome["error"] = e

        thread = threading.Thread(target=execute, name=f"exec-{session_id}", daemon=True)
        thread.start()
        thread.join(timeout)

        if thread.is_alive():
            logger.warning("Execution in session %s timed out after %ss", session_id, timeout)
            raise ExecutionTimeoutError(timeout, session_id)

        if "error" in outcome:
            error = outcome["error"]
            raise ExecutionError(f"Execution failed: {error}", session_id) from error

        result = outcome["result"]
        streams = result.output or (None, None)
        return result.exit_code, streams

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _language(self, language: str) -> Language:
        lang = get_language(language)
        if lang is None:
            raise UnsupportedLanguageError(language)
        return lang

    def _ensure_image(self, image: str) -> None:
        """Pull the image if it is not present locally."""
        try:
            self.client.images.get(image)
        except ImageNotFound:
            logger.info("Pulling image %s", image)
            self.client.images.pull(image)

    def _labeled_containers(self) -> List[dict]:
        try:
            return self.client.api.containers(all=True, filters={"label": SESSION_LABEL})
        except Exception as e:
            logger.error("Failed to list containers: %s", e)
            return []

    def _find_session_container(self, session_id: str) -> str:
        try:
            found = self.client.api.containers(filters={"label": f"{SESSION_LABEL}={session_id}"})
        except DockerException as e:
            raise ExecutionError(f"Execution failed: {e}", session_id) from e
        if not found:
            raise ExecutionError(f"No running container for session {session_id}", session_id)
        return found[0]["Id"]
