"""
Sandbox module for running learner code in isolated, per-session Docker containers.

Components:
- sanitizer: Comment out known-dangerous constructs before execution
- runtime: Create, exec into and destroy session containers
- pipeline: Sanitize + execute + time, failures returned as data
- registry: Own session state, history and container bindings
- scheduler: Periodically evict idle sessions and sweep orphaned containers
"""

from tutor_repl.sandbox.sanitizer import Sanitizer, DEFAULT_RULES
from tutor_repl.sandbox.runtime import DockerRuntimeClient, ExecOutput, ResourceLimits
from tutor_repl.sandbox.pipeline import Completed, ExecutionOutcome, ExecutionPipeline, Failed
from tutor_repl.sandbox.registry import Session, SessionRegistry, SessionStatus, get_registry
from tutor_repl.sandbox.scheduler import CleanupScheduler

__all__ = [
    # Sanitizer
    "Sanitizer",
    "DEFAULT_RULES",
    # Runtime
    "DockerRuntimeClient",
    "ExecOutput",
    "ResourceLimits",
    # Pipeline
    "Completed",
    "ExecutionOutcome",
    "ExecutionPipeline",
    "Failed",
    # Registry
    "Session",
    "SessionRegistry",
    "SessionStatus",
    "get_registry",
    # Scheduler
    "CleanupScheduler",
]
