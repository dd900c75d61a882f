"""
Pydantic schemas for execution results and session snapshots.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ExecutionRecord(BaseModel):
    """One completed code submission. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Execution identifier")
    timestamp: datetime = Field(..., description="When the submission finished")
    input: str = Field(..., description="Source code as submitted")
    output: str = Field(default="", description="Captured stdout, possibly truncated")
    error: Optional[str] = Field(None, description="Captured stderr or failure message")
    execution_time_ms: float = Field(..., description="Wall-clock duration in milliseconds")


class ExecutionResult(BaseModel):
    """Result of running code in a session's sandbox."""
    output: str = Field(default="", description="Captured stdout")
    error: Optional[str] = Field(None, description="Captured stderr or failure message")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Advisory variable snapshot")
    execution_time_ms: float = Field(..., description="Wall-clock duration in milliseconds")
    timestamp: datetime = Field(..., description="When the execution finished")
    exit_code: Optional[int] = Field(None, description="Process exit code, if it finished")
    timed_out: bool = Field(False, description="Whether waiting for output timed out")


class ContainerBinding(BaseModel):
    """The live container a session runs its code in."""
    model_config = ConfigDict(frozen=True)

    container_id: str = Field(..., description="Id assigned by the container engine")
    language: str = Field(..., description="Language the container runs")
    image: str = Field(..., description="Runtime image")
    created_at: datetime = Field(..., description="When the container was created")
    memory_limit: str = Field(..., description="Memory ceiling, e.g. 128m")
    cpu_quota: float = Field(..., description="CPU quota in cores")
    network_mode: str = Field("none", description="Network policy")
    read_only_root: bool = Field(True, description="Whether the root filesystem is read-only")
    tmpfs_size: str = Field(..., description="Size cap of the writable scratch area")


class SessionSnapshot(BaseModel):
    """A copy of one session's state, safe to hand to callers."""
    session_id: str
    language: str
    status: str
    created_at: datetime
    last_activity: datetime
    container_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    execution_history: List[ExecutionRecord] = Field(default_factory=list)


class SessionStats(BaseModel):
    """Aggregate view over the live session registry."""
    total_sessions: int = 0
    active_sessions: int = 0
    language_breakdown: Dict[str, int] = Field(default_factory=dict)
    average_age_ms: float = 0.0
    total_executions: int = 0
