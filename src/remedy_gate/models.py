# models.py
# Data contracts for the remediation gatekeeper.
# Pure schema and validation, no business logic.

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class ModeFlags(BaseModel):
    """Operator-supplied switches gating otherwise-denied command categories."""

    model_config = ConfigDict(frozen=True)

    allow_maintenance: bool = False
    allow_kill: bool = False
    allow_dangerous: bool = False


class PolicyDecision(BaseModel):
    """Result of classifying one raw command line."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    rule: str = Field(..., description="Name of the precedence tier that decided.")
    pattern: str | None = Field(default=None, description="Regex that matched, if any.")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseModel):
    """Immutable public description of a registered capability."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    requires_elevated_privilege: bool = False
    mutates_host: bool = False
    reversible: bool = True
    raw_command: bool = False
    argument_schema: dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A single proposed action emitted by the planner. Never trusted."""

    tool_name: str = Field(..., description="Capability name, matched case-insensitively.")
    arguments: Any = Field(default_factory=dict, description="Unvalidated arguments.")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class Outcome(str, Enum):
    OK = "ok"
    POLICY_REJECTED = "policy_rejected"
    VALIDATION_FAILED = "validation_failed"
    TIMEOUT = "timeout"
    FAILED = "failed"


class ProcessResult(BaseModel):
    """What happened to one bounded external process."""

    pid: int | None = None
    exit_code: int | None = None
    output: str = ""
    timed_out: bool = False
    truncated: bool = False
    duration_ms: int = 0
    error: str | None = Field(default=None, description="Spawn failure, if the process never ran.")

    @property
    def completed(self) -> bool:
        return self.error is None and not self.timed_out


class ExecutionResult(BaseModel):
    """Produced once per attempted action."""

    success: bool
    outcome: Outcome = Outcome.OK
    error: str | None = None
    data: Any = None
    output: str | None = Field(default=None, description="Captured process output, capped.")
    forward_script: str | None = None
    undo_script: str | None = None


class JournalEntry(BaseModel):
    """One line of the audit journal. Written once, never rewritten."""

    session_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    tool_name: str
    arguments: Any = None
    result: ExecutionResult
    undo_script: str | None = None
    phase: Literal["forward", "undo"] = "forward"
    undo_of: str | None = Field(default=None, description="Session reverted by this entry.")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class StepReport(BaseModel):
    """Per-step summary handed back to the caller of a plan execution."""

    index: int
    tool_name: str
    result: ExecutionResult


class UndoReport(BaseModel):
    """Outcome of replaying one recorded undo script."""

    tool_name: str
    original_timestamp: datetime
    success: bool
    process: ProcessResult
