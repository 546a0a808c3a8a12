# models.py
# Data contracts for the orchestration core.
# No orchestration logic lives here: schema, validation and the step
# state machine only.

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agent_orchestrator.errors import InvalidTransition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single conversation turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)


# ---------------------------------------------------------------------------
# Plans and steps
# ---------------------------------------------------------------------------


class StepStatus(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    APPROVED = "approved"
    DENIED = "denied"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.DENIED})

_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.VALIDATING}),
    StepStatus.VALIDATING: frozenset({StepStatus.APPROVED, StepStatus.DENIED}),
    StepStatus.APPROVED: frozenset({StepStatus.EXECUTING}),
    StepStatus.EXECUTING: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.DENIED: frozenset(),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.FAILED: frozenset(),
}


class Step(BaseModel):
    """One unit of work in a Plan, optionally bound to a tool invocation."""

    id: int = Field(..., ge=0, frozen=True, description="0-based position in the plan.")
    description: str = Field(..., frozen=True, description="Human-readable intent of this step.")
    tool_name: str | None = Field(default=None, frozen=True, description="Registry name, or None for reasoning-only steps.")
    parameters: dict[str, Any] = Field(default_factory=dict, frozen=True)
    status: StepStatus = StepStatus.PENDING
    result: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, new_status: StepStatus) -> None:
        """Move forward through the state machine. Raises InvalidTransition otherwise."""
        if new_status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Step {self.id}: cannot move from {self.status.value} to {new_status.value}."
            )
        self.status = new_status


class Plan(BaseModel):
    """An ordered decomposition of a goal. Only per-step status/result may change."""

    goal: str = Field(..., frozen=True)
    steps: tuple[Step, ...] = Field(default=(), frozen=True)

    def __len__(self) -> int:
        return len(self.steps)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ExecutionResult(BaseModel):
    """Outcome of one attempted step."""

    step_id: int
    status: StepStatus
    output: Any = None
    error: str | None = None
    error_type: str | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.COMPLETED


class PlanStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"


class PlanResult(BaseModel):
    """Aggregated outcome of running a Plan."""

    goal: str
    status: PlanStatus
    results: list[ExecutionResult] = Field(default_factory=list)
    steps: list[Step] = Field(default_factory=list)

    def result_for(self, step_id: int) -> ExecutionResult | None:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    @property
    def pending_steps(self) -> list[Step]:
        return [step for step in self.steps if step.status is StepStatus.PENDING]


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


# ---------------------------------------------------------------------------
# Guardrails and tools
# ---------------------------------------------------------------------------


class GuardrailVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    allow: bool
    reason: str = ""

    @classmethod
    def approve(cls) -> "GuardrailVerdict":
        return cls(allow=True)

    @classmethod
    def deny(cls, reason: str) -> "GuardrailVerdict":
        return cls(allow=False, reason=reason)


class ToolResult(BaseModel):
    output: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CompletionOptions(BaseModel):
    """Per-call options forwarded to a completion provider."""

    model: str = ""
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)
