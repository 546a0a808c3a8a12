# errors.py
# Exception taxonomy for the orchestration core.
#
# Partial failures (denied or failed steps) are encoded in PlanResult and
# never raised past the Executor. Only ConfigurationError and PlanningError
# reach the caller of Agent.run.

from enum import Enum


class AgentError(Exception):
    """Base class for every error raised by agent_orchestrator."""


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class PlanningErrorKind(str, Enum):
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN_TOOL = "unknown_tool"
    EMPTY_PLAN = "empty_plan"
    PROVIDER_FAILURE = "provider_failure"


class PlanningError(AgentError):
    """Raised when a goal cannot be turned into a valid Plan."""

    def __init__(self, kind: PlanningErrorKind, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind is PlanningErrorKind.MALFORMED_RESPONSE


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class GuardrailDenied(AgentError):
    """A guardrail refused a step. Never retried."""

    def __init__(self, reason: str, guardrail: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.guardrail = guardrail


class ToolErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_PARAMS = "invalid_params"
    EXECUTION_FAILED = "execution_failed"


class ToolError(AgentError):
    """Raised by the tool registry or by a tool implementation."""

    def __init__(self, kind: ToolErrorKind, message: str, tool_name: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.tool_name = tool_name


class CancelledError(AgentError):
    """The caller's cancellation signal fired before a response arrived."""


class InvalidTransition(AgentError, ValueError):
    """A step was asked to move backwards or sideways in its state machine."""


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class ProviderErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    UNAVAILABLE = "unavailable"


class ProviderError(AgentError):
    """Transport or vendor failure from a completion provider."""

    def __init__(self, kind: ProviderErrorKind, message: str, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        if retryable is None:
            retryable = kind is not ProviderErrorKind.INVALID_REQUEST
        self.retryable = retryable


class ConfigurationError(AgentError):
    """Missing credentials or invalid thresholds. Always fatal."""
