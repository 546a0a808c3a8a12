# executor.py
# Drives a Plan step by step.
#
# Per step: Pending → Validating → (Approved → Executing → Completed|Failed)
# or Denied. Steps run strictly in plan order, one at a time. Every attempted
# step leaves one ExecutionResult and one Assistant message in Memory.
# Denials and tool failures are encoded in the PlanResult, never raised.

import logging
import threading
import time
from collections.abc import Callable

from agent_orchestrator.cancellation import run_cancellable
from agent_orchestrator.errors import CancelledError, GuardrailDenied, ToolError, ToolErrorKind
from agent_orchestrator.guardrails import GuardrailChain
from agent_orchestrator.memory import Memory
from agent_orchestrator.models import (
    ExecutionResult,
    FailurePolicy,
    Message,
    Plan,
    PlanResult,
    PlanStatus,
    Step,
    StepStatus,
)
from agent_orchestrator.tools import ToolRegistry

logger = logging.getLogger(__name__)

StatusListener = Callable[[Step], None]


def _summarise_output(output) -> str:
    text = output if isinstance(output, str) else repr(output)
    return text if len(text) <= 2000 else text[:2000] + "…"


class Executor:
    """
    Sequential plan runner.

    `policy` decides what a denied or failed step does to the rest of the
    plan: ABORT stops, CONTINUE moves on. `on_status` receives every step
    after each status transition.
    """

    def __init__(
        self,
        tools: ToolRegistry,
        guardrails: GuardrailChain,
        memory: Memory,
        policy: FailurePolicy = FailurePolicy.ABORT,
        tool_timeout: float | None = None,
        cancellation_timeout: float = 5.0,
        context_tokens: int | None = None,
        on_status: StatusListener | None = None,
    ) -> None:
        self._tools = tools
        self._guardrails = guardrails
        self._memory = memory
        self._policy = FailurePolicy(policy)
        self._tool_timeout = tool_timeout
        self._cancellation_timeout = cancellation_timeout
        self._context_tokens = context_tokens
        self._listeners: list[StatusListener] = [on_status] if on_status else []

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Status stream
    # ------------------------------------------------------------------

    def _advance(self, step: Step, status: StepStatus) -> None:
        step.advance(status)
        logger.debug("Step %d → %s", step.id, status.value)
        for listener in self._listeners:
            try:
                listener(step)
            except Exception:
                logger.exception("Status listener failed on step %d (%s).", step.id, status.value)

    # ------------------------------------------------------------------
    # Single step
    # ------------------------------------------------------------------

    def _invoke(self, step: Step, cancel: threading.Event | None):
        if step.tool_name is None:
            return step.description
        result = run_cancellable(
            lambda: self._tools.invoke(step.tool_name, step.parameters),
            cancel=cancel,
            timeout=self._tool_timeout,
            grace=self._cancellation_timeout,
            name=f"tool:{step.tool_name}",
        )
        return result.output

    def _execute_step(self, step: Step, cancel: threading.Event | None) -> tuple[ExecutionResult, bool]:
        """Run one step to a terminal status. Returns (result, cancelled)."""
        started = time.monotonic()

        self._advance(step, StepStatus.VALIDATING)
        verdict = self._guardrails.evaluate(step, self._memory.context(self._context_tokens))
        if verdict.allow:
            # Counted once, immediately before the real invocation.
            verdict = self._guardrails.admit(step)

        if not verdict.allow:
            denial = GuardrailDenied(verdict.reason)
            step.result = verdict.reason
            self._advance(step, StepStatus.DENIED)
            self._memory.record(Message.assistant(f"Step {step.id} denied: {verdict.reason}"))
            return (
                ExecutionResult(
                    step_id=step.id,
                    status=StepStatus.DENIED,
                    error=str(denial),
                    error_type=type(denial).__name__,
                    duration=time.monotonic() - started,
                ),
                False,
            )

        self._advance(step, StepStatus.APPROVED)
        self._advance(step, StepStatus.EXECUTING)

        cancelled = False
        try:
            output = self._invoke(step, cancel)
        except CancelledError as exc:
            cancelled = True
            error: Exception = exc
        except TimeoutError as exc:
            error = ToolError(ToolErrorKind.EXECUTION_FAILED, str(exc), step.tool_name or "")
        except ToolError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error while executing step %d.", step.id)
            error = ToolError(ToolErrorKind.EXECUTION_FAILED, str(exc), step.tool_name or "")
        else:
            step.result = output
            self._advance(step, StepStatus.COMPLETED)
            self._memory.record(Message.assistant(f"Step {step.id} completed: {_summarise_output(output)}"))
            return (
                ExecutionResult(
                    step_id=step.id,
                    status=StepStatus.COMPLETED,
                    output=output,
                    duration=time.monotonic() - started,
                ),
                False,
            )

        logger.warning("Step %d failed: %s: %s", step.id, type(error).__name__, error)
        step.result = str(error)
        self._advance(step, StepStatus.FAILED)
        self._memory.record(Message.assistant(f"Step {step.id} failed: {type(error).__name__}: {error}"))
        return (
            ExecutionResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=str(error),
                error_type=type(error).__name__,
                duration=time.monotonic() - started,
            ),
            cancelled,
        )

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def run(self, plan: Plan, cancel: threading.Event | None = None) -> PlanResult:
        results: list[ExecutionResult] = []
        stopped_early = False

        for step in plan.steps:
            if cancel is not None and cancel.is_set():
                logger.info("Cancellation requested; stopping before step %d.", step.id)
                stopped_early = True
                break

            result, cancelled = self._execute_step(step, cancel)
            results.append(result)

            if cancelled:
                stopped_early = True
                break
            if not result.ok and self._policy is FailurePolicy.ABORT:
                logger.info("Step %d ended %s; aborting remaining steps.", step.id, result.status.value)
                stopped_early = True
                break

        if stopped_early:
            status = PlanStatus.ABORTED
        elif all(result.ok for result in results):
            status = PlanStatus.SUCCESS
        else:
            status = PlanStatus.PARTIAL_FAILURE

        logger.info("Plan %r finished: %s (%d/%d step(s) attempted).", plan.goal, status.value, len(results), len(plan))
        return PlanResult(
            goal=plan.goal,
            status=status,
            results=results,
            steps=[step.model_copy() for step in plan.steps],
        )
