# planner.py
# Goal decomposition: goal + memory context -> ordered Plan.
#
# The planner owns request construction, rule application, the completion
# call and reply parsing. It never reorders or deduplicates what the model
# returns; step ids are positions in the reply, starting at 0.

import json
import logging
import re
import threading
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from agent_orchestrator.cancellation import run_cancellable
from agent_orchestrator.errors import PlanningError, PlanningErrorKind, ProviderError, ProviderErrorKind
from agent_orchestrator.llm import CompletionProvider
from agent_orchestrator.models import CompletionOptions, Message, Plan, Step
from agent_orchestrator.rules import RuleEngine
from agent_orchestrator.tools import ToolRegistry

logger = logging.getLogger(__name__)


PLANNER_SYSTEM_PROMPT = """\
You are a planning agent. Break the user's goal into an ordered list of
concrete steps that an executor will carry out one at a time.

Respond with the plan inside <plan> tags containing valid JSON matching this
exact schema:

<plan>
{
  "steps": [
    {
      "description": "what this step does and why",
      "tool": "tool_name or null for a reasoning-only step",
      "parameters": {"param_name": "value"}
    }
  ]
}
</plan>

Only use tools from the list you are given, with concrete parameter values.
Steps without a tool are reasoning-only: their description is their result.\
"""


# ---------------------------------------------------------------------------
# Reply schema
# ---------------------------------------------------------------------------


class PlannedStep(BaseModel):
    description: str = Field(..., min_length=1)
    tool: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class PlanReply(BaseModel):
    steps: list[PlannedStep]


_TAGGED = re.compile(r"<plan>(.*?)</plan>", re.DOTALL)
_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_BARE = re.compile(r"\{.*\}", re.DOTALL)


def parse_plan_reply(reply: str) -> list[PlannedStep]:
    """
    Extract planned steps from a model reply.

    Looks for <plan> tags first, then a fenced JSON block, then the widest
    bare JSON object. Raises ValueError if none of them validates.
    """
    for pattern in (_TAGGED, _FENCED, _BARE):
        match = pattern.search(reply)
        if match:
            raw = match.group(1 if pattern.groups else 0).strip()
            break
    else:
        raise ValueError("Reply contains no plan JSON.")

    # Strip markdown code fences nested inside the tags.
    if raw.startswith("```"):
        raw = re.sub(r"^```(?:json)?\s*", "", raw)
        raw = re.sub(r"\s*```$", "", raw)

    try:
        data = json.loads(raw, strict=False)
        return PlanReply.model_validate(data).steps
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Plan content is invalid: {exc}") from exc


def render_context(context: Sequence[Message]) -> str:
    if not context:
        return "(no prior conversation)"
    return "\n".join(f"[{message.role.value}] {message.content}" for message in context)


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class Planner:
    """
    Turns a goal into a Plan using a completion provider.

    Malformed replies are retried up to `max_retries` extra attempts. Unknown
    tools and empty plans are semantic failures and are never retried.
    Provider failures surface as PlanningError(PROVIDER_FAILURE); retrying
    them is the provider's concern.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        tools: ToolRegistry,
        rules: RuleEngine | None = None,
        options: CompletionOptions | None = None,
        max_retries: int = 2,
        timeout: float | None = None,
        cancellation_timeout: float = 0.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative.")
        self._provider = provider
        self._tools = tools
        self._rules = rules or RuleEngine()
        self._options = options
        self._max_retries = max_retries
        self._timeout = timeout
        self._cancellation_timeout = cancellation_timeout

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def build_request(self, goal: str, memory_context: Sequence[Message]) -> str:
        """Request text after every rule has been applied."""
        request = (
            f"Available tools:\n{self._tools.describe() or '(none)'}\n\n"
            f"Conversation so far:\n{render_context(memory_context)}\n\n"
            f"Goal:\n{goal.strip()}"
        )
        return self._rules.apply(request)

    def _complete(self, messages: list[Message], cancel: threading.Event | None) -> str:
        try:
            reply = run_cancellable(
                lambda: self._provider.complete(messages, self._options),
                cancel=cancel,
                timeout=self._timeout,
                grace=self._cancellation_timeout,
                name="planner-completion",
            )
        except TimeoutError as exc:
            raise ProviderError(ProviderErrorKind.TIMEOUT, str(exc)) from exc
        return reply.content

    def _to_plan(self, goal: str, planned: list[PlannedStep]) -> Plan:
        for index, step in enumerate(planned):
            if step.tool is not None and step.tool not in self._tools:
                raise PlanningError(
                    PlanningErrorKind.UNKNOWN_TOOL,
                    f"Step {index} references unknown tool '{step.tool}'. "
                    f"Available: {', '.join(self._tools.names()) or 'none'}.",
                )
        steps = [
            Step(id=index, description=step.description, tool_name=step.tool, parameters=step.parameters)
            for index, step in enumerate(planned)
        ]
        return Plan(goal=goal, steps=steps)

    def decompose(
        self,
        goal: str,
        memory_context: Sequence[Message] = (),
        cancel: threading.Event | None = None,
    ) -> Plan:
        if not goal.strip():
            logger.info("Blank goal; returning an empty plan.")
            return Plan(goal=goal)

        messages = [
            Message.system(PLANNER_SYSTEM_PROMPT),
            Message.user(self.build_request(goal, memory_context)),
        ]

        attempts = self._max_retries + 1
        last_error: ValueError | None = None
        for attempt in range(1, attempts + 1):
            logger.debug("Planning attempt %d/%d for goal %r", attempt, attempts, goal)
            try:
                reply = self._complete(messages, cancel)
            except ProviderError as exc:
                raise PlanningError(
                    PlanningErrorKind.PROVIDER_FAILURE,
                    f"Completion provider failed ({exc.kind.value}): {exc}",
                    attempts=attempt,
                ) from exc

            try:
                planned = parse_plan_reply(reply)
            except ValueError as exc:
                last_error = exc
                logger.warning("Malformed plan reply on attempt %d/%d: %s", attempt, attempts, exc)
                continue

            if not planned:
                raise PlanningError(
                    PlanningErrorKind.EMPTY_PLAN, f"Model returned no steps for goal {goal!r}.", attempts=attempt
                )
            plan = self._to_plan(goal, planned)
            logger.info("Planned %d step(s) for goal %r in %d attempt(s).", len(plan), goal, attempt)
            return plan

        raise PlanningError(
            PlanningErrorKind.MALFORMED_RESPONSE,
            f"Could not parse a plan after {attempts} attempt(s): {last_error}",
            attempts=attempts,
        ) from last_error
