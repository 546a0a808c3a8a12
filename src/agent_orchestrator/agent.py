# agent.py
# One agent session: Memory + Planner + Executor.
#
# Control flow:
#   goal → User message into Memory → Planner (memory context, rules,
#   completion provider) → Plan → Executor (guardrails → tool → Memory)
#   → PlanResult
#
# Sessions share nothing mutable unless a guardrail instance is passed to
# several of them on purpose.

import logging
import threading
from collections.abc import Callable

from agent_orchestrator import display
from agent_orchestrator.config import AgentConfig
from agent_orchestrator.errors import PlanningError
from agent_orchestrator.executor import Executor, StatusListener
from agent_orchestrator.guardrails import GuardrailChain, PathRestrictionGuardrail, RateLimitGuardrail
from agent_orchestrator.llm import AnthropicProvider, CompletionProvider, OpenAIProvider
from agent_orchestrator.memory import Memory, TokenCounter, word_count
from agent_orchestrator.models import CompletionOptions, Message, Plan, PlanResult
from agent_orchestrator.planner import Planner
from agent_orchestrator.rules import RuleEngine
from agent_orchestrator.tools import ToolRegistry, default_registry

logger = logging.getLogger(__name__)

SESSION_SYSTEM_PROMPT = "You are an autonomous assistant completing the user's goals step by step."


class Agent:
    """
    Session facade. Only this object and its Executor write to Memory.

    Example:
        agent = build_agent(AgentConfig.from_env())
        result = agent.run("Add 2 and 3, then write the answer to notes.txt.")
    """

    def __init__(
        self,
        planner: Planner,
        executor: Executor,
        memory: Memory,
        on_plan: Callable[[Plan], None] | None = None,
        context_tokens: int | None = None,
    ) -> None:
        self.planner = planner
        self.executor = executor
        self.memory = memory
        self._on_plan = on_plan
        self._context_tokens = context_tokens

    def plan(self, goal: str, cancel: threading.Event | None = None) -> Plan:
        """Record the user turn and decompose the goal without executing it."""
        self.memory.record(Message.user(goal))
        plan = self.planner.decompose(goal, self.memory.context(self._context_tokens), cancel=cancel)
        if self._on_plan is not None:
            self._on_plan(plan)
        return plan

    def run(self, goal: str, cancel: threading.Event | None = None) -> PlanResult:
        """
        Plan and execute one goal.

        Raises PlanningError when no plan can be produced. Step denials and
        failures are reported in the returned PlanResult.
        """
        plan = self.plan(goal, cancel=cancel)
        return self.executor.run(plan, cancel=cancel)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_provider(config: AgentConfig) -> CompletionProvider:
    config.require_credentials()
    if config.provider == "anthropic":
        return AnthropicProvider(
            api_key=config.api_key,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
    return OpenAIProvider(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )


def default_guardrails(config: AgentConfig) -> GuardrailChain:
    return GuardrailChain(
        [
            PathRestrictionGuardrail(config.allowed_roots),
            RateLimitGuardrail(config.rate_limit_max_calls, config.rate_limit_interval),
        ]
    )


def build_agent(
    config: AgentConfig,
    provider: CompletionProvider | None = None,
    tools: ToolRegistry | None = None,
    guardrails: GuardrailChain | None = None,
    rules: RuleEngine | None = None,
    counter: TokenCounter = word_count,
    on_status: StatusListener | None = None,
    on_plan: Callable[[Plan], None] | None = None,
    system_prompt: str | None = SESSION_SYSTEM_PROMPT,
) -> Agent:
    """
    Assemble a session from configuration.

    Raises ConfigurationError (missing credentials, invalid thresholds)
    before anything is planned. Explicit collaborators override the ones
    the config would build.
    """
    if provider is None:
        provider = build_provider(config)
    if tools is None:
        tools = default_registry(config.allowed_roots[0])
    if guardrails is None:
        guardrails = default_guardrails(config)

    memory = Memory(config.memory_token_budget, counter=counter)
    if system_prompt:
        memory.record(Message.system(system_prompt))

    planner = Planner(
        provider,
        tools,
        rules=rules,
        options=CompletionOptions(
            model=config.model, temperature=config.temperature, max_tokens=config.max_tokens
        ),
        max_retries=config.planning_retries,
        cancellation_timeout=config.cancellation_timeout,
    )
    executor = Executor(
        tools,
        guardrails,
        memory,
        policy=config.failure_policy,
        tool_timeout=config.tool_timeout,
        cancellation_timeout=config.cancellation_timeout,
        context_tokens=config.context_tokens,
        on_status=on_status,
    )
    return Agent(planner, executor, memory, on_plan=on_plan, context_tokens=config.context_tokens)


def run_with_trace(agent: Agent, goal: str, cancel: threading.Event | None = None) -> PlanResult | None:
    """Run a goal rendering the full trace. Returns None when planning fails."""
    display.goal_received(goal)
    display.planning_started()
    try:
        plan = agent.plan(goal, cancel=cancel)
    except PlanningError as exc:
        logger.error("Planning failed (%s) after %d attempt(s).", exc.kind.value, exc.attempts)
        display.planning_failed(exc)
        return None

    display.plan_parsed(plan)
    result = agent.executor.run(plan, cancel=cancel)
    display.plan_result(result)
    return result
