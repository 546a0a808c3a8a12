import pytest
from pydantic import ValidationError

from agent_orchestrator.errors import InvalidTransition, PlanningError, PlanningErrorKind, ProviderError, ProviderErrorKind
from agent_orchestrator.models import (
    CompletionOptions,
    ExecutionResult,
    GuardrailVerdict,
    Message,
    Plan,
    PlanResult,
    PlanStatus,
    Role,
    Step,
    StepStatus,
)


def test_message_constructors():
    assert Message.system("s").role is Role.SYSTEM
    assert Message.user("u").role is Role.USER
    assert Message.assistant("a").role is Role.ASSISTANT
    assert Message.user("u").timestamp.tzinfo is not None

def test_message_is_immutable():
    message = Message.user("hi")
    with pytest.raises(ValidationError):
        message.content = "changed"


# ---------------------------------------------------------------------------
# Step state machine
# ---------------------------------------------------------------------------

def test_step_lifecycle_to_completed():
    step = Step(id=0, description="add", tool_name="calculator")
    for status in (StepStatus.VALIDATING, StepStatus.APPROVED, StepStatus.EXECUTING, StepStatus.COMPLETED):
        step.advance(status)
    assert step.is_terminal

def test_denied_is_terminal():
    step = Step(id=0, description="x")
    step.advance(StepStatus.VALIDATING)
    step.advance(StepStatus.DENIED)
    assert step.is_terminal
    with pytest.raises(InvalidTransition):
        step.advance(StepStatus.APPROVED)

@pytest.mark.parametrize(
    "path",
    [
        [StepStatus.EXECUTING],
        [StepStatus.VALIDATING, StepStatus.EXECUTING],
        [StepStatus.VALIDATING, StepStatus.APPROVED, StepStatus.VALIDATING],
        [StepStatus.VALIDATING, StepStatus.APPROVED, StepStatus.EXECUTING, StepStatus.COMPLETED, StepStatus.FAILED],
    ],
)
def test_illegal_transitions(path):
    step = Step(id=0, description="x")
    with pytest.raises(InvalidTransition):
        for status in path:
            step.advance(status)

def test_step_identity_fields_are_frozen():
    step = Step(id=0, description="x", tool_name="echo", parameters={"message": "a"})
    with pytest.raises(ValidationError):
        step.tool_name = "file_delete"
    with pytest.raises(ValidationError):
        step.parameters = {}
    step.result = "ok"

def test_negative_step_id_rejected():
    with pytest.raises(ValidationError):
        Step(id=-1, description="x")

def test_plan_steps_cannot_be_replaced():
    plan = Plan(goal="g", steps=[Step(id=0, description="x")])
    assert len(plan) == 1
    with pytest.raises(ValidationError):
        plan.steps = ()


# ---------------------------------------------------------------------------
# Results, verdicts, errors
# ---------------------------------------------------------------------------

def test_plan_result_helpers():
    steps = [Step(id=0, description="a", status=StepStatus.COMPLETED), Step(id=1, description="b")]
    result = PlanResult(
        goal="g",
        status=PlanStatus.ABORTED,
        results=[ExecutionResult(step_id=0, status=StepStatus.COMPLETED, output=1)],
        steps=steps,
    )
    assert result.result_for(0).ok
    assert result.result_for(1) is None
    assert [s.id for s in result.pending_steps] == [1]

def test_verdicts():
    assert GuardrailVerdict.approve() == GuardrailVerdict(allow=True, reason="")
    assert GuardrailVerdict.deny("why").reason == "why"

def test_completion_options_bounds():
    with pytest.raises(ValidationError):
        CompletionOptions(temperature=3.0)
    with pytest.raises(ValidationError):
        CompletionOptions(max_tokens=0)

def test_only_malformed_planning_errors_are_retryable():
    assert PlanningError(PlanningErrorKind.MALFORMED_RESPONSE, "x").retryable
    assert not PlanningError(PlanningErrorKind.UNKNOWN_TOOL, "x").retryable

def test_provider_error_retryability_defaults():
    assert ProviderError(ProviderErrorKind.RATE_LIMITED, "x").retryable
    assert not ProviderError(ProviderErrorKind.INVALID_REQUEST, "x").retryable
    assert not ProviderError(ProviderErrorKind.TIMEOUT, "x", retryable=False).retryable
