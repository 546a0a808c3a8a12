# display.py
# Terminal rendering of the orchestration trace.
#
# The core never formats strings for the terminal: the Agent wires these
# functions to its events and the Executor's step status stream. Swap this
# file to change the entire UI.
#
# Colour language:
#   cyan   : routing events and plans
#   yellow : validation checkpoints
#   green  : success
#   red    : denials, failures, halts
#   magenta: tool invocations

import json

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from agent_orchestrator.models import Plan, PlanResult, PlanStatus, Step, StepStatus

console = Console()

_STATUS_STYLE = {
    StepStatus.PENDING: "dim",
    StepStatus.VALIDATING: "yellow",
    StepStatus.APPROVED: "green",
    StepStatus.DENIED: "bold red",
    StepStatus.EXECUTING: "magenta",
    StepStatus.COMPLETED: "bold green",
    StepStatus.FAILED: "bold red",
}

_PLAN_STYLE = {
    PlanStatus.SUCCESS: "green",
    PlanStatus.PARTIAL_FAILURE: "yellow",
    PlanStatus.ABORTED: "red",
}


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def banner(provider: str, model: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Agent Orchestrator[/bold cyan]\n"
            "[dim]Plan → guardrails → sequential execution → bounded memory[/dim]\n\n"
            f"[dim]Provider :[/dim] [white]{provider}[/white]\n"
            f"[dim]Model    :[/dim] [white]{model}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def goal_received(goal: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW GOAL[/cyan]", style="cyan"))
    console.print(Panel(f"[white]{goal}[/white]", title=_label("GOAL", "cyan"), border_style="cyan", padding=(0, 2)))


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def planning_started() -> None:
    console.print()
    console.print(_label("PLANNER", "cyan"), "[cyan] → Decomposing goal…[/cyan]")


def plan_parsed(plan: Plan) -> None:
    console.print()
    table = Table(box=box.SIMPLE_HEAVY, border_style="cyan", header_style="bold cyan", padding=(0, 1))
    table.add_column("ID", justify="center", width=4)
    table.add_column("Tool", style="bold white", width=12)
    table.add_column("Parameters", style="dim white", width=32)
    table.add_column("Description", style="white")

    for step in plan.steps:
        table.add_row(
            str(step.id),
            step.tool_name or "—",
            _mono(json.dumps(step.parameters, default=str), 30),
            step.description,
        )

    console.print(
        Panel(
            table,
            title=_label("PLAN", "cyan"),
            subtitle=f"[dim]Goal: {plan.goal}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def planning_failed(error: Exception) -> None:
    halt(f"Planning failed: {error}")


# ---------------------------------------------------------------------------
# Step status stream
# ---------------------------------------------------------------------------


def step_status(step: Step) -> None:
    """Listener for Executor status transitions."""
    style = _STATUS_STYLE[step.status]
    line = f"  [bold cyan]STEP {step.id}[/bold cyan]  [{style}]{step.status.value:<10}[/{style}]"

    if step.status is StepStatus.VALIDATING:
        line += f"  [white]{step.description}[/white]"
    elif step.status is StepStatus.EXECUTING and step.tool_name:
        line += f"  [bold white]{step.tool_name}[/bold white] [dim]{_mono(json.dumps(step.parameters, default=str), 80)}[/dim]"
    elif step.status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.DENIED):
        line += f"  [white]{_mono(str(step.result), 140)}[/white]"

    console.print(line)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def plan_result(result: PlanResult) -> None:
    console.print()
    table = Table(box=box.SIMPLE_HEAVY, border_style="dim", header_style="bold dim", padding=(0, 1))
    table.add_column("Step", justify="center", width=6)
    table.add_column("Status", width=10)
    table.add_column("Time", justify="right", width=8)
    table.add_column("Output / Error", style="dim white")

    for step in result.steps:
        record = result.result_for(step.id)
        style = _STATUS_STYLE[step.status]
        detail = ""
        duration = ""
        if record is not None:
            detail = record.error if record.error is not None else str(record.output)
            duration = f"{record.duration:.2f}s"
        table.add_row(str(step.id), f"[{style}]{step.status.value}[/{style}]", duration, _mono(detail, 60))

    color = _PLAN_STYLE[result.status]
    console.print(
        Panel(
            table,
            title=_label(f"RESULT: {result.status.value.upper()}", color),
            border_style=color,
            padding=(0, 1),
        )
    )


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(f"[bold white]{reason}[/bold white]", title=_label("HALT", "red"), border_style="red", padding=(0, 2))
    )
    console.print()
