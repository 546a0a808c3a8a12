# tools.py
# Tool registry and the built-in tool implementations.
#
# The registry is an explicit object passed to the Planner and Executor;
# there is no process-wide tool table. Tools take a parameter dict and
# return a value, raising ToolError on bad input or failure.

import logging
import operator
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_orchestrator.errors import ToolError, ToolErrorKind
from agent_orchestrator.models import ToolResult

logger = logging.getLogger(__name__)

ToolFunc = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class Tool:
    name: str
    func: ToolFunc
    description: str = ""


class ToolRegistry:
    """Name → callable mapping consulted by the Planner and Executor."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, name: str, func: ToolFunc, description: str = "") -> None:
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        self._tools[name] = Tool(name=name, func=func, description=description)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def describe(self) -> str:
        """One line per tool, for planner prompts."""
        return "\n".join(
            f"- {tool.name}: {tool.description}" if tool.description else f"- {tool.name}"
            for tool in sorted(self._tools.values(), key=lambda t: t.name)
        )

    def invoke(self, name: str, parameters: dict[str, Any]) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(ToolErrorKind.NOT_FOUND, f"Tool '{name}' is not in the registry.", name)

        logger.debug("Invoking tool %s with %s", name, parameters)
        try:
            output = tool.func(dict(parameters))
        except ToolError as exc:
            if not exc.tool_name:
                exc.tool_name = name
            raise
        except Exception as exc:
            raise ToolError(ToolErrorKind.EXECUTION_FAILED, f"Tool '{name}' failed: {exc}", name) from exc

        if isinstance(output, ToolResult):
            return output
        return ToolResult(output=output)


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def _require_str(args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolError(ToolErrorKind.INVALID_PARAMS, f"Parameter '{key}' must be a non-empty string.")
    return value.strip()


def _require_number(args: dict, key: str) -> float | int:
    value = args.get(key)
    if isinstance(value, bool):
        raise ToolError(ToolErrorKind.INVALID_PARAMS, f"Parameter '{key}' must be a number.")
    if isinstance(value, (int, float)):
        return value
    # Models often send numbers as strings.
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ToolError(ToolErrorKind.INVALID_PARAMS, f"Parameter '{key}' must be a number.") from None
    return int(number) if number.is_integer() else number


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------


_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "div": operator.truediv,
    "pow": operator.pow,
}


def _tool_echo(args: dict) -> str:
    return str(args.get("message", ""))


def _tool_calculator(args: dict) -> float | int:
    a = _require_number(args, "a")
    b = _require_number(args, "b")
    op = str(args.get("op", "add")).lower()
    if op not in _OPERATORS:
        raise ToolError(
            ToolErrorKind.INVALID_PARAMS,
            f"Unknown operation '{op}'. Expected one of: {', '.join(_OPERATORS)}.",
        )
    try:
        return _OPERATORS[op](a, b)
    except ZeroDivisionError:
        raise ToolError(ToolErrorKind.EXECUTION_FAILED, "Division by zero.") from None


def _file_tools(workspace: Path) -> dict[str, ToolFunc]:
    # Relative paths are taken against the workspace, matching the path guardrail.
    def _path(args: dict) -> Path:
        candidate = Path(_require_str(args, "path")).expanduser()
        if not candidate.is_absolute():
            candidate = workspace / candidate
        return candidate

    def _tool_file_read(args: dict) -> str:
        path = _path(args)
        if not path.is_file():
            raise ToolError(ToolErrorKind.EXECUTION_FAILED, f"No such file: {path}")
        return path.read_text(encoding="utf-8")

    def _tool_file_write(args: dict) -> str:
        path = _path(args)
        content = str(args.get("content", ""))
        os.makedirs(path.parent, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return f"Wrote {len(content)} bytes to {path}."

    def _tool_file_delete(args: dict) -> str:
        path = _path(args)
        if not path.is_file():
            raise ToolError(ToolErrorKind.EXECUTION_FAILED, f"No such file: {path}")
        path.unlink()
        return f"Deleted {path}."

    return {
        "file_read": _tool_file_read,
        "file_write": _tool_file_write,
        "file_delete": _tool_file_delete,
    }


def _tool_search(args: dict) -> str:
    from ddgs import DDGS

    query = _require_str(args, "query")
    max_results = int(args.get("max_results", 4))
    # Coerce to a list so the search actually runs here.
    results = list(DDGS().text(query, max_results=max_results))
    if not results:
        return "No results found."

    lines = []
    for r in results:
        lines.append(f"[{r.get('title', 'No Title')}]\n{r.get('body', '')}\nSource: {r.get('href', '')}")
    return "\n\n".join(lines)


def _tool_http_post(args: dict) -> str:
    import httpx

    url = _require_str(args, "url")
    payload = args.get("payload", {})
    response = httpx.post(url, json=payload, timeout=10)
    return f"POST {url} → {response.status_code} ({len(response.content)} bytes)"


def default_registry(workspace: str | Path = ".") -> ToolRegistry:
    """Registry with every built-in tool, file tools rooted at `workspace`."""
    root = Path(workspace).expanduser().resolve()
    files = _file_tools(root)

    registry = ToolRegistry()
    registry.register("echo", _tool_echo, '{"message": "<string>"} - return the message.')
    registry.register(
        "calculator",
        _tool_calculator,
        '{"a": <number>, "b": <number>, "op": "add|sub|mul|div|pow"} - arithmetic, op defaults to add.',
    )
    registry.register("file_read", files["file_read"], '{"path": "<string>"} - read a UTF-8 text file.')
    registry.register(
        "file_write", files["file_write"], '{"path": "<string>", "content": "<string>"} - write a text file.'
    )
    registry.register("file_delete", files["file_delete"], '{"path": "<string>"} - delete a file.')
    registry.register("search", _tool_search, '{"query": "<string>"} - web search.')
    registry.register("http_post", _tool_http_post, '{"url": "<string>", "payload": {<object>}} - POST JSON.')
    return registry
