# rules.py
# Behaviour-modification rules for outgoing completion requests.
#
# A rule is a pure text -> text transform. Rules never touch Memory or a
# Plan; any effect on future behaviour flows through the transformed request.

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Transform = Callable[[str], str]


@dataclass(frozen=True)
class Rule:
    """A prioritised request transform. Lower priority runs first."""

    name: str
    priority: int
    transform: Transform


class RuleEngine:
    """
    Applies rules in ascending priority order.

    Ties keep declaration order: the sort is stable and rules are stored in
    the order they were added.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: list[Rule] = list(rules)

    def add(self, rule: Rule) -> None:
        self._rules.append(rule)

    @property
    def rules(self) -> list[Rule]:
        """Rules in the order they will be applied."""
        return sorted(self._rules, key=lambda rule: rule.priority)

    def __len__(self) -> int:
        return len(self._rules)

    def apply(self, text: str) -> str:
        for rule in self.rules:
            text = rule.transform(text)
            logger.debug("Applied rule %r (priority %d).", rule.name, rule.priority)
        return text


# ---------------------------------------------------------------------------
# Built-in rules
# ---------------------------------------------------------------------------


def prepend(text: str, priority: int = 0, name: str = "prepend") -> Rule:
    """Place an instruction before the request."""
    return Rule(name=name, priority=priority, transform=lambda request: f"{text}\n\n{request}")


def append(text: str, priority: int = 0, name: str = "append") -> Rule:
    """Place an instruction after the request."""
    return Rule(name=name, priority=priority, transform=lambda request: f"{request}\n\n{text}")


def redact(pattern: str, replacement: str = "[REDACTED]", priority: int = 0, name: str = "redact") -> Rule:
    """Replace every regex match, e.g. to keep secrets out of provider requests."""
    compiled = re.compile(pattern)
    return Rule(name=name, priority=priority, transform=lambda request: compiled.sub(replacement, request))
