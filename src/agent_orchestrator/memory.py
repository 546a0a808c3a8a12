# memory.py
# Bounded, token-aware conversation memory for one agent session.
#
# Invariant: the token cost of retained messages never exceeds the budget.
# The most recent System message is pinned and is evicted only when nothing
# else is left to evict.

import logging
from collections.abc import Callable

from agent_orchestrator.errors import ConfigurationError
from agent_orchestrator.models import Message, Role

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]


# ---------------------------------------------------------------------------
# Token counters
# ---------------------------------------------------------------------------


def word_count(text: str) -> int:
    """Whitespace word approximation. Non-empty text always costs at least 1."""
    if not text:
        return 0
    return max(1, len(text.split()))


def char_estimate(chars_per_token: float = 4.0) -> TokenCounter:
    """Return a counter approximating tokens as characters / chars_per_token."""
    if chars_per_token <= 0:
        raise ConfigurationError("chars_per_token must be positive.")

    def _count(text: str) -> int:
        if not text:
            return 0
        return max(1, int(len(text) / chars_per_token + 0.5))

    return _count


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class Memory:
    """
    Ordered message store with a hard token budget.

    Costs are computed once, on record, with the pluggable counter. Eviction
    is oldest-first and skips the pinned System message.
    """

    def __init__(self, budget: int, counter: TokenCounter = word_count) -> None:
        if budget <= 0:
            raise ConfigurationError(f"Memory budget must be positive, got {budget}.")
        self._budget = budget
        self._counter = counter
        self._entries: list[tuple[Message, int]] = []
        self._total = 0

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def token_count(self) -> int:
        return self._total

    @property
    def messages(self) -> list[Message]:
        return [message for message, _ in self._entries]

    @property
    def pinned(self) -> Message | None:
        index = self._pinned_index()
        return None if index is None else self._entries[index][0]

    def __len__(self) -> int:
        return len(self._entries)

    def cost(self, message: Message) -> int:
        return self._counter(message.content)

    def record(self, message: Message) -> None:
        """
        Append a message, then evict until the budget holds.

        A message costing more than the whole budget is dropped without
        touching what is already stored.
        """
        cost = self.cost(message)
        if cost > self._budget:
            logger.warning(
                "%s message costs %d tokens, over the whole budget of %d; it will not be retained.",
                message.role.value, cost, self._budget,
            )
            return
        self._entries.append((message, cost))
        self._total += cost
        self._evict()

    def context(self, max_tokens: int | None = None) -> list[Message]:
        """Most recent messages whose cumulative cost fits in max_tokens, oldest first."""
        limit = self._budget if max_tokens is None else max_tokens
        selected: list[Message] = []
        used = 0
        for message, cost in reversed(self._entries):
            if used + cost > limit:
                break
            selected.append(message)
            used += cost
        selected.reverse()
        return selected

    def clear(self) -> None:
        self._entries.clear()
        self._total = 0

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _pinned_index(self) -> int | None:
        for index in range(len(self._entries) - 1, -1, -1):
            if self._entries[index][0].role is Role.SYSTEM:
                return index
        return None

    def _evict(self) -> None:
        pinned = self._pinned_index()
        while self._total > self._budget and self._entries:
            victim = 0
            if pinned == 0 and len(self._entries) > 1:
                victim = 1
            message, cost = self._entries.pop(victim)
            self._total -= cost
            if victim == pinned:
                logger.warning("Evicted pinned system message (%d tokens) to honour budget %d.", cost, self._budget)
                pinned = None
            else:
                logger.debug("Evicted %s message (%d tokens).", message.role.value, cost)
                if pinned is not None and victim < pinned:
                    pinned -= 1
