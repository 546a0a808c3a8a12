import pytest

from agent_orchestrator.errors import ConfigurationError
from agent_orchestrator.memory import Memory, char_estimate, word_count
from agent_orchestrator.models import Message, Role


def words(n: int, tag: str = "w") -> str:
    return " ".join(f"{tag}{i}" for i in range(n))


# ---------------------------------------------------------------------------
# Token counters
# ---------------------------------------------------------------------------

def test_word_count():
    assert word_count("") == 0
    assert word_count("one") == 1
    assert word_count("  one two\nthree ") == 3

def test_char_estimate():
    count = char_estimate(4)
    assert count("") == 0
    assert count("abc") == 1
    assert count("a" * 40) == 10

def test_char_estimate_rejects_non_positive_ratio():
    with pytest.raises(ConfigurationError):
        char_estimate(0)

def test_budget_must_be_positive():
    with pytest.raises(ConfigurationError):
        Memory(0)


# ---------------------------------------------------------------------------
# Budget invariant and eviction
# ---------------------------------------------------------------------------

def test_five_twenty_token_messages_keep_the_last_two():
    memory = Memory(50)
    for i in range(5):
        memory.record(Message.user(words(20, tag=f"m{i}_")))

    assert memory.token_count == 40
    assert [m.content for m in memory.messages] == [words(20, "m3_"), words(20, "m4_")]

def test_pinned_system_message_survives_eviction():
    memory = Memory(50)
    memory.record(Message.system("be brief"))
    for i in range(5):
        memory.record(Message.user(words(20, tag=f"m{i}_")))

    messages = memory.messages
    assert [m.role for m in messages] == [Role.SYSTEM, Role.USER, Role.USER]
    assert messages[0].content == "be brief"
    assert messages[1].content == words(20, "m3_")
    assert messages[2].content == words(20, "m4_")
    assert memory.token_count == 42
    assert memory.pinned == messages[0]

def test_budget_holds_after_every_record():
    memory = Memory(30)
    memory.record(Message.system("system prompt here"))
    sizes = [1, 7, 13, 29, 2, 31, 5, 11, 3, 17]
    for i, size in enumerate(sizes):
        memory.record(Message.assistant(words(size, tag=f"s{i}_")))
        assert memory.token_count <= memory.budget
        assert memory.token_count == sum(memory.cost(m) for m in memory.messages)

def test_message_larger_than_budget_is_dropped():
    memory = Memory(10)
    memory.record(Message.system("rules"))
    memory.record(Message.user("one two three"))
    memory.record(Message.assistant("four five"))
    memory.record(Message.user(words(50)))

    assert [m.content for m in memory.messages] == ["rules", "one two three", "four five"]
    assert memory.token_count == 6

def test_oversized_system_message_keeps_the_current_pin():
    memory = Memory(10)
    memory.record(Message.system("rules"))
    memory.record(Message.user("hello"))
    memory.record(Message.system(words(20)))

    assert memory.pinned.content == "rules"
    assert [m.content for m in memory.messages] == ["rules", "hello"]

def test_oversized_system_message_is_not_retained():
    memory = Memory(5)
    memory.record(Message.system(words(8)))
    assert len(memory) == 0
    assert memory.token_count == 0

def test_newest_system_message_takes_the_pin():
    memory = Memory(10)
    memory.record(Message.system("old rules"))
    memory.record(Message.user(words(3, "a")))
    memory.record(Message.system("new rules"))
    memory.record(Message.user(words(5, "b")))

    # 2 + 3 + 2 + 5 = 12 > 10: the old system message goes first.
    assert [m.content for m in memory.messages] == [words(3, "a"), "new rules", words(5, "b")]
    assert memory.pinned.content == "new rules"

def test_clear():
    memory = Memory(10)
    memory.record(Message.user("hi"))
    memory.clear()
    assert len(memory) == 0
    assert memory.token_count == 0


# ---------------------------------------------------------------------------
# Context window
# ---------------------------------------------------------------------------

def test_context_returns_most_recent_suffix_in_order():
    memory = Memory(100)
    memory.record(Message.system("be brief"))
    memory.record(Message.user(words(20, "a")))
    memory.record(Message.assistant(words(20, "b")))

    assert [m.content for m in memory.context(25)] == [words(20, "b")]
    assert [m.content for m in memory.context(41)] == [words(20, "a"), words(20, "b")]
    assert len(memory.context(42)) == 3
    assert len(memory.context()) == 3

def test_context_stops_at_first_message_that_does_not_fit():
    memory = Memory(100)
    memory.record(Message.user("one"))
    memory.record(Message.user(words(10)))
    memory.record(Message.user("two"))

    # The 10-token message blocks; "one" is not skipped over to fill space.
    assert [m.content for m in memory.context(5)] == ["two"]

def test_context_with_zero_tokens_is_empty():
    memory = Memory(10)
    memory.record(Message.user("hi"))
    assert memory.context(0) == []

def test_custom_counter():
    memory = Memory(10, counter=len)
    memory.record(Message.user("abcdef"))
    memory.record(Message.user("ghijkl"))
    assert [m.content for m in memory.messages] == ["ghijkl"]
