from agent_orchestrator.rules import Rule, RuleEngine, append, prepend, redact


def tag(label: str, priority: int) -> Rule:
    return Rule(name=label, priority=priority, transform=lambda text: f"{text}{label}")


def test_empty_engine_is_identity():
    assert RuleEngine().apply("request") == "request"

def test_rules_apply_in_ascending_priority():
    engine = RuleEngine([tag("C", 30), tag("A", 10), tag("B", 20)])
    assert engine.apply(">") == ">ABC"
    assert [rule.name for rule in engine.rules] == ["A", "B", "C"]

def test_equal_priorities_keep_declaration_order():
    engine = RuleEngine([tag("x", 5), tag("y", 5), tag("z", 1)])
    assert engine.apply("") == "zxy"

    swapped = RuleEngine([tag("y", 5), tag("x", 5), tag("z", 1)])
    assert swapped.apply("") == "zyx"

def test_application_is_deterministic():
    engine = RuleEngine([tag("a", 2), tag("b", 1), tag("c", 2), tag("d", 0)])
    outputs = {engine.apply("") for _ in range(20)}
    assert outputs == {"dbac"}

def test_added_rules_follow_existing_ones_at_the_same_priority():
    engine = RuleEngine([tag("first", 0)])
    engine.add(tag("second", 0))
    engine.add(tag("early", -1))
    assert engine.apply("") == "earlyfirstsecond"
    assert len(engine) == 3

def test_each_transform_feeds_the_next():
    engine = RuleEngine(
        [
            Rule(name="upper", priority=2, transform=str.upper),
            Rule(name="strip", priority=1, transform=str.strip),
        ]
    )
    assert engine.apply("  plan it  ") == "PLAN IT"


# ---------------------------------------------------------------------------
# Built-in rules
# ---------------------------------------------------------------------------

def test_prepend_and_append():
    engine = RuleEngine([append("Answer in JSON.", priority=1), prepend("Be concise.", priority=0)])
    assert engine.apply("Goal") == "Be concise.\n\nGoal\n\nAnswer in JSON."

def test_redact():
    engine = RuleEngine([redact(r"sk-[A-Za-z0-9]+")])
    assert engine.apply("key sk-abc123 here") == "key [REDACTED] here"

def test_redact_runs_before_later_rules():
    engine = RuleEngine([append("token sk-zzz", priority=5), redact(r"sk-\w+", priority=1)])
    # The appended text arrives after redaction, so it is left alone.
    assert engine.apply("sk-aaa") == "[REDACTED]\n\ntoken sk-zzz"
