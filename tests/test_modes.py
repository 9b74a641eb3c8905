import random

from answerbot.modes import MODES, ModeBehavior, random_delay, resolve_behavior


def test_resolve_behavior_table():
    assert resolve_behavior("instant") == ModeBehavior(auto_submit=True, min_delay_ms=0, max_delay_ms=0)
    assert resolve_behavior("semi") == ModeBehavior(auto_submit=False, min_delay_ms=0, max_delay_ms=0)
    assert resolve_behavior("delayed") == ModeBehavior(auto_submit=True, min_delay_ms=800, max_delay_ms=2500)


def test_unknown_mode_is_manual():
    for mode in ("turbo", "", None, 3, ["instant"]):
        behavior = resolve_behavior(mode)
        assert behavior.auto_submit is False
        assert random_delay(behavior) == 0


def test_resolve_behavior_is_deterministic():
    for mode in MODES:
        assert resolve_behavior(mode) == resolve_behavior(mode)


def test_random_delay_within_bounds():
    rng = random.Random(7)
    behavior = resolve_behavior("delayed")
    delays = [random_delay(behavior, rng) for _ in range(500)]
    assert all(800 <= d <= 2500 for d in delays)
    assert all(isinstance(d, int) for d in delays)


def test_random_delay_inclusive_single_point():
    behavior = ModeBehavior(auto_submit=True, min_delay_ms=5, max_delay_ms=5)
    assert random_delay(behavior, random.Random(1)) == 5


def test_random_delay_seeded_is_repeatable():
    behavior = resolve_behavior("delayed")
    first = [random_delay(behavior, random.Random(42)) for _ in range(3)]
    second = [random_delay(behavior, random.Random(42)) for _ in range(3)]
    assert first == second
