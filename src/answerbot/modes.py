from __future__ import annotations

import random
from dataclasses import dataclass

MODE_INSTANT = "instant"
MODE_SEMI = "semi"
MODE_DELAYED = "delayed"
MODES = (MODE_INSTANT, MODE_SEMI, MODE_DELAYED)


@dataclass(frozen=True)
class ModeBehavior:
    auto_submit: bool
    min_delay_ms: int
    max_delay_ms: int


_BEHAVIORS: dict[str, ModeBehavior] = {
    MODE_INSTANT: ModeBehavior(auto_submit=True, min_delay_ms=0, max_delay_ms=0),
    MODE_SEMI: ModeBehavior(auto_submit=False, min_delay_ms=0, max_delay_ms=0),
    MODE_DELAYED: ModeBehavior(auto_submit=True, min_delay_ms=800, max_delay_ms=2500),
}

# unknown modes behave like a fully manual run
_MANUAL = ModeBehavior(auto_submit=False, min_delay_ms=0, max_delay_ms=0)


def is_known_mode(mode: object) -> bool:
    return isinstance(mode, str) and mode in _BEHAVIORS


def resolve_behavior(mode: object) -> ModeBehavior:
    if not is_known_mode(mode):
        return _MANUAL
    return _BEHAVIORS[mode]


def random_delay(behavior: ModeBehavior, rng: random.Random | None = None) -> int:
    """Pick a submission delay in milliseconds, inclusive of both bounds."""
    if behavior.min_delay_ms == 0 and behavior.max_delay_ms == 0:
        return 0
    rng = rng or random
    return rng.randint(behavior.min_delay_ms, behavior.max_delay_ms)
