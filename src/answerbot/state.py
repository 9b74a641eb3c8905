from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable

from .engine.types import Answer, QuestionContext
from .modes import MODE_SEMI
from .normalize import question_fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateSnapshot:
    running: bool = False
    mode: str = MODE_SEMI
    answered_count: int = 0
    correct_count: int = 0
    retry_count: int = 0
    last_error: str | None = None
    activity: str = "Idle"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_spent: float = 0.0


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True)
class MemoryEntry:
    question_text: str
    answer: Answer


Observer = Callable[[StateSnapshot], None]


class AnswerMemory:
    """Fingerprint -> answer map for the lifetime of the process. No eviction."""

    def __init__(self) -> None:
        self._entries: dict[str, MemoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def remember(self, ctx: QuestionContext, answer: Answer) -> bool:
        key = question_fingerprint(ctx.kind, ctx.question_text)
        if not key:
            logger.debug("Skipping memory write for blank question text")
            return False
        self._entries[key] = MemoryEntry(question_text=ctx.question_text, answer=answer)
        return True

    def recall(self, ctx: QuestionContext) -> Answer | None:
        key = question_fingerprint(ctx.kind, ctx.question_text)
        entry = self._entries.get(key) if key else None
        return entry.answer if entry else None


class BotState:
    """Observable run state.

    Every mutator replaces the snapshot and synchronously notifies all
    observers before returning. Snapshots are frozen, so observers can keep
    them without seeing later changes.
    """

    def __init__(self, *, mode: str = MODE_SEMI, token_cost_per_1k: float = 0.09) -> None:
        self._snapshot = StateSnapshot(mode=mode)
        self._observers: list[Observer] = []
        self._token_cost_per_1k = token_cost_per_1k
        self.memory = AnswerMemory()

    def snapshot(self) -> StateSnapshot:
        return self._snapshot

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)
        observer(self._snapshot)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def set_running(self, running: bool) -> None:
        self._update(running=running)

    def set_mode(self, mode: str) -> None:
        self._update(mode=mode)

    def set_error(self, message: str | None) -> None:
        self._update(last_error=message)

    def set_activity(self, activity: str) -> None:
        self._update(activity=activity)

    def record_result(self, was_correct: bool) -> None:
        current = self._snapshot
        self._update(
            answered_count=current.answered_count + 1,
            correct_count=current.correct_count + (1 if was_correct else 0),
        )

    def record_retry(self) -> None:
        self._update(retry_count=self._snapshot.retry_count + 1)

    def record_token_usage(self, usage: TokenUsage | None) -> None:
        if usage is None:
            return
        prompt = usage.prompt_tokens or 0
        completion = usage.completion_tokens or 0
        total = usage.total_tokens if usage.total_tokens is not None else prompt + completion
        current = self._snapshot
        self._update(
            prompt_tokens=current.prompt_tokens + prompt,
            completion_tokens=current.completion_tokens + completion,
            total_tokens=current.total_tokens + total,
            cost_spent=current.cost_spent + (total / 1000) * self._token_cost_per_1k,
        )

    def remember(self, ctx: QuestionContext, answer: Answer) -> None:
        self.memory.remember(ctx, answer)

    def recall(self, ctx: QuestionContext) -> Answer | None:
        return self.memory.recall(ctx)

    def _update(self, **changes) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)
        snapshot = self._snapshot
        # copy so an observer may unsubscribe while being notified
        for observer in list(self._observers):
            observer(snapshot)
