from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

KIND_SHORT_ANSWER = "short_answer"
KIND_MULTIPLE_CHOICE = "multiple_choice"
KIND_MULTI_STEP = "steps"
KIND_OTHER = "other"
KINDS = (KIND_SHORT_ANSWER, KIND_MULTIPLE_CHOICE, KIND_MULTI_STEP, KIND_OTHER)


class ModelServiceError(RuntimeError):
    pass


class AnswerParseError(RuntimeError):
    pass


@dataclass(frozen=True)
class QuestionContext:
    kind: str
    question_text: str
    options: tuple[str, ...] = ()
    prior_steps: tuple[str, ...] = ()
    feedback_text: str | None = None

    def __post_init__(self) -> None:
        if not (self.question_text or "").strip():
            raise ValueError("question_text must not be empty")
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "prior_steps", tuple(self.prior_steps))


@dataclass(frozen=True)
class Answer:
    raw: str
    confidence: float


@dataclass(frozen=True)
class Feedback:
    was_correct: bool
    correct_answer: str | None = None
    feedback_text: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float | None = 0.2
    max_tokens: int = 512


class Reader(Protocol):
    async def read_context(self) -> QuestionContext | None: ...

    async def read_feedback(self) -> Feedback | None: ...

    async def wait_for_context_change(self, previous_text: str, timeout_ms: int) -> bool: ...


class Writer(Protocol):
    async def fill_answer(self, text: str) -> None: ...

    async def submit(self) -> None: ...

    async def advance(self) -> None: ...


class ModelService(Protocol):
    async def complete(self, messages: Sequence[ChatMessage], options: CompletionOptions) -> str: ...
