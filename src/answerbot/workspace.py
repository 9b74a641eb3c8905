from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .engine.types import KINDS, KIND_MULTIPLE_CHOICE, Feedback, QuestionContext
from .normalize import norm_cmp_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptedQuestion:
    kind: str
    text: str
    canonical: str
    options: tuple[str, ...] = ()
    prior_steps: tuple[str, ...] = ()
    accepted: tuple[str, ...] = ()
    # hint banner shown alongside the question
    feedback: str | None = None


def parse_script(payload: Any) -> list[ScriptedQuestion]:
    if not isinstance(payload, list):
        raise ValueError("question script must be a JSON list")
    questions: list[ScriptedQuestion] = []
    for idx, raw in enumerate(payload, start=1):
        if not isinstance(raw, dict):
            raise ValueError(f"question {idx}: not an object")
        text = str(raw.get("text") or "").strip()
        if not text:
            raise ValueError(f"question {idx}: missing text")
        if "canonical" not in raw:
            raise ValueError(f"question {idx}: missing canonical")
        kind = str(raw.get("kind") or "short_answer")
        if kind not in KINDS:
            raise ValueError(f"question {idx}: unknown kind {kind!r}")
        options = tuple(str(x) for x in (raw.get("options") or []))
        if kind == KIND_MULTIPLE_CHOICE and not options:
            raise ValueError(f"question {idx}: options required for multiple_choice")
        questions.append(
            ScriptedQuestion(
                kind=kind,
                text=text,
                canonical=str(raw["canonical"]),
                options=options,
                prior_steps=tuple(str(x) for x in (raw.get("prior_steps") or [])),
                accepted=tuple(str(x) for x in (raw.get("accepted") or [])),
                feedback=str(raw["feedback"]) if raw.get("feedback") else None,
            )
        )
    return questions


def load_script(path: Path) -> list[ScriptedQuestion]:
    return parse_script(json.loads(Path(path).read_text(encoding="utf-8")))


class ScriptedWorkspace:
    """In-memory Reader and Writer backed by a fixed list of questions.

    ``submit`` grades the filled answer against the canonical answer and any
    accepted variants; ``advance`` moves on regardless of the verdict.
    """

    def __init__(
        self,
        questions: list[ScriptedQuestion],
        *,
        reveal_corrections: bool = True,
        poll_interval_sec: float = 0.05,
    ) -> None:
        self._questions = list(questions)
        self._reveal_corrections = reveal_corrections
        self._poll_interval_sec = poll_interval_sec
        self._index = 0
        self._filled: str | None = None
        self._feedback: Feedback | None = None
        self.submissions: list[tuple[str, bool]] = []

    @property
    def current(self) -> ScriptedQuestion | None:
        if self._index >= len(self._questions):
            return None
        return self._questions[self._index]

    @property
    def exhausted(self) -> bool:
        return self.current is None

    async def read_context(self) -> QuestionContext | None:
        question = self.current
        if question is None:
            return None
        return QuestionContext(
            kind=question.kind,
            question_text=question.text,
            options=question.options,
            prior_steps=question.prior_steps,
            feedback_text=question.feedback,
        )

    async def read_feedback(self) -> Feedback | None:
        return self._feedback

    async def wait_for_context_change(self, previous_text: str, timeout_ms: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while True:
            question = self.current
            current_text = question.text if question else ""
            if current_text != previous_text:
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._poll_interval_sec)

    async def fill_answer(self, text: str) -> None:
        self._filled = text

    async def submit(self) -> None:
        question = self.current
        if question is None:
            logger.debug("Submit ignored: script exhausted")
            return
        answer = self._filled or ""
        correct = self._grade(question, answer)
        self.submissions.append((answer, correct))
        if correct:
            self._feedback = Feedback(was_correct=True, feedback_text="Correct")
            return
        self._feedback = Feedback(
            was_correct=False,
            correct_answer=question.canonical if self._reveal_corrections else None,
            feedback_text=f"Incorrect: {answer!r} is not right",
        )

    async def advance(self) -> None:
        if self.current is None:
            return
        self._index += 1
        self._filled = None
        self._feedback = None

    def _grade(self, question: ScriptedQuestion, answer: str) -> bool:
        given = norm_cmp_text(answer)
        if not given:
            return False
        accepted = [question.canonical, *question.accepted]
        return any(given == norm_cmp_text(candidate) for candidate in accepted)
