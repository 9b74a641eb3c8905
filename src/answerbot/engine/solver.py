from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..normalize import strip_answer_label
from ..retry import linear_backoff, retry_async
from .types import (
    KIND_MULTIPLE_CHOICE,
    Answer,
    AnswerParseError,
    ChatMessage,
    CompletionOptions,
    ModelService,
    QuestionContext,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a math solver that must respond only in the exact format the UI expects."
GENERATED_CONFIDENCE = 0.6

_OPTION_LETTER = re.compile(r"^([A-Z])(?![A-Za-z])", re.IGNORECASE)


def compose_prompt(ctx: QuestionContext) -> str:
    lines = [
        "Use the following question context to determine the answer.",
        f"Question Type: {ctx.kind}",
        "Question:",
        ctx.question_text,
    ]
    if ctx.options:
        lines.append("Options:")
        for idx, option in enumerate(ctx.options):
            label = chr(ord("A") + idx)
            lines.append(f"{label}. {option}")
        lines.append("Respond with the exact option text or its corresponding letter.")
    else:
        lines.append("Respond with only the final numeric or textual answer with no explanation.")
    if ctx.prior_steps:
        lines.append("Previous working or hints:")
        for idx, step in enumerate(ctx.prior_steps, start=1):
            lines.append(f"{idx}. {step}")
    if ctx.feedback_text:
        lines.append(f"Prior feedback: {ctx.feedback_text}")
    return "\n".join(lines)


def parse_model_response(ctx: QuestionContext, response: str) -> str | None:
    cleaned = strip_answer_label(response)
    if ctx.kind == KIND_MULTIPLE_CHOICE and ctx.options:
        letter = _OPTION_LETTER.match(cleaned)
        if letter:
            idx = ord(letter.group(1).upper()) - ord("A")
            if idx < len(ctx.options):
                return ctx.options[idx]
        lowered = cleaned.lower()
        for option in ctx.options:
            if option.lower() == lowered:
                return option
    return cleaned or None


@dataclass
class AnswerSolver:
    model: ModelService
    options: CompletionOptions = field(default_factory=CompletionOptions)
    attempts: int = 3
    backoff_step_sec: float = 0.5
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def build_messages(self, ctx: QuestionContext) -> list[ChatMessage]:
        return [
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(role="user", content=compose_prompt(ctx)),
        ]

    async def solve(self, ctx: QuestionContext) -> Answer:
        messages = self.build_messages(ctx)
        logger.info("Requesting model answer (kind=%s)", ctx.kind)

        async def _attempt() -> Answer:
            response = await self.model.complete(messages, self.options)
            parsed = parse_model_response(ctx, response)
            if not parsed:
                raise AnswerParseError("Unable to parse model response")
            return Answer(raw=parsed, confidence=GENERATED_CONFIDENCE)

        def _on_failure(attempt: int, exc: Exception) -> None:
            logger.warning("Model call failed (attempt=%s/%s): %s", attempt, self.attempts, exc)

        return await retry_async(
            _attempt,
            attempts=self.attempts,
            backoff=linear_backoff(self.backoff_step_sec),
            sleep=self.sleep,
            on_failure=_on_failure,
        )
