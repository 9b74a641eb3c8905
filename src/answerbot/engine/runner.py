from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..modes import random_delay, resolve_behavior
from ..state import BotState
from .solver import AnswerSolver
from .types import Answer, Feedback, QuestionContext, Reader, Writer

logger = logging.getLogger(__name__)

CORRECTED_CONFIDENCE = 1.0


@dataclass(frozen=True)
class EngineTimings:
    idle_poll_sec: float = 0.25
    no_question_wait_sec: float = 0.75
    error_cooldown_sec: float = 2.0
    feedback_poll_sec: float = 0.4
    auto_feedback_timeout_sec: float = 8.0
    manual_feedback_timeout_sec: float = 120.0
    auto_advance_timeout_sec: float = 25.0
    manual_advance_timeout_sec: float = 120.0


class CancellationToken:
    """Stop request flag, observed only at loop checkpoints."""

    def __init__(self) -> None:
        self._requested = False

    @property
    def requested(self) -> bool:
        return self._requested

    def request(self) -> None:
        self._requested = True

    def reset(self) -> None:
        self._requested = False


class AnswerEngine:
    def __init__(
        self,
        *,
        reader: Reader,
        writer: Writer,
        state: BotState,
        solver: AnswerSolver,
        timings: EngineTimings | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._state = state
        self._solver = solver
        self._timings = timings or EngineTimings()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._token = CancellationToken()
        self._loop_in_flight = False
        self._task: asyncio.Task[None] | None = None

    @property
    def loop_in_flight(self) -> bool:
        return self._loop_in_flight

    async def start(self) -> None:
        if self._loop_in_flight:
            # resume: the current loop has not observed the stop request yet
            self._state.set_running(True)
            self._token.reset()
            return
        self._token.reset()
        self._state.set_running(True)
        self._loop_in_flight = True
        logger.info("Answer engine started (mode=%s)", self._state.snapshot().mode)
        self._task = asyncio.create_task(self._run_loop(), name="answer-engine-loop")

    async def stop(self) -> None:
        self._token.request()
        self._state.set_running(False)
        logger.info("Answer engine stop requested")

    async def refresh(self) -> QuestionContext | None:
        ctx = await self._reader.read_context()
        if ctx is not None:
            logger.info("Question refreshed: %s", ctx.question_text[:60])
        else:
            logger.info("Question refresh found no active question")
        return ctx

    async def join(self) -> None:
        if self._task is not None:
            await self._task

    async def _run_loop(self) -> None:
        try:
            while not self._token.requested:
                try:
                    await self.process_question()
                except Exception as exc:
                    message = str(exc) or type(exc).__name__
                    logger.exception("Processing question failed")
                    self._state.set_error(message)
                    self._state.record_retry()
                    self._set_activity("Cooling down after error")
                    await self._sleep(self._timings.error_cooldown_sec)
                await self._sleep(self._timings.idle_poll_sec)
        finally:
            self._loop_in_flight = False
        logger.info("Answer engine loop exited")
        self._set_activity("Stopped")

    async def process_question(self) -> None:
        ctx = await self._reader.read_context()
        if ctx is None:
            self._set_activity("Waiting for a question")
            await self._sleep(self._timings.no_question_wait_sec)
            return

        answer = self._state.recall(ctx)
        if answer is None:
            self._set_activity("Generating answer")
            answer = await self._solver.solve(ctx)
        else:
            logger.info("Using remembered answer for: %s", ctx.question_text[:60])

        self._set_activity("Filling answer")
        await self._writer.fill_answer(answer.raw)

        behavior = resolve_behavior(self._state.snapshot().mode)
        if behavior.auto_submit:
            delay_ms = random_delay(behavior, self._rng)
            if delay_ms > 0:
                await self._sleep(delay_ms / 1000)
            self._set_activity("Submitting answer")
            await self._writer.submit()
            feedback_timeout = self._timings.auto_feedback_timeout_sec
            advance_timeout = self._timings.auto_advance_timeout_sec
        else:
            self._set_activity("Waiting for manual submission")
            feedback_timeout = self._timings.manual_feedback_timeout_sec
            advance_timeout = self._timings.manual_advance_timeout_sec

        feedback = await self._wait_for_feedback(feedback_timeout)
        if feedback is not None:
            self._apply_feedback(ctx, answer, feedback)

        if behavior.auto_submit:
            await self._writer.advance()

        self._set_activity("Waiting for next question")
        advanced = await self._reader.wait_for_context_change(ctx.question_text, int(advance_timeout * 1000))
        if not advanced:
            if behavior.auto_submit:
                logger.warning("Question did not change after submission")
                self._state.set_error("Question did not advance")
            else:
                logger.debug("Still waiting for manual submission or navigation")
            return

        self._state.set_error(None)

    def _apply_feedback(self, ctx: QuestionContext, answer: Answer, feedback: Feedback) -> None:
        self._state.record_result(feedback.was_correct)
        if feedback.was_correct:
            self._state.remember(ctx, answer)
            self._state.set_error(None)
        elif feedback.correct_answer:
            self._state.remember(ctx, Answer(raw=feedback.correct_answer, confidence=CORRECTED_CONFIDENCE))
            self._state.set_error(feedback.feedback_text or "Incorrect")
        else:
            # TODO: drop the remembered answer here once the operator flow for uncorrected misses is settled
            self._state.set_error(feedback.feedback_text or "Incorrect")

    async def _wait_for_feedback(self, timeout_sec: float) -> Feedback | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_sec
        while loop.time() < deadline and not self._token.requested:
            feedback = await self._reader.read_feedback()
            if feedback is not None:
                return feedback
            await self._sleep(self._timings.feedback_poll_sec)
        return None

    def _set_activity(self, activity: str) -> None:
        if self._state.snapshot().activity != activity:
            self._state.set_activity(activity)
