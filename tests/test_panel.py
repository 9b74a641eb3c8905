import asyncio
from dataclasses import replace

import pytest

from answerbot.config import Settings
from answerbot.engine.runner import AnswerEngine
from answerbot.engine.solver import AnswerSolver
from answerbot.engine.types import QuestionContext
from answerbot.panel import format_status
from answerbot.state import BotState, StateSnapshot
from answerbot.workspace import ScriptedQuestion, ScriptedWorkspace
from tests.fakes import FAST_TIMINGS, FakeModel, FakeReader, FakeWriter
from tests.telegram_harness.harness import PanelHarness

ADMIN_ID = 999
OTHER_ID = 111


def _settings() -> Settings:
    return Settings(gemini_api_key="key", bot_token="123456:TEST", admin_ids=[ADMIN_ID])


def _build(contexts=()):
    state = BotState()
    engine = AnswerEngine(
        reader=FakeReader(list(contexts)),
        writer=FakeWriter(),
        state=state,
        solver=AnswerSolver(model=FakeModel(["4"])),
        timings=FAST_TIMINGS,
    )
    harness = PanelHarness(settings=_settings(), engine=engine, state=state)
    state.subscribe(harness.notifier)
    return harness, engine, state


def test_format_status():
    text = format_status(
        StateSnapshot(running=True, mode="instant", answered_count=4, correct_count=3, retry_count=1, last_error="Incorrect")
    )
    assert "Status: running" in text
    assert "Mode: instant" in text
    assert "accuracy 75%" in text
    assert "Last error: Incorrect" in text
    assert "accuracy n/a" in format_status(StateSnapshot())
    assert "Last error" not in format_status(StateSnapshot())


@pytest.mark.asyncio
async def test_non_admin_is_rejected():
    harness, engine, _ = _build()
    try:
        await harness.send_text(user_id=OTHER_ID, text="/run")
        assert harness.last_bot_message(OTHER_ID).text == "Forbidden"
        assert engine.loop_in_flight is False
    finally:
        await harness.close()


@pytest.mark.asyncio
async def test_panel_buttons_drive_engine():
    harness, engine, state = _build()
    try:
        await harness.send_text(user_id=ADMIN_ID, text="/panel")
        panel = harness.last_bot_message(ADMIN_ID)
        assert "Status: stopped" in panel.text
        assert {"panel:start", "panel:stop", "panel:refresh", "mode:instant"} <= set(harness.callback_data(panel))

        await harness.click(user_id=ADMIN_ID, message=panel, data="panel:start")
        assert engine.loop_in_flight is True
        assert state.snapshot().running is True

        await harness.click(user_id=ADMIN_ID, message=panel, data="mode:delayed")
        assert state.snapshot().mode == "delayed"

        await harness.notifier.flush()
        edited = harness.session.messages_by_chat[ADMIN_ID][0]
        assert "Mode: delayed" in edited.text
        assert "Status: running" in edited.text

        await harness.click(user_id=ADMIN_ID, message=panel, data="panel:stop")
        await asyncio.wait_for(engine.join(), timeout=1.0)
        assert engine.loop_in_flight is False
        assert state.snapshot().running is False
    finally:
        await engine.stop()
        await harness.close()


@pytest.mark.asyncio
async def test_text_commands():
    harness, engine, state = _build([QuestionContext(kind="short_answer", question_text="2+2")])
    try:
        await harness.send_text(user_id=ADMIN_ID, text="/mode instant")
        assert state.snapshot().mode == "instant"
        await harness.send_text(user_id=ADMIN_ID, text="/mode turbo")
        assert harness.last_bot_message(ADMIN_ID).text.startswith("Usage: /mode")
        assert state.snapshot().mode == "instant"

        await harness.send_text(user_id=ADMIN_ID, text="/refresh")
        assert "2+2" in harness.last_bot_message(ADMIN_ID).text

        await harness.send_text(user_id=ADMIN_ID, text="/status")
        assert "Mode: instant" in harness.last_bot_message(ADMIN_ID).text
    finally:
        await harness.close()


def _build_scripted(mode="semi"):
    workspace = ScriptedWorkspace(
        [
            ScriptedQuestion(kind="short_answer", text="2+2", canonical="4"),
            ScriptedQuestion(kind="short_answer", text="3+3", canonical="6"),
        ],
        poll_interval_sec=0.001,
    )
    state = BotState(mode=mode)
    engine = AnswerEngine(
        reader=workspace,
        writer=workspace,
        state=state,
        solver=AnswerSolver(model=FakeModel(["4"])),
        timings=replace(FAST_TIMINGS, manual_feedback_timeout_sec=1.0, manual_advance_timeout_sec=1.0),
    )
    harness = PanelHarness(settings=_settings(), engine=engine, state=state, writer=workspace)
    return harness, engine, state, workspace


async def _wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_semi_mode_operator_submits_and_moves_next():
    harness, engine, state, workspace = _build_scripted()
    try:
        await harness.send_text(user_id=ADMIN_ID, text="/run")
        await _wait_until(lambda: state.snapshot().activity == "Waiting for manual submission")
        assert workspace.submissions == []

        await harness.send_text(user_id=ADMIN_ID, text="/submit")
        assert harness.last_bot_message(ADMIN_ID).text == "Answer submitted."
        assert workspace.submissions == [("4", True)]
        await _wait_until(lambda: state.snapshot().answered_count == 1)
        assert state.snapshot().correct_count == 1

        await harness.send_text(user_id=ADMIN_ID, text="/next")
        assert harness.last_bot_message(ADMIN_ID).text == "Moved to the next question."
        assert workspace.current.text == "3+3"
        await _wait_until(lambda: state.snapshot().activity == "Waiting for manual submission")
    finally:
        await engine.stop()
        await asyncio.wait_for(engine.join(), timeout=3.0)
        await harness.close()
    assert engine.loop_in_flight is False


@pytest.mark.asyncio
async def test_submit_and_next_buttons_drive_workspace():
    harness, _, _, workspace = _build_scripted()
    try:
        await harness.send_text(user_id=ADMIN_ID, text="/panel")
        panel = harness.last_bot_message(ADMIN_ID)
        assert {"panel:submit", "panel:next"} <= set(harness.callback_data(panel))

        await workspace.fill_answer("5")
        await harness.click(user_id=ADMIN_ID, message=panel, data="panel:submit")
        assert workspace.submissions == [("5", False)]
        assert harness.session.callback_answers[-1] == "Answer submitted."

        await harness.click(user_id=ADMIN_ID, message=panel, data="panel:next")
        assert workspace.current.text == "3+3"
        assert harness.session.callback_answers[-1] == "Moved to the next question."
    finally:
        await harness.close()


@pytest.mark.asyncio
async def test_manual_actions_need_admin_and_writer():
    harness, _, _, workspace = _build_scripted()
    try:
        await harness.send_text(user_id=OTHER_ID, text="/submit")
        assert harness.last_bot_message(OTHER_ID).text == "Forbidden"
        await harness.send_text(user_id=OTHER_ID, text="/next")
        assert harness.last_bot_message(OTHER_ID).text == "Forbidden"
        assert workspace.submissions == []
        assert workspace.current.text == "2+2"
    finally:
        await harness.close()

    harness, _, _ = _build()
    try:
        await harness.send_text(user_id=ADMIN_ID, text="/submit")
        assert harness.last_bot_message(ADMIN_ID).text == "Manual submit/next is not available for this workspace."
    finally:
        await harness.close()
