from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher, F
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from .config import Settings
from .engine.runner import AnswerEngine
from .engine.types import Writer
from .keyboards import kb_panel
from .modes import MODES, is_known_mode
from .state import BotState, StateSnapshot

logger = logging.getLogger(__name__)


def format_status(snapshot: StateSnapshot) -> str:
    accuracy = "n/a"
    if snapshot.answered_count:
        accuracy = f"{snapshot.correct_count / snapshot.answered_count:.0%}"
    lines = [
        f"Status: {'running' if snapshot.running else 'stopped'}",
        f"Mode: {snapshot.mode}",
        f"Activity: {snapshot.activity}",
        f"Answered: {snapshot.answered_count} (correct {snapshot.correct_count}, accuracy {accuracy})",
        f"Retries: {snapshot.retry_count}",
        f"Tokens: {snapshot.total_tokens} (cost {snapshot.cost_spent:.4f})",
    ]
    if snapshot.last_error:
        lines.append(f"Last error: {snapshot.last_error}")
    return "\n".join(lines)


class PanelNotifier:
    """State observer that mirrors the latest snapshot into open panel messages.

    Notifications arrive synchronously from BotState; the Telegram edits happen
    in ``run`` and are rate limited to one flush per ``min_interval_sec``.
    """

    def __init__(self, bot: Bot, *, min_interval_sec: float = 3.0) -> None:
        self._bot = bot
        self._min_interval_sec = min_interval_sec
        self._latest: StateSnapshot | None = None
        self._rendered: dict[int, str] = {}
        self._panels: dict[int, int] = {}
        self._dirty = asyncio.Event()

    def __call__(self, snapshot: StateSnapshot) -> None:
        self._latest = snapshot
        self._dirty.set()

    def track(self, chat_id: int, message_id: int) -> None:
        self._panels[chat_id] = message_id
        self._rendered.pop(chat_id, None)

    async def run(self) -> None:
        while True:
            await self._dirty.wait()
            self._dirty.clear()
            await self.flush()
            await asyncio.sleep(self._min_interval_sec)

    async def flush(self) -> None:
        snapshot = self._latest
        if snapshot is None:
            return
        text = format_status(snapshot)
        for chat_id, message_id in list(self._panels.items()):
            if self._rendered.get(chat_id) == text:
                continue
            try:
                await self._bot.edit_message_text(
                    text=text,
                    chat_id=chat_id,
                    message_id=message_id,
                    reply_markup=kb_panel(snapshot.mode),
                )
            except TelegramBadRequest as exc:
                if "message is not modified" not in str(exc):
                    logger.warning("panel_update_failed chat_id=%s: %s", chat_id, exc)
                    self._panels.pop(chat_id, None)
                    continue
            except TelegramAPIError as exc:
                logger.warning("panel_update_failed chat_id=%s: %s", chat_id, exc)
                continue
            self._rendered[chat_id] = text


def register_panel_handlers(
    dp: Dispatcher,
    *,
    settings: Settings,
    engine: AnswerEngine,
    state: BotState,
    notifier: PanelNotifier | None = None,
    writer: Writer | None = None,
):
    def _is_admin(user_id: int) -> bool:
        return user_id in settings.admin_ids

    async def _refresh_text() -> str:
        ctx = await engine.refresh()
        if ctx is None:
            return "No active question detected."
        return f"Current question ({ctx.kind}):\n{ctx.question_text[:300]}"

    async def _manual_action(action: str) -> str:
        # operator stands in for the page in semi mode
        if writer is None:
            return "Manual submit/next is not available for this workspace."
        if action == "submit":
            await writer.submit()
            return "Answer submitted."
        await writer.advance()
        return "Moved to the next question."

    @dp.message(Command("panel"))
    async def on_panel(m: Message):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        snapshot = state.snapshot()
        sent = await m.answer(format_status(snapshot), reply_markup=kb_panel(snapshot.mode))
        if notifier is not None:
            notifier.track(m.chat.id, sent.message_id)

    @dp.message(Command("status"))
    async def on_status(m: Message):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        await m.answer(format_status(state.snapshot()))

    @dp.message(Command("run"))
    async def on_run(m: Message):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        logger.info("panel_command: start admin_id=%s", m.from_user.id)
        await engine.start()
        await m.answer("Answering started.")

    @dp.message(Command("stop"))
    async def on_stop(m: Message):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        logger.info("panel_command: stop admin_id=%s", m.from_user.id)
        await engine.stop()
        await m.answer("Stop requested.")

    @dp.message(Command("refresh"))
    async def on_refresh(m: Message):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        await m.answer(await _refresh_text())

    @dp.message(Command(commands=["submit", "next"]))
    async def on_manual_action(m: Message, command: CommandObject):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        logger.info("panel_command: %s admin_id=%s", command.command, m.from_user.id)
        action = "submit" if command.command == "submit" else "advance"
        await m.answer(await _manual_action(action))

    @dp.message(Command("mode"))
    async def on_mode(m: Message, command: CommandObject):
        if not _is_admin(m.from_user.id):
            await m.answer("Forbidden")
            return
        mode = (command.args or "").strip().lower()
        if not is_known_mode(mode):
            await m.answer(f"Usage: /mode {'|'.join(MODES)}")
            return
        state.set_mode(mode)
        await m.answer(f"Mode set to {mode}.")

    @dp.callback_query(F.data.startswith("panel:"))
    async def on_panel_action(c: CallbackQuery):
        if not _is_admin(c.from_user.id):
            await c.answer("Forbidden")
            return
        action = c.data.split(":", 1)[1]
        logger.info("panel_command: %s admin_id=%s", action, c.from_user.id)
        if action == "start":
            await engine.start()
            await c.answer("Started")
        elif action == "stop":
            await engine.stop()
            await c.answer("Stop requested")
        elif action == "refresh":
            text = await _refresh_text()
            await c.answer()
            await c.message.answer(text)
        elif action in ("submit", "next"):
            text = await _manual_action("submit" if action == "submit" else "advance")
            await c.answer(text)
        else:
            await c.answer("Unknown action")

    @dp.callback_query(F.data.startswith("mode:"))
    async def on_mode_action(c: CallbackQuery):
        if not _is_admin(c.from_user.id):
            await c.answer("Forbidden")
            return
        mode = c.data.split(":", 1)[1]
        if not is_known_mode(mode):
            await c.answer("Unknown mode")
            return
        state.set_mode(mode)
        await c.answer(f"Mode: {mode}")
