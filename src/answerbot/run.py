import asyncio
import contextlib
import logging
import random
from pathlib import Path

from aiogram import Bot, Dispatcher

from .config import Settings, load_settings
from .engine.runner import AnswerEngine, EngineTimings
from .engine.solver import AnswerSolver
from .engine.types import Reader, Writer
from .llm import GeminiModelService
from .panel import PanelNotifier, register_panel_handlers
from .state import BotState
from .workspace import ScriptedWorkspace, load_script

logger = logging.getLogger(__name__)

def build_state(settings: Settings) -> BotState:
    return BotState(mode=settings.default_mode, token_cost_per_1k=settings.token_cost_per_1k)

def build_engine(
    settings: Settings,
    *,
    state: BotState,
    reader: Reader,
    writer: Writer,
    timings: EngineTimings | None = None,
    rng: random.Random | None = None,
) -> AnswerEngine:
    model = GeminiModelService(
        api_key=settings.gemini_api_key,
        model=settings.llm_model,
        timeout_sec=settings.llm_timeout_sec,
        on_usage=state.record_token_usage,
    )
    return AnswerEngine(
        reader=reader,
        writer=writer,
        state=state,
        solver=AnswerSolver(model=model),
        timings=timings,
        rng=rng,
    )

async def _notify_admins(bot: Bot, admin_ids: list[int], message: str) -> None:
    chunk_size = 4000
    chunks = [message[i : i + chunk_size] for i in range(0, len(message), chunk_size)] or [message]
    for admin_id in admin_ids:
        for chunk in chunks:
            await bot.send_message(admin_id, chunk)

async def shutdown(engine: AnswerEngine | None, notifier_task: asyncio.Task | None) -> None:
    if engine is not None:
        await engine.stop()
        await engine.join()
    if notifier_task is not None:
        notifier_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await notifier_task

async def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()
    if not settings.workspace_script:
        raise RuntimeError("WORKSPACE_SCRIPT is required")
    bot = Bot(settings.bot_token)
    engine = None
    notifier_task = None
    try:
        workspace = ScriptedWorkspace(load_script(Path(settings.workspace_script)))
        state = build_state(settings)
        engine = build_engine(settings, state=state, reader=workspace, writer=workspace)
        notifier = PanelNotifier(bot)
        state.subscribe(notifier)
        notifier_task = asyncio.create_task(notifier.run())

        dp = Dispatcher()
        register_panel_handlers(
            dp,
            settings=settings,
            engine=engine,
            state=state,
            notifier=notifier,
            writer=workspace,
        )
        await dp.start_polling(bot)
    except Exception as exc:
        logger.exception("bot_run_failed")
        try:
            await _notify_admins(bot, settings.admin_ids, f"Answer bot error detected:\n\n{exc!r}")
        except Exception:
            logger.exception("failed_to_notify_admins")
        raise
    finally:
        await shutdown(engine, notifier_task)
        await bot.session.close()

if __name__ == "__main__":
    asyncio.run(main())
