import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path

from dotenv import load_dotenv

from answerbot.config import Settings, load_settings
from answerbot.modes import MODE_DELAYED, MODE_INSTANT
from answerbot.run import build_engine
from answerbot.state import BotState
from answerbot.workspace import ScriptedWorkspace, load_script

logger = logging.getLogger(__name__)


async def _run(args: argparse.Namespace, settings: Settings, workspace: ScriptedWorkspace) -> int:
    state = BotState(mode=args.mode, token_cost_per_1k=settings.token_cost_per_1k)
    rng = random.Random(args.seed)
    engine = build_engine(settings, state=state, reader=workspace, writer=workspace, rng=rng)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + args.max_seconds
    await engine.start()
    try:
        while not workspace.exhausted and loop.time() < deadline:
            if args.n and state.snapshot().answered_count >= args.n:
                break
            await asyncio.sleep(0.2)
    finally:
        await engine.stop()
        await engine.join()
    snapshot = state.snapshot()
    summary = {
        "answered": snapshot.answered_count,
        "correct": snapshot.correct_count,
        "retries": snapshot.retry_count,
        "last_error": snapshot.last_error,
        "total_tokens": snapshot.total_tokens,
        "cost_spent": round(snapshot.cost_spent, 6),
        "remembered": len(state.memory),
        "timed_out": loop.time() >= deadline,
    }
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    logger.info(
        "Dry run completed (answered=%s, correct=%s, retries=%s)",
        snapshot.answered_count,
        snapshot.correct_count,
        snapshot.retry_count,
    )
    return 2 if summary["timed_out"] else 0


def main(argv: list[str]) -> int:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    parser = argparse.ArgumentParser(description="Run the answer engine against a JSON question script")
    parser.add_argument("--script", required=True)
    parser.add_argument("--mode", choices=[MODE_INSTANT, MODE_DELAYED], default=MODE_INSTANT)
    parser.add_argument("--n", type=int, default=0, help="stop after this many answered questions (0 = all)")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--max-seconds", type=float, default=600.0)
    args = parser.parse_args(argv)

    try:
        settings = load_settings(require_bot=False)
    except RuntimeError as exc:
        print(f"ERROR: {exc}")
        return 1
    try:
        questions = load_script(Path(args.script))
    except (OSError, ValueError) as exc:
        print(f"ERROR: cannot load script {args.script}: {exc}")
        return 1
    logger.info("Dry run starting (model=%s, questions=%s, mode=%s)", settings.llm_model, len(questions), args.mode)
    return asyncio.run(_run(args, settings, ScriptedWorkspace(questions)))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
