from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

from .modes import MODE_SEMI, MODES

load_dotenv()

DEFAULT_MODEL = "gemini-3-flash-preview"

def _split_csv_ints(s: str) -> List[int]:
    out = []
    for part in (s or "").split(","):
        part = part.strip()
        if part:
            out.append(int(part))
    return out

def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number") from None

@dataclass(frozen=True)
class Settings:
    gemini_api_key: str
    llm_model: str = DEFAULT_MODEL
    llm_timeout_sec: float = 30.0
    default_mode: str = MODE_SEMI  # instant|semi|delayed
    token_cost_per_1k: float = 0.09
    bot_token: str | None = None
    admin_ids: List[int] = field(default_factory=list)
    workspace_script: str | None = None

def load_settings(*, require_bot: bool = True) -> Settings:
    load_dotenv()
    gemini_api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not gemini_api_key:
        raise RuntimeError("GOOGLE_API_KEY or GEMINI_API_KEY is required")

    bot_token = os.getenv("BOT_TOKEN") or None
    try:
        admin_ids = _split_csv_ints(os.getenv("ADMIN_IDS", ""))
    except ValueError:
        raise RuntimeError("ADMIN_IDS must be comma-separated integers") from None
    if require_bot:
        if not bot_token:
            raise RuntimeError("BOT_TOKEN is required")
        if not admin_ids:
            raise RuntimeError("ADMIN_IDS is required (comma-separated Telegram user ids)")

    llm_model = os.getenv("LLM_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL
    default_mode = os.getenv("ANSWER_MODE", MODE_SEMI).strip().lower()
    if default_mode not in MODES:
        raise RuntimeError("ANSWER_MODE must be instant, semi, or delayed")

    return Settings(
        gemini_api_key=gemini_api_key,
        llm_model=llm_model,
        llm_timeout_sec=_float_env("LLM_TIMEOUT_SEC", 30.0),
        default_mode=default_mode,
        token_cost_per_1k=_float_env("TOKEN_COST_PER_1K", 0.09),
        bot_token=bot_token,
        admin_ids=admin_ids,
        workspace_script=os.getenv("WORKSPACE_SCRIPT") or None,
    )
