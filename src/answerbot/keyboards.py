from __future__ import annotations
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder
from .modes import MODES

def kb_panel(current_mode: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="▶️ Start", callback_data="panel:start")
    b.button(text="⏸ Stop", callback_data="panel:stop")
    b.button(text="🔄 Refresh", callback_data="panel:refresh")
    b.button(text="📤 Submit", callback_data="panel:submit")
    b.button(text="⏭ Next", callback_data="panel:next")
    for mode in MODES:
        label = mode.capitalize()
        if mode == current_mode:
            label = "✅ " + label
        b.button(text=label, callback_data=f"mode:{mode}")
    b.adjust(3, 2, 3)
    return b.as_markup()
