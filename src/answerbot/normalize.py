from __future__ import annotations
import re
import unicodedata

_QUOTE_MAP = {
    "’": "'",
    "‘": "'",
    "“": "\"",
    "”": "\"",
}

_ANSWER_LABEL = re.compile(r"^answer\s*:?", re.IGNORECASE)

def norm_question_text(s: str) -> str:
    return (s or "").strip().lower()

def question_fingerprint(kind: str, question_text: str) -> str:
    normalized = norm_question_text(question_text)
    if not normalized:
        return ""
    return f"{kind}::{normalized}"

def strip_answer_label(s: str) -> str:
    s = (s or "").strip()
    s = _ANSWER_LABEL.sub("", s, count=1)
    return s.strip()

def _nfkc_normalize(s: str) -> str:
    if not s:
        return ""
    s = unicodedata.normalize("NFKC", s)
    for src, dst in _QUOTE_MAP.items():
        s = s.replace(src, dst)
    return s

def norm_text(s: str) -> str:
    s = _nfkc_normalize(s or "")
    s = s.strip()
    s = re.sub(r"\s+", " ", s)
    return s

def norm_cmp_text(s: str) -> str:
    # letters and digits only, casefolded; used to grade scripted answers
    normalized = norm_text(s)
    cleaned = []
    for ch in normalized:
        category = unicodedata.category(ch)
        if category.startswith("L") or category.startswith("N"):
            cleaned.append(ch)
        elif ch in "+-=<>/.":
            cleaned.append(ch)
    return "".join(cleaned).strip(".").casefold()
