from __future__ import annotations

import json
import re
import sys
import unicodedata


_NON_ALNUM_SPACE_RE = re.compile(r"[^a-z0-9 ]+")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(s: str) -> str:
    """
    Normalize text for fuzzy matching:
    - unicode normalize (NFKD)
    - strip diacritics (ä -> a, ß -> ss)
    - lowercase
    - remove punctuation
    - collapse whitespace
    """
    if s is None:
        return ""
    s = str(s)
    s = s.replace("ß", "ss").replace("ẞ", "SS")
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.lower()
    s = s.replace("-", " ").replace("_", " ")
    s = _NON_ALNUM_SPACE_RE.sub(" ", s)
    s = _WHITESPACE_RE.sub(" ", s).strip()
    return s


def normalize_message(s: str | None) -> str:
    """
    Light normalization for intent checks (ping, greetings, keywords):
    trim, lowercase, collapse internal whitespace. Punctuation is kept.
    """
    if not s:
        return ""
    return _WHITESPACE_RE.sub(" ", str(s)).strip().lower()


def question_key(question: str) -> str:
    """De-duplication key for stored questions (case/whitespace-insensitive)."""
    return normalize_message(question)


def _trace(enabled: bool, event: str, payload: dict) -> None:
    """
    Lightweight structured tracing to stderr.
    No-op when disabled.
    """
    if not enabled:
        return
    print(
        f"[trace] {event} {json.dumps(payload, ensure_ascii=False, default=str)}",
        file=sys.stderr,
    )
