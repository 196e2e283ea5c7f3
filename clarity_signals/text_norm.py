"""Text folding and whole-token phrase matching for the rule tables."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Sequence, Tuple

_APOSTROPHES = "'’‘`ʼ"
_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lower-case, strip diacritics, drop apostrophes, turn the rest of the punctuation into spaces.

    "I can't face Mañjuśrī, OK?" -> "i cant face manjusri ok"
    """
    s = unicodedata.normalize("NFKD", str(text or ""))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.casefold()
    for a in _APOSTROPHES:
        s = s.replace(a, "")
    s = "".join(ch if ch.isalnum() else " " for ch in s)
    return _WS_RE.sub(" ", s).strip()


def compile_phrases(phrases: Iterable[str]) -> Tuple[str, ...]:
    """Normalize a phrase list once, dropping empties and duplicates but keeping order."""
    out = []
    for p in phrases:
        n = normalize_text(p)
        if n and n not in out:
            out.append(n)
    return tuple(out)


def has_phrase(norm_text: str, phrase: str) -> bool:
    if not norm_text or not phrase:
        return False
    return f" {phrase} " in f" {norm_text} "


def has_any(norm_text: str, phrases: Sequence[str]) -> bool:
    padded = f" {norm_text} "
    return any(f" {p} " in padded for p in phrases if p)


def count_phrase(norm_text: str, phrase: str) -> int:
    if not norm_text or not phrase:
        return 0
    return len(re.findall(r"(?<!\S)" + re.escape(phrase) + r"(?!\S)", norm_text))
