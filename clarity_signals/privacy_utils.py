"""Shared helpers for privacy-safe logging and previews."""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional

from .redactor import redact


def short_hash(text: str) -> str:
    raw = str(text or "")
    return hashlib.sha256(raw.encode("utf-8", errors="ignore")).hexdigest()[:12]


def contains_likely_pii(text: str, custom_terms: Optional[Iterable[str]] = None) -> bool:
    s = str(text or "")
    if not s:
        return False
    return redact(s, custom_terms).did_redact


def safe_preview(text: str, max_len: int = 220, custom_terms: Optional[Iterable[str]] = None) -> str:
    s = redact(str(text or ""), custom_terms).redacted_text.replace("\n", " ").strip()
    if len(s) > max_len:
        return s[: max(0, max_len - 3)].rstrip() + "..."
    return s
