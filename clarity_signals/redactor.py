"""Structural PII redaction (email, phone, UK banking/tax ids, cards) plus custom terms.

Detectors only ever run over the original input. Overlaps are resolved by a
fixed precedence table before anything is replaced, and replacement happens in
a single left-to-right pass.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import CARD_CONTEXT_WINDOW, REDACTION_DEBUG
from .interval_matcher import choose_non_overlapping, spans_overlap


class MatchKind(IntEnum):
    # Higher value wins an overlap.
    CUSTOM = 10
    VAT = 20
    UTR = 21
    NINO = 22
    POSTCODE = 23
    SORTCODE = 24
    PHONE = 25
    ACCOUNT = 26
    CARD_MAYBE = 27
    CARD = 28
    BIC = 29
    IBAN = 30
    EMAIL = 31

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    MatchKind.EMAIL: "[EMAIL]",
    MatchKind.PHONE: "[PHONE]",
    MatchKind.POSTCODE: "[POSTCODE]",
    MatchKind.IBAN: "[IBAN]",
    MatchKind.BIC: "[BIC]",
    MatchKind.SORTCODE: "[SORTCODE]",
    MatchKind.ACCOUNT: "[ACCOUNT]",
    MatchKind.CARD: "[CARD]",
    MatchKind.CARD_MAYBE: "[CARD?]",
    MatchKind.NINO: "[NINO]",
    MatchKind.UTR: "[UTR]",
    MatchKind.VAT: "[VAT]",
    MatchKind.CUSTOM: "[CUSTOM]",
}


@dataclass(frozen=True)
class RedactionMatch:
    start: int
    end: int
    kind: MatchKind

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    @property
    def replacement_label(self) -> str:
        return self.kind.label


@dataclass(frozen=True)
class RedactionResult:
    redacted_text: str
    did_redact: bool


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_I = re.IGNORECASE

_EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", _I)

# International: +CC or 00CC followed by at least three digit groups.
_PHONE_INTL_RE = re.compile(r"(?<![\w+])(?:\+|00)\d{1,3}(?:[\s-]?\(?\d{1,4}\)?){3,}(?<=\d)(?!\d)")
_PHONE_UK_MOBILE_RE = re.compile(r"(?<![\w+])(?:\+44\s?7\d{3}|\(?07\d{3}\)?)\s?\d{3}\s?\d{3}\b")

_POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?)\s?(\d[A-Z]{2})\b", _I)

_IBAN_RE = re.compile(r"\b[A-Z]{2}\d{2}[A-Z0-9]{11,30}\b", _I)
_IBAN_SPACED_RE = re.compile(r"\b[A-Z]{2}\d{2}(?:[\s-]?[A-Z0-9]){11,40}\b", _I)

_SORTCODE_LABELLED_RE = re.compile(
    r"\b(sort\s*code|s/c)\s*(?:is|:)?\s*(\d{2}[-\s]?\d{2}[-\s]?\d{2})\b", _I
)
_SORTCODE_BARE_RE = re.compile(r"\b\d{2}[-\s]\d{2}[-\s]\d{2}\b")

_ACCOUNT_LABELLED_RE = re.compile(
    r"\b((?:bank\s*)?account(?:\s*(?:number|no\.?|#))?"
    r"|acc(?:ount)?(?:\s*(?:number|no\.?|#))?"
    r"|acct(?:\.|ount)?(?:\s*(?:number|no\.?|#))?"
    r"|a/c)"
    r"\s*(?:is|:)?\s*([0-9](?:[0-9\s-]{3,}[0-9])?)\b",
    _I,
)

_NINO_RE = re.compile(r"\b[A-CEGHJ-PR-TW-Z]{2}\d{6}[A-D]\b", _I)

_UTR_RE = re.compile(r"\b(utr|unique\s*taxpayer\s*reference)\s*(?:is|:)?\s*(\d{10})\b", _I)
_VAT_RE = re.compile(r"\b(vat\s*(?:number|no\.?|#))\s*(?:is|:)?\s*(?:GB)?\s*(\d{9}(?:\d{3})?)\b", _I)

_BIC_LABELLED_RE = re.compile(
    r"\b(?:bic|swift)(?:\s*code)?\s*(?:is|:)?\s*([A-Z0-9](?:[A-Z0-9\s-]{6,}[A-Z0-9])?)\b", _I
)

_CARD_RE = re.compile(r"\b(?:\d[ -]*?){13,19}\b")

_CARD_KEYWORDS = (
    "card", "debit", "credit", "visa", "mastercard", "amex", "american express",
    "cvv", "cvc", "expiry", "expiration", "exp date",
)

_ALNUM_TOKEN_RE = re.compile(r"[A-Za-z0-9]+")

_PLACEHOLDER_RE = re.compile("|".join(re.escape(label) for label in _LABELS.values()))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _alnum_upper(s: str) -> str:
    return "".join(ch for ch in s if ch.isalnum()).upper()


def luhn_valid(digits: Sequence[int]) -> bool:
    """Mod-10 checksum, doubling every second digit from the right."""
    if not digits:
        return False
    total = 0
    for i, d in enumerate(reversed(digits)):
        n = d
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def _spans(rx: "re.Pattern[str]", text: str, group: int = 0) -> List[Tuple[int, int]]:
    out: List[Tuple[int, int]] = []
    for m in rx.finditer(text):
        start, end = m.span(group)
        if start < 0 or end <= start:
            continue
        out.append((start, end))
    return out


def _matches(rx: "re.Pattern[str]", text: str, kind: MatchKind, group: int = 0) -> List[RedactionMatch]:
    return [RedactionMatch(s, e, kind) for s, e in _spans(rx, text, group)]


def _looks_like_iban(cleaned: str) -> bool:
    if not (15 <= len(cleaned) <= 34):
        return False
    if not (cleaned[:2].isalpha() and cleaned[2:4].isdigit() and cleaned.isalnum()):
        return False
    # BBAN tails are mostly digits; ordinary words are not.
    tail = cleaned[4:]
    return 2 * sum(ch.isdigit() for ch in tail) > len(tail)


def _iban_spaced_matches(text: str) -> List[RedactionMatch]:
    out: List[RedactionMatch] = []
    for start, end in _spans(_IBAN_SPACED_RE, text):
        snippet = text[start:end]
        tokens = list(_ALNUM_TOKEN_RE.finditer(snippet))
        # Trailing words picked up by the separator-tolerant pattern are not part of the number.
        while len(tokens) > 1 and not any(ch.isdigit() for ch in tokens[-1].group(0)):
            tokens.pop()
        if not tokens:
            continue
        trimmed_end = start + tokens[-1].end()
        if _looks_like_iban(_alnum_upper(text[start:trimmed_end])):
            out.append(RedactionMatch(start, trimmed_end, MatchKind.IBAN))
    return out


def _account_matches(text: str) -> List[RedactionMatch]:
    out: List[RedactionMatch] = []
    for start, end in _spans(_ACCOUNT_LABELLED_RE, text, group=2):
        digits = sum(1 for ch in text[start:end] if ch.isdecimal())
        if 6 <= digits <= 12:
            out.append(RedactionMatch(start, end, MatchKind.ACCOUNT))
    return out


def _is_bic_shape(cleaned: str) -> bool:
    # AAAA BB CC (DDD): bank code and country code are letters.
    return len(cleaned) in (8, 11) and cleaned[:6].isalpha()


def _is_bic_candidate(raw: str, n_tokens: int) -> bool:
    """Shape check plus evidence it is a code: written in capitals, or a single token with a digit in the location part."""
    cleaned = raw.upper()
    if not _is_bic_shape(cleaned):
        return False
    if raw == cleaned:
        return True
    return n_tokens == 1 and any(ch.isdigit() for ch in cleaned[6:8])


def _bic_matches(text: str) -> List[RedactionMatch]:
    out: List[RedactionMatch] = []
    for start, end in _spans(_BIC_LABELLED_RE, text, group=1):
        snippet = text[start:end]
        best_end: Optional[int] = None
        raw = ""
        for n, tok in enumerate(_ALNUM_TOKEN_RE.finditer(snippet), 1):
            raw += tok.group(0)
            if len(raw) > 11:
                break
            if _is_bic_candidate(raw, n):
                best_end = start + tok.end()
        if best_end is not None:
            out.append(RedactionMatch(start, best_end, MatchKind.BIC))
    return out


def _has_card_context(text: str, start: int, end: int, window: int) -> bool:
    lo = max(0, start - window)
    hi = min(len(text), end + window)
    context = text[lo:hi].lower()
    return any(k in context for k in _CARD_KEYWORDS)


def _card_matches(text: str, window: int) -> List[RedactionMatch]:
    out: List[RedactionMatch] = []
    for start, end in _spans(_CARD_RE, text):
        digits = [int(ch) for ch in text[start:end] if ch.isdecimal()]
        if not (13 <= len(digits) <= 19):
            continue
        if luhn_valid(digits):
            out.append(RedactionMatch(start, end, MatchKind.CARD))
        elif _has_card_context(text, start, end, window):
            out.append(RedactionMatch(start, end, MatchKind.CARD_MAYBE))
    return out


def structural_matches(text: str, *, card_window: int = CARD_CONTEXT_WINDOW) -> List[RedactionMatch]:
    """All structural/contextual detector hits on `text`, overlapping and unresolved."""
    out: List[RedactionMatch] = []
    out += _matches(_EMAIL_RE, text, MatchKind.EMAIL)
    out += _matches(_PHONE_INTL_RE, text, MatchKind.PHONE)
    out += _matches(_PHONE_UK_MOBILE_RE, text, MatchKind.PHONE)
    out += _matches(_POSTCODE_RE, text, MatchKind.POSTCODE)
    out += _matches(_IBAN_RE, text, MatchKind.IBAN)
    out += _iban_spaced_matches(text)
    out += _matches(_SORTCODE_LABELLED_RE, text, MatchKind.SORTCODE, group=2)
    out += _matches(_SORTCODE_BARE_RE, text, MatchKind.SORTCODE)
    out += _account_matches(text)
    out += _matches(_NINO_RE, text, MatchKind.NINO)
    out += _matches(_UTR_RE, text, MatchKind.UTR, group=2)
    out += _matches(_VAT_RE, text, MatchKind.VAT, group=2)
    out += _bic_matches(text)
    out += _card_matches(text, card_window)
    return out


def resolve_overlaps(candidates: Sequence[RedactionMatch]) -> List[RedactionMatch]:
    return choose_non_overlapping(
        candidates,
        span_of=lambda m: m.span,
        priority_of=lambda m: int(m.kind),
    )


def _clean_terms(terms: Iterable[str]) -> List[str]:
    cleaned = [str(t or "").strip() for t in terms]
    return sorted((t for t in cleaned if t), key=len, reverse=True)


def custom_matches(
    text: str,
    terms: Iterable[str],
    occupied: Sequence[RedactionMatch] = (),
) -> List[RedactionMatch]:
    """Whole-word, case-insensitive hits for user terms outside `occupied` spans."""
    ordered = _clean_terms(terms)
    if not ordered:
        return []

    blocked = [m.span for m in occupied]
    blocked += _spans(_PLACEHOLDER_RE, text)

    out: List[RedactionMatch] = []
    for term in ordered:
        rx = re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)", _I)
        for span in _spans(rx, text):
            if any(spans_overlap(span, b) for b in blocked):
                continue
            out.append(RedactionMatch(span[0], span[1], MatchKind.CUSTOM))
    return out


def apply_matches(text: str, matches: Sequence[RedactionMatch]) -> Tuple[str, bool]:
    if not matches:
        return text, False

    cursor = 0
    parts: List[str] = []
    for m in matches:
        if m.start < cursor:
            continue
        if cursor < m.start:
            parts.append(text[cursor:m.start])
        parts.append(m.replacement_label)
        cursor = m.end
    if cursor < len(text):
        parts.append(text[cursor:])
    return "".join(parts), True


def find_matches(text: str, custom_terms: Optional[Iterable[str]] = None) -> List[RedactionMatch]:
    """Accepted, non-overlapping matches in start order."""
    if not text:
        return []
    chosen = resolve_overlaps(structural_matches(text))
    terms = _clean_terms(custom_terms or [])
    if terms:
        chosen = resolve_overlaps(chosen + custom_matches(text, terms, occupied=chosen))
    return chosen


def redact(text: str, custom_terms: Optional[Iterable[str]] = None) -> RedactionResult:
    if not text:
        return RedactionResult(redacted_text=text or "", did_redact=False)
    try:
        out, did = apply_matches(text, find_matches(text, custom_terms))
    except Exception as e:
        # Never hand back a partial redaction.
        if REDACTION_DEBUG:
            print(f"[redactor] redact failed: {type(e).__name__}")
        return RedactionResult(redacted_text=text, did_redact=False)
    return RedactionResult(redacted_text=out, did_redact=did)


class Redactor:
    """Redactor bound to a user's custom term list."""

    def __init__(self, terms: Optional[Iterable[str]] = None):
        self.terms: List[str] = list(terms or [])

    def redact(self, text: str) -> RedactionResult:
        return redact(text, self.terms)
