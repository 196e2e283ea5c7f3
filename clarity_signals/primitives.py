"""Rule-based scoring of canonical mental-primitive candidates from redacted text."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Set, Tuple

from .text_norm import compile_phrases, count_phrase, has_phrase, normalize_text


class CanonicalPrimitive(str, Enum):
    ATTACHMENT_TO_OUTCOME = "attachment_to_outcome"
    AVERSION_RESISTANCE = "aversion_resistance"
    IDENTITY_TIGHTENING = "identity_tightening"
    CONTROL_SEEKING = "control_seeking"
    NARRATIVE_LOOPING = "narrative_looping"
    INTOLERANCE_OF_UNCERTAINTY = "intolerance_of_uncertainty"
    SELF_JUDGEMENT = "self_judgement"
    REASSURANCE_SEEKING = "reassurance_seeking"


DOMINANT_MIN_SCORE = 70
BACKGROUND_MIN_SCORE = 45


@dataclass(frozen=True)
class PhraseRule:
    primitive: CanonicalPrimitive
    phrases: Tuple[str, ...]
    weight: int


def _rule(primitive: CanonicalPrimitive, phrases: Sequence[str], weight: int) -> PhraseRule:
    return PhraseRule(primitive=primitive, phrases=compile_phrases(phrases), weight=weight)


P = CanonicalPrimitive

STRONG_RULES: Tuple[PhraseRule, ...] = (
    _rule(P.NARRATIVE_LOOPING, ["can't stop thinking", "keep replaying", "going over and over", "stuck in my head", "spiralling", "spiraling"], 25),
    _rule(P.IDENTITY_TIGHTENING, ["it proves i'm", "it means i'm not", "not cut out for", "says something about me"], 25),
    _rule(P.ATTACHMENT_TO_OUTCOME, ["has to", "must", "need it to go well", "can't let this fail"], 20),
    _rule(P.AVERSION_RESISTANCE, ["can't face", "avoiding", "dread", "don't want to deal with"], 20),
    _rule(P.CONTROL_SEEKING, ["make sure", "prevent", "control", "cover every angle", "perfect plan"], 20),
    _rule(P.INTOLERANCE_OF_UNCERTAINTY, ["need to know", "can't stand not knowing", "until i know i can't relax"], 20),
    _rule(P.SELF_JUDGEMENT, ["i'm pathetic", "i'm useless", "what's wrong with me", "i hate myself for", "why can't i just"], 20),
    _rule(P.REASSURANCE_SEEKING, ["tell me it's ok", "am i overreacting", "is this normal"], 20),
)

MEDIUM_RULES: Tuple[PhraseRule, ...] = (
    _rule(P.NARRATIVE_LOOPING, ["should have", "if only"], 10),
    _rule(P.IDENTITY_TIGHTENING, ["always", "never", "everything", "nothing"], 10),
    _rule(P.ATTACHMENT_TO_OUTCOME, ["consequence if", "single outcome"], 15),
    _rule(P.AVERSION_RESISTANCE, ["avoiding it", "putting it off"], 10),
    _rule(P.CONTROL_SEEKING, ["contingency", "every possibility"], 10),
    _rule(P.INTOLERANCE_OF_UNCERTAINTY, ["what if", "unknowns"], 10),
    _rule(P.SELF_JUDGEMENT, ["should", "must"], 10),
    _rule(P.REASSURANCE_SEEKING, ["checking again", "ask again"], 10),
)

ANTI_RULES: Tuple[PhraseRule, ...] = (
    _rule(P.NARRATIVE_LOOPING, ["so i'll do", "plan is"], -15),
    _rule(P.IDENTITY_TIGHTENING, ["need to learn", "that meeting was messy"], -15),
    _rule(P.AVERSION_RESISTANCE, ["i'll do it anyway"], -10),
    _rule(P.CONTROL_SEEKING, ["good enough", "delegate"], -10),
    _rule(P.INTOLERANCE_OF_UNCERTAINTY, ["we'll see", "unknown is fine"], -10),
    _rule(P.SELF_JUDGEMENT, ["it's okay", "i can be kind to myself"], -10),
    _rule(P.REASSURANCE_SEEKING, ["no reassurance", "don't reassure"], -10),
)

_WHAT_IF = normalize_text("what if")
_IF_ONLY = normalize_text("if only")


@dataclass(frozen=True)
class PrimitiveCandidate:
    primitive: CanonicalPrimitive
    score: int  # 0..100
    confidence: str  # "low" | "med" | "high"
    evidence: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PrimitiveSelection:
    dominant: Tuple[CanonicalPrimitive, ...] = ()
    background: Tuple[CanonicalPrimitive, ...] = ()
    needs_confirmation: bool = False


def _confidence(score: int) -> str:
    if score >= DOMINANT_MIN_SCORE:
        return "high"
    if score >= BACKGROUND_MIN_SCORE:
        return "med"
    return "low"


def extract_candidates(redacted_text: str) -> List[PrimitiveCandidate]:
    """Score every primitive and keep those at or above the background threshold, best first."""
    t = normalize_text(redacted_text)
    scores: Dict[CanonicalPrimitive, int] = {p: 0 for p in CanonicalPrimitive}
    evidence: Dict[CanonicalPrimitive, Set[str]] = {p: set() for p in CanonicalPrimitive}
    if not t:
        return []

    for rules in (STRONG_RULES, MEDIUM_RULES, ANTI_RULES):
        for r in rules:
            for phrase in r.phrases:
                if has_phrase(t, phrase):
                    scores[r.primitive] += r.weight
                    if r.weight > 0:
                        evidence[r.primitive].add(phrase)

    # Structural repetition
    if count_phrase(t, _WHAT_IF) >= 3:
        scores[P.INTOLERANCE_OF_UNCERTAINTY] += 8
    if count_phrase(t, _IF_ONLY) >= 2:
        scores[P.NARRATIVE_LOOPING] += 8

    out: List[PrimitiveCandidate] = []
    for primitive, raw in scores.items():
        score = min(100, max(0, raw))
        if score < BACKGROUND_MIN_SCORE:
            continue
        out.append(
            PrimitiveCandidate(
                primitive=primitive,
                score=score,
                confidence=_confidence(score),
                evidence=tuple(sorted(evidence[primitive])),
            )
        )
    out.sort(key=lambda c: (-c.score, c.primitive.value))
    return out


def select_top(
    candidates: Sequence[PrimitiveCandidate],
    dominant_max: int = 2,
    background_max: int = 1,
) -> PrimitiveSelection:
    dom = [c.primitive for c in candidates if c.score >= DOMINANT_MIN_SCORE]
    bg = [c.primitive for c in candidates if BACKGROUND_MIN_SCORE <= c.score < DOMINANT_MIN_SCORE]
    chosen_dom = tuple(dom[: max(0, dominant_max)])
    chosen_bg = tuple(bg[: max(0, background_max)])
    # One confirmation question when nothing is clearly dominant.
    return PrimitiveSelection(
        dominant=chosen_dom,
        background=chosen_bg,
        needs_confirmation=(not chosen_dom and bool(chosen_bg)),
    )
