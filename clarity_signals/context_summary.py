"""Structured context summary built from redacted text (intent, wanted output, constraints, primitives)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .primitives import PrimitiveCandidate, extract_candidates, select_top
from .text_norm import compile_phrases, has_any, normalize_text

INTENTS = ("decide", "plan", "vent", "understand", "rehearse", "debrief", "create", "unknown")
LEVELS = ("low", "med", "high", "unknown")
HORIZONS = ("now", "today", "week", "longer", "unknown")

MAX_DESIRED_OUTPUT_TAGS = 4
MAX_CONSTRAINT_TAGS = 6
MAX_QUESTION_CHARS = 160


@dataclass(frozen=True)
class ContextSummary:
    desired_output_tags: FrozenSet[str] = frozenset()
    constraint_tags: FrozenSet[str] = frozenset()
    dominant_primitives: Tuple[str, ...] = ()
    background_primitives: Tuple[str, ...] = ()
    urgency: str = "unknown"
    stake_level: str = "unknown"
    intent_primary: str = "unknown"
    time_horizon: str = "unknown"
    confirmation_suggested: bool = False
    confirmation_question: str = ""
    candidates: Tuple[PrimitiveCandidate, ...] = field(default=(), compare=False)

    @classmethod
    def from_tags(
        cls,
        *,
        desired_output: Sequence[str] = (),
        constraints: Sequence[str] = (),
        dominant: Sequence[str] = (),
        background: Sequence[str] = (),
        urgency: str = "unknown",
        stake_level: str = "unknown",
        intent_primary: str = "unknown",
        confirmation_suggested: bool = False,
    ) -> "ContextSummary":
        """Build a summary from already-extracted tags, folding case the way the deriver expects."""
        return cls(
            desired_output_tags=frozenset(str(t).strip().lower() for t in desired_output if str(t).strip()),
            constraint_tags=frozenset(str(t).strip().lower() for t in constraints if str(t).strip()),
            dominant_primitives=tuple(str(p).strip().lower() for p in dominant),
            background_primitives=tuple(str(p).strip().lower() for p in background),
            urgency=_one_of(urgency, LEVELS),
            stake_level=_one_of(stake_level, LEVELS),
            intent_primary=_one_of(intent_primary, INTENTS),
            confirmation_suggested=bool(confirmation_suggested),
        )


def _one_of(value: str, allowed: Sequence[str]) -> str:
    v = (value or "").strip().lower()
    return v if v in allowed else "unknown"


# ---------------------------------------------------------------------------
# Phrase tables
# ---------------------------------------------------------------------------

_INTENT_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("decide", compile_phrases(["should i", "do i", "choose", "pros and cons", "either/or", "either or", "can't decide"])),
    ("plan", compile_phrases(["how do i", "steps", "plan", "timeline", "what next", "break it down"])),
    ("vent", compile_phrases(["fed up", "can't cope"])),
    ("understand", compile_phrases(["why do i", "make sense of", "pattern", "meaning"])),
    ("rehearse", compile_phrases(["what should i say", "script", "how to phrase", "meeting", "conversation"])),
    ("debrief", compile_phrases(["what happened was", "after that", "i keep thinking about what i said"])),
    ("create", compile_phrases(["draft", "write", "generate", "design"])),
)

_DESIRED_RULES: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("steps", "checklist"), compile_phrases(["step by step", "checklist", "actionable", "what next"])),
    (("options",), compile_phrases(["options", "alternatives", "ways to"])),
    (("script",), compile_phrases(["what should i say", "wording", "reply"])),
    (("summary",), compile_phrases(["summarise", "summarize", "tldr", "tl;dr"])),
    (("reframe",), compile_phrases(["another way to see it", "perspective"])),
    (("decision_tree",), compile_phrases(["decision tree", "if/then", "if then", "criteria"])),
    (("questions",), compile_phrases(["ask me questions", "question me"])),
)

_CONSTRAINT_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("time", compile_phrases(["deadline", "tomorrow", "urgent", "no time"])),
    ("energy", compile_phrases(["exhausted", "burnt out", "burned out", "can't face it"])),
    ("money", compile_phrases(["budget", "can't afford"])),
    ("social", compile_phrases([
        "awkward", "politics", "conflict", "what will they think",
        "social situation", "social situations", "socially overwhelmed", "overwhelmed socially",
        "social overwhelm", "socially draining", "socially drained", "draining socially",
        "crowds", "too many people", "group dynamics", "social dynamics", "being watched", "being observed",
    ])),
    ("sensory", compile_phrases([
        "noisy", "bright", "overwhelming", "overstimulated", "overstimulating",
        "sensory overload", "overloaded",
    ])),
    ("dependencies", compile_phrases(["waiting on", "blocked", "need approval"])),
    ("legal", compile_phrases(["legal"])),
    ("information", compile_phrases(["lack of info", "no information", "missing info", "don't know enough"])),
)

_STAKE_RULES = (
    ("high", compile_phrases(["career-ending", "catastrophic", "cannot fail", "must not fail"])),
    ("med", compile_phrases(["important", "matters a lot"])),
    ("low", compile_phrases(["not a big deal", "minor"])),
)

_URGENCY_RULES = (
    ("high", compile_phrases(["urgent", "asap", "right now", "today"])),
    ("med", compile_phrases(["soon", "this week"])),
    ("low", compile_phrases(["no rush", "whenever"])),
)

_HORIZON_RULES = (
    ("now", compile_phrases(["right now", "immediately", "now"])),
    ("today", compile_phrases(["today"])),
    ("week", compile_phrases(["this week", "next week"])),
    ("longer", compile_phrases(["this month", "later this year", "long term", "long-term", "longer term"])),
)


def _first_match(t: str, rules) -> str:
    for value, phrases in rules:
        if has_any(t, phrases):
            return value
    return "unknown"


def infer_desired_outputs(t: str) -> List[str]:
    out: List[str] = []
    for tags, phrases in _DESIRED_RULES:
        if has_any(t, phrases):
            for tag in tags:
                if tag not in out:
                    out.append(tag)
    return out[:MAX_DESIRED_OUTPUT_TAGS]


def infer_constraints(t: str) -> List[str]:
    out = [tag for tag, phrases in _CONSTRAINT_RULES if has_any(t, phrases)]
    return out[:MAX_CONSTRAINT_TAGS]


def confirmation_question(dominant: Sequence[str], background: Sequence[str]) -> str:
    if dominant:
        q = f"Does {dominant[0].replace('_', ' ')} fit today, or is it something else?"
    elif background:
        q = f"Is {background[0].replace('_', ' ')} showing up here?"
    else:
        return ""
    return q[:MAX_QUESTION_CHARS]


def build_context_summary(redacted_text: str, candidates: Optional[Sequence[PrimitiveCandidate]] = None) -> ContextSummary:
    """Summarise one redacted entry: intent/output/constraint tags plus selected primitives."""
    t = normalize_text(redacted_text)
    if candidates is None:
        candidates = extract_candidates(redacted_text)
    selection = select_top(candidates)
    dominant = tuple(p.value for p in selection.dominant)
    background = tuple(p.value for p in selection.background)
    return ContextSummary(
        desired_output_tags=frozenset(infer_desired_outputs(t)),
        constraint_tags=frozenset(infer_constraints(t)),
        dominant_primitives=dominant,
        background_primitives=background,
        urgency=_first_match(t, _URGENCY_RULES),
        stake_level=_first_match(t, _STAKE_RULES),
        intent_primary=_first_match(t, _INTENT_RULES),
        time_horizon=_first_match(t, _HORIZON_RULES),
        confirmation_suggested=selection.needs_confirmation,
        confirmation_question=confirmation_question(dominant, background) if selection.needs_confirmation else "",
        candidates=tuple(candidates),
    )
