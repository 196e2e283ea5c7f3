"""Observation derivation: context summary (+ optional redacted text) -> bounded signals.

Pure and deterministic. Text rules only ever see already-redacted text and only
emit keys drawn from the fixed tables in `observation_rules`; no free text from
the entry ever becomes a key.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from . import observation_rules as R
from .config import (
    OBS_DHARMA_MAX,
    OBS_MAX_PER_ENTRY,
    OBS_PROFILE_MAX,
    OBS_RESERVE_DOMAIN,
    OBS_RESERVE_PROFILE,
    OBS_SITUATIONAL_MAX,
)
from .context_summary import ContextSummary
from .text_norm import has_any, normalize_text


class ObservationKind(Enum):
    STYLE_PREFERENCE = 1
    WORKFLOW_PREFERENCE = 2
    CONSTRAINTS_SENSITIVITY = 3
    CONSTRAINT_TRIGGER = 4
    RELEASE_PATTERN = 5
    NARRATIVE_PATTERN = 6
    CONTRACTION_PATTERN = 7
    RESOLUTION_PATTERN = 8
    LENS_PREFERENCE = 9
    TOPIC_RECURRENCE = 10


K = ObservationKind


# Persistence/wire names. Only this table turns kinds into strings and back.
KIND_TO_RAW: Dict[ObservationKind, str] = {
    K.STYLE_PREFERENCE: "style_preference",
    K.WORKFLOW_PREFERENCE: "workflow_preference",
    K.CONSTRAINTS_SENSITIVITY: "constraints_sensitivity",
    K.CONSTRAINT_TRIGGER: "constraint_trigger",
    K.RELEASE_PATTERN: "release_pattern",
    K.NARRATIVE_PATTERN: "narrative_pattern",
    K.CONTRACTION_PATTERN: "contraction_pattern",
    K.RESOLUTION_PATTERN: "resolution_pattern",
    K.LENS_PREFERENCE: "lens_preference",
    K.TOPIC_RECURRENCE: "topic_recurrence",
}
RAW_TO_KIND: Dict[str, ObservationKind] = {raw: kind for kind, raw in KIND_TO_RAW.items()}


def kind_to_raw(kind: ObservationKind) -> str:
    return KIND_TO_RAW[kind]


def kind_from_raw(raw: str) -> ObservationKind:
    try:
        return RAW_TO_KIND[raw]
    except KeyError:
        raise ValueError(f"unknown observation kind: {raw!r}") from None


@dataclass(frozen=True)
class Observation:
    kind: ObservationKind
    key: str
    strength: float  # [-1, 1]; negative means the signal no longer applies

    @property
    def pair(self) -> Tuple[ObservationKind, str]:
        return (self.kind, self.key)


# Output ordering: deactivations first, then this table.
KIND_PRIORITY: Dict[ObservationKind, int] = {
    K.CONSTRAINT_TRIGGER: 0,
    K.WORKFLOW_PREFERENCE: 1,
    K.STYLE_PREFERENCE: 2,
    K.CONSTRAINTS_SENSITIVITY: 3,
    K.RESOLUTION_PATTERN: 4,
    K.NARRATIVE_PATTERN: 5,
    K.CONTRACTION_PATTERN: 6,
    K.RELEASE_PATTERN: 7,
    K.LENS_PREFERENCE: 8,
    K.TOPIC_RECURRENCE: 9,
}


def _order_key(o: Observation):
    rank = -1 if o.strength < 0 else KIND_PRIORITY[o.kind]
    return (rank, -abs(o.strength), o.key)


def budget_group(o: Observation) -> str:
    """'profile', 'domain' (prefixed topic keys such as dharma:*), or 'other'."""
    if o.kind is K.TOPIC_RECURRENCE and o.key.startswith("profile:"):
        return "profile"
    if o.kind is K.TOPIC_RECURRENCE and ":" in o.key:
        return "domain"
    return "other"


class DeriverValves(BaseModel):
    max_per_entry: int = Field(default=OBS_MAX_PER_ENTRY, description="Hard cap on observations emitted per entry.")
    reserve_profile: int = Field(default=OBS_RESERVE_PROFILE, description="Slots held for profile:* topics.")
    reserve_domain: int = Field(default=OBS_RESERVE_DOMAIN, description="Slots held for domain topics (dharma:*).")
    situational_max: int = Field(default=OBS_SITUATIONAL_MAX, description="Max situational triggers per entry.")
    profile_max: int = Field(default=OBS_PROFILE_MAX, description="Max profile topics per entry.")
    dharma_max: int = Field(default=OBS_DHARMA_MAX, description="Max dharma topics per entry.")


# ---------------------------------------------------------------------------
# Summary-driven rules
# ---------------------------------------------------------------------------

def summary_observations(summary: ContextSummary) -> List[Observation]:
    out: List[Observation] = []
    desired = summary.desired_output_tags
    constraints = summary.constraint_tags
    dom = set(summary.dominant_primitives)
    bg = set(summary.background_primitives)
    stepwise = "steps" in desired or "checklist" in desired

    # Style: format + density
    for tags, key, strength in R.DESIRED_OUTPUT_STYLE:
        if any(t in desired for t in tags):
            out.append(Observation(K.STYLE_PREFERENCE, key, strength))
    if "summary" in desired and stepwise:
        out.append(Observation(K.STYLE_PREFERENCE, "prefers_tldr_then_detail", 0.6))
    elif "summary" in desired:
        out.append(Observation(K.STYLE_PREFERENCE, "prefers_brief", 0.5))
    if summary.urgency == "high" or summary.stake_level == "high" or "time" in constraints:
        out.append(Observation(K.STYLE_PREFERENCE, "prefers_no_fluff", 0.4))

    # Workflow: conversation control
    if "options" in desired:
        out.append(Observation(K.WORKFLOW_PREFERENCE, "options_first", 0.6))
    if summary.confirmation_suggested:
        out.append(Observation(K.WORKFLOW_PREFERENCE, "prefers_confirm_then_execute", 0.4))
    elif desired & {"steps", "options", "summary"} and "questions" not in desired:
        out.append(Observation(K.WORKFLOW_PREFERENCE, "prefers_execute_immediately", 0.3))
        out.append(Observation(K.WORKFLOW_PREFERENCE, "prefers_few_questions", 0.3))
        if "summary" in desired:
            out.append(Observation(K.WORKFLOW_PREFERENCE, "prefers_just_answer", 0.3))

    # Resolution: how to proceed, never identity
    if constraints:
        out.append(Observation(K.RESOLUTION_PATTERN, "constraints_first", 0.5))
    if summary.intent_primary == "decide" and "intolerance_of_uncertainty" in (dom | bg):
        out.append(Observation(K.RESOLUTION_PATTERN, "decision_stuck", 0.6))
    if summary.intent_primary == "vent" and "energy" in constraints:
        out.append(Observation(K.RESOLUTION_PATTERN, "needs_decompression", 0.6))
    if len(constraints) >= 3:
        out.append(Observation(K.RESOLUTION_PATTERN, "complexity_high", 0.5))
    if "reframe" in desired and stepwise:
        out.append(Observation(K.RESOLUTION_PATTERN, "prefers_reframe_then_steps", 0.5))

    # Low per-mention strength so one mention never surfaces on its own.
    for tag in sorted(constraints):
        key = R.CONSTRAINT_SENSITIVITY.get(tag)
        if key:
            out.append(Observation(K.CONSTRAINTS_SENSITIVITY, key, R.CONSTRAINT_SENSITIVITY_STRENGTH))

    for table, kind in ((R.NARRATIVE_KEYS, K.NARRATIVE_PATTERN), (R.CONTRACTION_KEYS, K.CONTRACTION_PATTERN)):
        for prim, key in table:
            if prim in dom:
                out.append(Observation(kind, key, R.DOMINANT_PRIMITIVE_STRENGTH))
            elif prim in bg:
                out.append(Observation(kind, key, R.BACKGROUND_PRIMITIVE_STRENGTH))

    return out


# ---------------------------------------------------------------------------
# Text-driven rules (redacted text only)
# ---------------------------------------------------------------------------

def deactivation_observations(t: str) -> List[Observation]:
    if not has_any(t, R.DEACTIVATION_MARKERS):
        return []
    out: List[Observation] = []
    for raw_kind, key, phrases in R.STICKY_DEACTIVATION_TARGETS:
        if has_any(t, phrases):
            out.append(Observation(kind_from_raw(raw_kind), key, R.DEACTIVATION_STRENGTH))
    return out


def release_observations(t: str) -> List[Observation]:
    return [Observation(K.RELEASE_PATTERN, key, s) for key, s, phrases in R.RELEASE_RULES if has_any(t, phrases)]


def situational_observations(t: str, limit: int) -> List[Observation]:
    out = [
        Observation(K.CONSTRAINT_TRIGGER, key, R.SITUATIONAL_STRENGTH)
        for key, phrases in R.SITUATIONAL_TRIGGERS
        if has_any(t, phrases)
    ]
    return out[: max(0, limit)]


def question_breadth_observations(t: str) -> List[Observation]:
    return [
        Observation(K.WORKFLOW_PREFERENCE, key, R.QUESTION_BREADTH_STRENGTH)
        for key, phrases in R.QUESTION_BREADTH
        if has_any(t, phrases)
    ]


def first_person_age(t: str) -> Optional[int]:
    for pat in R.AGE_PATTERNS:
        m = pat.search(t)
        if not m:
            continue
        n = int(m.group(1))
        if R.AGE_MIN <= n <= R.AGE_MAX:
            return n
    return None


def age_band(age: int) -> str:
    for upper, band in R.AGE_BANDS:
        if age < upper:
            return band
    return "75_plus"


def profile_observations(t: str, limit: int) -> List[Observation]:
    out: List[Observation] = []
    for key, phrases in R.LANGUAGE_RULES:
        if has_any(t, phrases):
            out.append(Observation(K.TOPIC_RECURRENCE, key, R.LANGUAGE_STRENGTH))
    for country, phrases in R.COUNTRY_ANCHORS:
        if has_any(t, phrases):
            out.append(Observation(K.TOPIC_RECURRENCE, f"profile:country:{country}", R.COUNTRY_STRENGTH))
    for key, phrases in R.REGION_ANCHORS:
        if has_any(t, phrases):
            out.append(Observation(K.TOPIC_RECURRENCE, key, R.REGION_STRENGTH))
    age = first_person_age(t)
    if age is not None:
        out.append(Observation(K.TOPIC_RECURRENCE, f"profile:age_band:{age_band(age)}", R.AGE_BAND_STRENGTH))
        out.append(Observation(K.TOPIC_RECURRENCE, f"profile:age_decade:{(age // 10) * 10}s", R.AGE_DECADE_STRENGTH))
    return out[: max(0, limit)]


def practice_years(t: str) -> Optional[int]:
    m = R.PRACTICE_DURATION_RE.search(t)
    return int(m.group(1)) if m else None


def dharma_observations(t: str, limit: int) -> List[Observation]:
    out: List[Observation] = []
    for prefix, table, strength in R.DHARMA_FAMILIES:
        for key, phrases in table:
            if has_any(t, phrases):
                out.append(Observation(K.TOPIC_RECURRENCE, prefix + key, strength))
    years = practice_years(t)
    if years is not None and years >= R.LONG_TIME_PRACTICE_YEARS:
        out.append(Observation(K.TOPIC_RECURRENCE, "dharma:experience:long_time", 0.30))
    return out[: max(0, limit)]


# ---------------------------------------------------------------------------
# Merge + bound
# ---------------------------------------------------------------------------

def dedupe_max_strength(observations: Iterable[Observation]) -> List[Observation]:
    """One observation per (kind, key); the strongest wins, first occurrence keeps its place."""
    best: Dict[Tuple[ObservationKind, str], Observation] = {}
    for o in observations:
        cur = best.get(o.pair)
        if cur is None or o.strength > cur.strength:
            best[o.pair] = o
    return list(best.values())


def select_bounded(
    observations: Sequence[Observation],
    cap: int,
    reserve_profile: int,
    reserve_domain: int,
) -> List[Observation]:
    """Pick at most `cap`, holding sub-budgets for profile and domain topics; unused slots go to leftovers."""
    cap = max(0, cap)
    reserve_profile = min(max(0, reserve_profile), cap)
    reserve_domain = min(max(0, reserve_domain), cap - reserve_profile)
    other_budget = cap - reserve_profile - reserve_domain

    ordered = sorted(observations, key=_order_key)
    groups: Dict[str, List[Observation]] = {"profile": [], "domain": [], "other": []}
    for o in ordered:
        groups[budget_group(o)].append(o)

    chosen = groups["other"][:other_budget] + groups["profile"][:reserve_profile] + groups["domain"][:reserve_domain]
    taken = {o.pair for o in chosen}
    for o in ordered:
        if len(chosen) >= cap:
            break
        if o.pair not in taken:
            chosen.append(o)
            taken.add(o.pair)
    return sorted(chosen, key=_order_key)


class ObservationDeriver:
    def __init__(self, valves: Optional[DeriverValves] = None):
        self.valves = valves or DeriverValves()

    def derive(self, summary: ContextSummary, redacted_text: Optional[str] = None) -> List[Observation]:
        v = self.valves
        raw: List[Observation] = summary_observations(summary)

        t = normalize_text(redacted_text) if redacted_text else ""
        deactivated: List[Observation] = []
        if t:
            deactivated = deactivation_observations(t)
            raw += release_observations(t)
            raw += situational_observations(t, v.situational_max)
            raw += question_breadth_observations(t)
            raw += profile_observations(t, v.profile_max)
            raw += dharma_observations(t, v.dharma_max)

        # A pair explicitly switched off in this entry never also counts as positive evidence.
        off = {o.pair for o in deactivated}
        merged = dedupe_max_strength(deactivated + [o for o in raw if o.pair not in off])
        return select_bounded(merged, v.max_per_entry, v.reserve_profile, v.reserve_domain)


def derive_observations(summary: ContextSummary, redacted_text: Optional[str] = None) -> List[Observation]:
    return ObservationDeriver().derive(summary, redacted_text)
