"""Projection of decayed pattern stats into the capsule's learned tendencies.

Each stage is a pure list -> list function so ordering and tie-breaks can be
checked on their own; `LearningProjector.sync` just chains them and writes the
result when it differs from what the capsule already holds.
"""

from __future__ import annotations

import datetime as dt
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from .capsule import CapsuleSink, CapsuleTendency, equal_ignoring_ids
from .config import (
    EPHEMERAL_RECENCY_DAYS,
    LANE_EPHEMERAL_CAP,
    LANE_GLOBAL_CAP,
    LANE_MAX_PER_KIND,
    LANE_SEASONAL_CAP,
    LANE_STICKY_CAP,
    LEARNING_DEBUG,
)
from .observations import ObservationKind, kind_to_raw
from .stat_store import SECONDS_PER_DAY, PatternStat

K = ObservationKind


def _debug(msg: str) -> None:
    if LEARNING_DEBUG:
        print(f"[learning] {msg}")


class Lane(str, Enum):
    STICKY = "sticky"
    SEASONAL = "seasonal"
    EPHEMERAL = "ephemeral"


class ProjectorValves(BaseModel):
    sticky_cap: int = Field(default=LANE_STICKY_CAP, description="Max tendencies from the sticky lane.")
    seasonal_cap: int = Field(default=LANE_SEASONAL_CAP, description="Max tendencies from the seasonal lane.")
    ephemeral_cap: int = Field(default=LANE_EPHEMERAL_CAP, description="Max tendencies from the ephemeral lane.")
    global_cap: int = Field(default=LANE_GLOBAL_CAP, description="Max tendencies overall.")
    max_per_kind_within_lane: int = Field(default=LANE_MAX_PER_KIND, description="Diversity cap per kind inside a lane.")
    ephemeral_recency_days: float = Field(default=EPHEMERAL_RECENCY_DAYS, description="Ephemeral rows older than this are not surfaced.")


# ---------------------------------------------------------------------------
# Stage 1: suppression + thresholds
# ---------------------------------------------------------------------------

EXCLUDED: Tuple[Tuple[ObservationKind, str], ...] = (
    (K.CONSTRAINT_TRIGGER, "trigger:eye_contact"),
)

EXPLICIT_WORKFLOW_CUES = ("question_light", "question_guided", "narrow_first", "explore_space")


def suppress_before_reset(rows: Sequence[PatternStat], reset_at: Optional[dt.datetime]) -> List[PatternStat]:
    if reset_at is None:
        return list(rows)
    return [r for r in rows if r.last_seen_at > reset_at]


def drop_excluded(rows: Sequence[PatternStat]) -> List[PatternStat]:
    return [r for r in rows if r.pair not in EXCLUDED]


def passes_threshold(r: PatternStat) -> bool:
    if r.kind is K.CONSTRAINTS_SENSITIVITY:
        return r.score >= 0.6 and r.count >= 2
    if r.kind is K.WORKFLOW_PREFERENCE and r.key in EXPLICIT_WORKFLOW_CUES:
        return r.score >= 0.4 and r.count >= 2
    return r.score >= 0.3


def apply_thresholds(rows: Sequence[PatternStat]) -> List[PatternStat]:
    return [r for r in rows if passes_threshold(r)]


# ---------------------------------------------------------------------------
# Stage 2-3: lanes + ephemeral gate
# ---------------------------------------------------------------------------

_DAY_STATE_TRIGGERS = ("low_sleep", "low_energy", "deadline_pressure")


def lane_for(r: PatternStat) -> Lane:
    if r.kind is K.RELEASE_PATTERN:
        return Lane.EPHEMERAL
    if r.kind is K.CONSTRAINT_TRIGGER and any(m in r.key for m in _DAY_STATE_TRIGGERS):
        return Lane.EPHEMERAL
    if r.kind is K.CONSTRAINTS_SENSITIVITY and r.key in ("time_pressure", "low_energy"):
        return Lane.EPHEMERAL

    if r.kind is K.CONSTRAINT_TRIGGER:
        return Lane.STICKY
    if r.kind is K.CONSTRAINTS_SENSITIVITY and r.key == "sensory_noise":
        return Lane.STICKY
    if r.kind is K.WORKFLOW_PREFERENCE and r.key == "question_light":
        return Lane.STICKY

    return Lane.SEASONAL


def days_since(when: dt.datetime, now: dt.datetime) -> float:
    return max(0.0, (now - when).total_seconds() / SECONDS_PER_DAY)


def passes_ephemeral_gate(r: PatternStat, now: dt.datetime, recency_days: float) -> bool:
    """Recent, and held to a higher bar than the stage-1 threshold."""
    if days_since(r.last_seen_at, now) > recency_days:
        return False
    if r.kind is K.RELEASE_PATTERN:
        return r.score >= 0.4
    if r.kind is K.CONSTRAINT_TRIGGER:
        return r.score >= 0.5 and r.count >= 2
    if r.kind is K.CONSTRAINTS_SENSITIVITY:
        return r.score >= 0.6 and r.count >= 2
    return r.score >= 0.5


def gate_ephemeral(rows: Sequence[PatternStat], now: dt.datetime, recency_days: float) -> List[PatternStat]:
    return [r for r in rows if lane_for(r) is not Lane.EPHEMERAL or passes_ephemeral_gate(r, now, recency_days)]


# ---------------------------------------------------------------------------
# Stage 4: caps
# ---------------------------------------------------------------------------

def rank_key(r: PatternStat):
    # score desc, last seen desc; kind/key only to make ties reproducible
    return (-r.score, -r.last_seen_at.timestamp(), kind_to_raw(r.kind), r.key)


def select_lane(rows: Sequence[PatternStat], cap: int, max_per_kind: int) -> List[PatternStat]:
    if cap <= 0 or not rows:
        return []
    per_kind: Dict[ObservationKind, List[PatternStat]] = {}
    for r in rows:
        per_kind.setdefault(r.kind, []).append(r)
    kept: List[PatternStat] = []
    for arr in per_kind.values():
        kept.extend(sorted(arr, key=rank_key)[: max(0, max_per_kind)])
    kept.sort(key=rank_key)
    return kept[:cap]


def combine_lanes(
    sticky: Sequence[PatternStat],
    seasonal: Sequence[PatternStat],
    ephemeral: Sequence[PatternStat],
    global_cap: int,
) -> List[PatternStat]:
    """Presentation order is sticky, seasonal, ephemeral; past the global cap the best rows win."""
    combined = list(sticky) + list(seasonal) + list(ephemeral)
    if len(combined) > global_cap:
        return sorted(combined, key=rank_key)[: max(0, global_cap)]
    return combined


def project_rows(
    rows: Sequence[PatternStat],
    now: dt.datetime,
    reset_at: Optional[dt.datetime] = None,
    valves: Optional[ProjectorValves] = None,
) -> List[PatternStat]:
    v = valves or ProjectorValves()
    kept = suppress_before_reset(rows, reset_at)
    kept = drop_excluded(kept)
    kept = apply_thresholds(kept)
    kept = gate_ephemeral(kept, now, v.ephemeral_recency_days)
    kept.sort(key=rank_key)

    lanes: Dict[Lane, List[PatternStat]] = {lane: [] for lane in Lane}
    for r in kept:
        lanes[lane_for(r)].append(r)
    return combine_lanes(
        select_lane(lanes[Lane.STICKY], v.sticky_cap, v.max_per_kind_within_lane),
        select_lane(lanes[Lane.SEASONAL], v.seasonal_cap, v.max_per_kind_within_lane),
        select_lane(lanes[Lane.EPHEMERAL], v.ephemeral_cap, v.max_per_kind_within_lane),
        v.global_cap,
    )


# ---------------------------------------------------------------------------
# Stage 5: statements
# ---------------------------------------------------------------------------

STATEMENTS: Dict[ObservationKind, Dict[str, str]] = {
    K.STYLE_PREFERENCE: {
        "bullets": "Prefers bullet points",
        "concise": "Prefers concise summaries",
        "scripted_reply": "Often wants suggested wording",
        "prefers_tldr_then_detail": "Prefers TL;DR first, then details",
        "prefers_brief": "Prefers brief answers",
        "prefers_numbered_steps": "Prefers numbered steps",
        "prefers_checklist": "Prefers checklists",
        "prefers_decision_tree": "Prefers decision trees",
        "prefers_no_fluff": "Prefers direct, no-fluff replies",
    },
    K.WORKFLOW_PREFERENCE: {
        "options_first": "Wants options before questions",
        "prefers_confirm_then_execute": "Prefers to confirm once, then proceed",
        "prefers_execute_immediately": "Prefers to execute without preamble",
        "prefers_just_answer": "Prefers a direct answer",
        "prefers_few_questions": "Prefers fewer questions",
        "prefers_no_clarifying_questions": "Prefers no clarifying questions",
        "question_light": "Prefers lighter questioning",
        "question_guided": "Prefers guided questioning",
        "narrow_first": "Prefers one path first",
        "explore_space": "Prefers exploring options",
    },
    K.RESOLUTION_PATTERN: {
        "constraints_first": "Responds better when constraints are addressed early",
        "decision_stuck": "Gets stuck deciding under uncertainty",
        "needs_decompression": "Responds better after decompressing first",
        "complexity_high": "Often faces high complexity",
        "prefers_reframe_then_steps": "Responds better with a reframe before steps",
    },
    K.CONSTRAINTS_SENSITIVITY: {
        "time_pressure": "Often constrained by time pressure",
        "low_energy": "Often constrained by low energy",
        "money_limit": "Often constrained by money limits",
        "social_overload": "Often constrained by social factors",
        "dependency_blocked": "Often constrained by dependencies",
        "sensory_noise": "Sensitive to sensory overload",
        "legal_risk": "Often constrained by legal risk",
    },
    K.NARRATIVE_PATTERN: {
        "replay_loop": "Tends to replay the story",
        "identity_frame_present": "Framing often involves identity",
        "outcome_fixation": "Fixates on a single outcome",
        "control_frame": "Framing leans toward control",
        "uncertainty_pressure": "Feels pressure from uncertainty",
        "self_attack_language": "Uses self-critical language",
        "reassurance_checking": "Seeks reassurance",
        "avoidance_language": "Uses avoidance language",
    },
    K.LENS_PREFERENCE: {
        "softening_helps": "Softening lens tends to help",
        "widening_helps": "Widening lens tends to help",
        "letting_be_helps": "Letting-be lens tends to help",
        "compassionate_witnessing_helps": "Compassionate witnessing tends to help",
        "impermanence_helps": "Impermanence lens tends to help",
        "non_identification_helps": "Non-identification lens tends to help",
    },
    # "trigger" never reaches the user; these read as situational constraints.
    K.CONSTRAINT_TRIGGER: {
        "trigger:noise": "Often harder in noisy environments",
        "trigger:bright_light": "Often harder with bright light",
        "trigger:crowds": "Often harder in crowds",
        "trigger:group_dynamics": "Often harder with complex group dynamics",
        "trigger:hierarchy_games": "Often harder with power dynamics",
        "trigger:being_observed": "Often harder when being observed",
        "trigger:too_many_variables": "Often harder with many variables",
        "trigger:unclear_requirements": "Often harder when requirements are unclear",
        "trigger:interruptions": "Often harder with frequent interruptions",
        "trigger:context_switching": "Often harder with frequent context switching",
        "trigger:deadline_pressure": "Often harder under deadline pressure",
        "trigger:low_sleep": "Often harder with low sleep",
        "trigger:low_energy": "Often harder with low energy",
    },
    K.CONTRACTION_PATTERN: {
        "contraction:identity_fixation": "Identity framing can tighten experience",
        "contraction:outcome_fixation": "Outcome fixation can increase pressure",
        "contraction:control_pressure": "Control efforts can add pressure",
        "contraction:uncertainty_pressure": "Uncertainty can amplify tension",
        "contraction:mental_looping": "Mental replay can sustain tightening",
        "contraction:self_attack": "Self-critical language can tighten experience",
        "contraction:checking_for_reassurance": "Checking for reassurance can sustain tightening",
        "contraction:avoidance_pressure": "Avoidance language can increase pressure",
    },
    K.RELEASE_PATTERN: {
        "release:ease_present": "Ease can show up under some conditions",
        "release:settling": "Settling can appear at times",
        "release:openness": "A sense of space can open when pressure drops",
    },
}

# Fixed wording for kinds whose unknown keys should not leak into the statement.
FIXED_FALLBACKS: Dict[ObservationKind, str] = {
    K.CONTRACTION_PATTERN: "Tightening can show up under certain conditions",
    K.RELEASE_PATTERN: "Ease can appear under certain conditions",
}

TOPIC_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("topic:", "Topic: {}"),
    ("dharma:practice:", "Practises {}"),
    ("dharma:vehicle:", "Vehicle: {}"),
    ("dharma:school:", "School: {}"),
    ("dharma:lineage:", "Lineage: {}"),
    ("dharma:role:", "Role: {}"),
    ("dharma:experience:", "Practice experience: {}"),
    ("dharma:level:", "Practice level: {}"),
    ("dharma:deity:", "Practice focus: {}"),
    ("dharma:term:", "Mentions {}"),
    ("dharma:milestone:", "Milestone: {}"),
    ("dharma:training:", "Training: {}"),
    ("dharma:aim:", "Aim: {}"),
    ("profile:language:", "Language: {}"),
    ("profile:country:", "Country: {}"),
    ("profile:region:", "Region: {}"),
    ("profile:age_band:", "Age band: {}"),
    ("profile:age_decade:", "Age: {}"),
)

KIND_TEMPLATES: Dict[ObservationKind, str] = {
    K.STYLE_PREFERENCE: "Prefers {}",
    K.WORKFLOW_PREFERENCE: "Often wants {}",
    K.RESOLUTION_PATTERN: "Responds better when {}",
    K.CONSTRAINTS_SENSITIVITY: "Often constrained by {}",
    K.NARRATIVE_PATTERN: "Narrative pattern: {}",
    K.LENS_PREFERENCE: "Lens {} tends to help",
    K.CONSTRAINT_TRIGGER: "Often harder when {}",
    K.TOPIC_RECURRENCE: "Noted: {}",
}


def humanize(raw: str) -> str:
    return raw.replace("_", " ").replace(":", " ").strip()


def _age_band_words(band: str) -> str:
    if band.endswith("_plus"):
        return band[: -len("_plus")] + "+"
    return band.replace("_", "-")


def statement_for(kind: ObservationKind, key: str) -> str:
    """Human wording for a (kind, key); total, never returns the raw key."""
    known = STATEMENTS.get(kind, {}).get(key)
    if known:
        return known
    if kind in FIXED_FALLBACKS:
        return FIXED_FALLBACKS[kind]
    if kind is K.TOPIC_RECURRENCE:
        for prefix, template in TOPIC_PREFIXES:
            if key.startswith(prefix):
                tail = key[len(prefix):]
                if prefix == "profile:age_band:":
                    return template.format(_age_band_words(tail))
                return template.format(humanize(tail))
    if kind is K.CONSTRAINT_TRIGGER and key.startswith("trigger:"):
        key = key[len("trigger:"):]
    return KIND_TEMPLATES[kind].format(humanize(key))


def to_tendency(r: PatternStat) -> CapsuleTendency:
    return CapsuleTendency(
        statement=statement_for(r.kind, r.key),
        evidence_count=r.count,
        first_seen_at=r.first_seen_at,
        last_seen_at=r.last_seen_at,
        is_overridden=False,
        source_kind=kind_to_raw(r.kind),
        source_key=r.key,
    )


# ---------------------------------------------------------------------------
# Stage 6: idempotent write
# ---------------------------------------------------------------------------

class LearningProjector:
    """
    stats: anything with fetch() -> List[PatternStat] (StatStore or DecayedStatStore)
    capsule: CapsuleSink receiving the projected list
    """

    def __init__(
        self,
        stats,
        capsule: CapsuleSink,
        valves: Optional[ProjectorValves] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ):
        self.stats = stats
        self.capsule = capsule
        self.valves = valves or ProjectorValves()
        self.log_fn = log_fn or _debug
        self._lock = threading.RLock()

    def project(self, now: dt.datetime) -> List[CapsuleTendency]:
        rows = self.stats.fetch()
        chosen = project_rows(rows, now, self.capsule.learning_reset_at(), self.valves)
        return [to_tendency(r) for r in chosen]

    def sync(self, now: dt.datetime) -> bool:
        """Recompute tendencies; write only on a content change. Returns True when the capsule was written."""
        with self._lock:
            try:
                projected = self.project(now)
                if equal_ignoring_ids(self.capsule.learned_tendencies(), projected):
                    return False
                self.capsule.set_learned_tendencies(projected)
                self.log_fn(f"sync wrote {len(projected)} tendencies")
                return True
            except Exception as e:
                self.log_fn(f"sync failed: {type(e).__name__}: {e}")
                return False
