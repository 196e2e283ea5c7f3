"""Per-entry flow: redact -> summarise -> derive -> learn -> project.

Redaction output is final before any learning starts; a failure anywhere in
the learning half is logged and never changes what the caller gets back.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .capsule import CapsuleStore
from .config import PIPELINE_DEBUG, STORAGE_DIR
from .context_summary import ContextSummary, build_context_summary
from .learning_sync import LearningProjector, ProjectorValves
from .observations import DeriverValves, Observation, ObservationDeriver
from .privacy_utils import short_hash
from .redaction_dictionary import RedactionDictionary
from .redactor import redact
from .stat_store import DecayedStatStore, InMemoryStatStore, JsonStatStore


def _debug(msg: str) -> None:
    if PIPELINE_DEBUG:
        print(f"[pipeline] {msg}")


@dataclass
class EntryResult:
    redacted_text: str
    did_redact: bool
    summary: Optional[ContextSummary] = None
    observations: List[Observation] = field(default_factory=list)
    learned: bool = False


class SignalPipeline:
    def __init__(
        self,
        dictionary: Optional[RedactionDictionary] = None,
        stats: Optional[DecayedStatStore] = None,
        capsule: Optional[CapsuleStore] = None,
        deriver_valves: Optional[DeriverValves] = None,
        projector_valves: Optional[ProjectorValves] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ):
        self.log_fn = log_fn or _debug
        self.dictionary = dictionary if dictionary is not None else RedactionDictionary()
        self.stats = stats if stats is not None else DecayedStatStore(InMemoryStatStore(), log_fn=self.log_fn)
        self.capsule = capsule if capsule is not None else CapsuleStore()
        self.deriver = ObservationDeriver(deriver_valves)
        self.projector = LearningProjector(self.stats, self.capsule, projector_valves, log_fn=self.log_fn)

    @classmethod
    def from_storage_dir(cls, base_dir: str = STORAGE_DIR, **kwargs) -> "SignalPipeline":
        """Everything persisted under one directory; with an empty dir nothing touches disk."""
        if not base_dir:
            return cls(**kwargs)
        log_fn = kwargs.get("log_fn")
        return cls(
            dictionary=RedactionDictionary(base_dir),
            stats=DecayedStatStore(JsonStatStore(base_dir), log_fn=log_fn),
            capsule=CapsuleStore(base_dir),
            **kwargs,
        )

    def process_entry(self, raw: str, now: Optional[dt.datetime] = None) -> EntryResult:
        now = now or dt.datetime.now(dt.timezone.utc)
        red = redact(raw, self.dictionary.terms)
        result = EntryResult(redacted_text=red.redacted_text, did_redact=red.did_redact)
        _debug(f"entry {short_hash(raw)} redacted={red.did_redact} len={len(raw or '')}")

        try:
            result.summary = build_context_summary(red.redacted_text)
            result.observations = self.deriver.derive(result.summary, red.redacted_text)
        except Exception as e:
            self.log_fn(f"derive failed for {short_hash(raw)}: {type(e).__name__}: {e}")
            return result

        if not self.capsule.learning_enabled():
            return result
        try:
            self.stats.apply(result.observations, now)
            self.projector.sync(now)
            result.learned = True
        except Exception as e:
            self.log_fn(f"learning failed for {short_hash(raw)}: {type(e).__name__}: {e}")
        return result

    def reset_learning(self, now: Optional[dt.datetime] = None) -> None:
        """Forget all stats; anything seen at or before `now` is never projected again."""
        now = now or dt.datetime.now(dt.timezone.utc)
        self.stats.wipe()
        self.capsule.clear_learned_tendencies(now)
        _debug(f"learning reset at {now.isoformat()}")
