"""User-facing preference capsule: learned tendencies, the learning switch, the reset marker."""

from __future__ import annotations

import datetime as dt
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import orjson

from .config import EXPORT_CUE_LIMIT, LEARNING_DEBUG

CAPSULE_FILENAME = "capsule.json"
CAPSULE_VERSION = 1

CUE_STATEMENT_MAX = 140
CUE_EVIDENCE_MAX = 999


def _debug(msg: str) -> None:
    if LEARNING_DEBUG:
        print(f"[capsule] {msg}")


def _ts() -> str:
    return dt.datetime.now().astimezone().isoformat(timespec="seconds")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _parse_iso(s: Any) -> Optional[dt.datetime]:
    if not s:
        return None
    try:
        d = dt.datetime.fromisoformat(str(s))
    except ValueError:
        return None
    return d if d.tzinfo is not None else d.replace(tzinfo=dt.timezone.utc)


@dataclass
class CapsuleTendency:
    statement: str
    evidence_count: int
    first_seen_at: dt.datetime
    last_seen_at: dt.datetime
    is_overridden: bool = False
    source_kind: Optional[str] = None
    source_key: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()), compare=False)

    def content_key(self):
        return (
            self.statement,
            self.evidence_count,
            self.first_seen_at.timestamp(),
            self.last_seen_at.timestamp(),
            self.is_overridden,
            self.source_kind or "",
            self.source_key or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "statement": self.statement,
            "evidence_count": self.evidence_count,
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_seen_at": self.last_seen_at.isoformat(),
            "is_overridden": self.is_overridden,
            "source_kind": self.source_kind,
            "source_key": self.source_key,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Optional["CapsuleTendency"]:
        first = _parse_iso(d.get("first_seen_at"))
        last = _parse_iso(d.get("last_seen_at"))
        statement = str(d.get("statement") or "").strip()
        if not statement or first is None or last is None:
            return None
        return cls(
            statement=statement,
            evidence_count=int(d.get("evidence_count") or 0),
            first_seen_at=first,
            last_seen_at=last,
            is_overridden=bool(d.get("is_overridden", False)),
            source_kind=d.get("source_kind"),
            source_key=d.get("source_key"),
            id=str(d.get("id") or uuid.uuid4()),
        )


def equal_ignoring_ids(a: Sequence[CapsuleTendency], b: Sequence[CapsuleTendency]) -> bool:
    """Content equality, independent of generated ids and of list order."""
    if len(a) != len(b):
        return False
    return sorted(t.content_key() for t in a) == sorted(t.content_key() for t in b)


# ---------------------------------------------------------------------------
# Sink port
# ---------------------------------------------------------------------------

class CapsuleSink(ABC):
    @abstractmethod
    def learned_tendencies(self) -> List[CapsuleTendency]:
        ...

    @abstractmethod
    def learning_reset_at(self) -> Optional[dt.datetime]:
        ...

    @abstractmethod
    def learning_enabled(self) -> bool:
        ...

    @abstractmethod
    def set_learned_tendencies(self, items: Sequence[CapsuleTendency]) -> None:
        ...

    @abstractmethod
    def clear_learned_tendencies(self, now: dt.datetime) -> None:
        """Drop all tendencies and record `now` as the reset marker."""


class CapsuleStore(CapsuleSink):
    """
    Capsule kept in memory, mirrored to `<base_dir>/capsule.json` when a base dir is given:
      {
        "version": 1,
        "learning_enabled": true,
        "updated_at": "...",
        "learning_reset_at": null,
        "learned_tendencies": [ {...}, ... ]
      }
    An unreadable file starts a fresh capsule.
    """

    def __init__(self, base_dir: str = ""):
        self.base = base_dir
        self.path: Optional[str] = os.path.join(base_dir, CAPSULE_FILENAME) if base_dir else None
        self.log_file: Optional[str] = os.path.join(base_dir, "activity.log") if base_dir else None
        self._lock = threading.RLock()
        self._enabled = True
        self._reset_at: Optional[dt.datetime] = None
        self._tendencies: List[CapsuleTendency] = []
        self.updated_at: dt.datetime = _utcnow()
        self.write_count = 0
        self._load()

    # -------------------------------
    # Sink API
    # -------------------------------

    def learned_tendencies(self) -> List[CapsuleTendency]:
        with self._lock:
            return list(self._tendencies)

    def learning_reset_at(self) -> Optional[dt.datetime]:
        return self._reset_at

    def learning_enabled(self) -> bool:
        return self._enabled

    def set_learning_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = bool(enabled)
            self._touch()
            self.log(f"CAPSULE_LEARNING - enabled={self._enabled}")

    def set_learned_tendencies(self, items: Sequence[CapsuleTendency]) -> None:
        with self._lock:
            self._tendencies = list(items)
            self.write_count += 1
            self._touch()
            self.log(f"CAPSULE_SET_TENDENCIES - n={len(self._tendencies)}")

    def clear_learned_tendencies(self, now: dt.datetime) -> None:
        with self._lock:
            self._reset_at = now
            self._tendencies = []
            self.write_count += 1
            self._touch()
            self.log(f"CAPSULE_RESET - at={now.isoformat()}")

    def wipe(self) -> None:
        with self._lock:
            self._enabled = True
            self._reset_at = None
            self._tendencies = []
            self.updated_at = _utcnow()
            if self.path and os.path.exists(self.path):
                os.remove(self.path)

    # -------------------------------
    # Disk
    # -------------------------------

    def log(self, msg: str) -> None:
        if not self.log_file:
            return
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"{_ts()} - {msg}\n")
        except OSError:
            pass

    def _touch(self) -> None:
        self.updated_at = _utcnow()
        self._persist()

    def _persist(self) -> None:
        if not self.path:
            return
        data = {
            "version": CAPSULE_VERSION,
            "learning_enabled": self._enabled,
            "updated_at": self.updated_at.isoformat(),
            "learning_reset_at": self._reset_at.isoformat() if self._reset_at else None,
            "learned_tendencies": [t.to_dict() for t in self._tendencies],
        }
        os.makedirs(self.base, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "wb") as f:
            f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
        os.replace(tmp, self.path)

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "rb") as f:
                raw = orjson.loads(f.read())
        except (OSError, orjson.JSONDecodeError) as e:
            _debug(f"unreadable {CAPSULE_FILENAME}, starting fresh: {e}")
            return
        if not isinstance(raw, dict):
            return
        self._enabled = bool(raw.get("learning_enabled", True))
        self._reset_at = _parse_iso(raw.get("learning_reset_at"))
        self.updated_at = _parse_iso(raw.get("updated_at")) or self.updated_at
        items = raw.get("learned_tendencies") or []
        self._tendencies = [
            t for t in (CapsuleTendency.from_dict(d) for d in items if isinstance(d, dict)) if t is not None
        ]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def learned_cues_payload(capsule: CapsuleSink, limit: int = EXPORT_CUE_LIMIT) -> Optional[List[Dict[str, Any]]]:
    """Top `limit` tendencies as bounded cue dicts, or None when learning is off or nothing survives."""
    if not capsule.learning_enabled():
        return None
    items: List[Dict[str, Any]] = []
    for t in capsule.learned_tendencies()[: max(0, limit)]:
        s = (t.statement or "").strip()
        if not s:
            continue
        items.append(
            {
                "statement": s[:CUE_STATEMENT_MAX],
                "evidence_count": max(1, min(CUE_EVIDENCE_MAX, int(t.evidence_count))),
                "last_seen_at": t.last_seen_at.astimezone(dt.timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            }
        )
    return items or None
