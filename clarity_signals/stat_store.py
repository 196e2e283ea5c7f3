"""Durable per-(kind, key) pattern statistics with half-life decay.

`StatStore` is the persistence port; `DecayedStatStore` owns the
read-decay-write cycle on top of it and is the only writer.
"""

from __future__ import annotations

import datetime as dt
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import orjson

from .config import LEARNING_DEBUG
from .observations import Observation, ObservationKind, kind_from_raw, kind_to_raw

STATS_FILENAME = "pattern_stats.json"

SECONDS_PER_DAY = 86400.0


def _debug(msg: str) -> None:
    if LEARNING_DEBUG:
        print(f"[learning] {msg}")


def _ts() -> str:
    return dt.datetime.now().astimezone().isoformat(timespec="seconds")


def _iso(d: dt.datetime) -> str:
    return d.isoformat()


def _parse_iso(s: Any) -> Optional[dt.datetime]:
    try:
        d = dt.datetime.fromisoformat(str(s))
    except (TypeError, ValueError):
        return None
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d


@dataclass
class PatternStat:
    kind: ObservationKind
    key: str
    score: float
    count: int
    first_seen_at: dt.datetime
    last_seen_at: dt.datetime
    half_life_days: float

    @property
    def pair(self) -> Tuple[ObservationKind, str]:
        return (self.kind, self.key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": kind_to_raw(self.kind),
            "key": self.key,
            "score": self.score,
            "count": self.count,
            "first_seen_at": _iso(self.first_seen_at),
            "last_seen_at": _iso(self.last_seen_at),
            "half_life_days": self.half_life_days,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PatternStat":
        """Raises ValueError on an unknown kind or unreadable timestamps."""
        first = _parse_iso(d.get("first_seen_at"))
        last = _parse_iso(d.get("last_seen_at"))
        if first is None or last is None:
            raise ValueError("pattern stat without timestamps")
        return cls(
            kind=kind_from_raw(str(d.get("kind", ""))),
            key=str(d.get("key", "")),
            score=float(d.get("score", 0.0)),
            count=int(d.get("count", 0)),
            first_seen_at=first,
            last_seen_at=last,
            half_life_days=float(d.get("half_life_days", 14.0)),
        )


# ---------------------------------------------------------------------------
# Persistence port
# ---------------------------------------------------------------------------

class StatStore(ABC):
    """Key-unique (kind, key) row storage. Implementations need not be thread-safe."""

    @abstractmethod
    def fetch(self, predicate: Optional[Callable[[PatternStat], bool]] = None) -> List[PatternStat]:
        ...

    @abstractmethod
    def get(self, kind: ObservationKind, key: str) -> Optional[PatternStat]:
        ...

    @abstractmethod
    def put(self, row: PatternStat) -> None:
        ...

    @abstractmethod
    def delete_all(self) -> None:
        ...

    def save(self) -> None:
        """Flush pending writes. No-op for stores that write through."""


class InMemoryStatStore(StatStore):
    def __init__(self, rows: Optional[Iterable[PatternStat]] = None):
        self._rows: Dict[Tuple[ObservationKind, str], PatternStat] = {}
        for r in rows or ():
            self._rows[r.pair] = replace(r)
        self.save_count = 0

    def fetch(self, predicate: Optional[Callable[[PatternStat], bool]] = None) -> List[PatternStat]:
        rows = [replace(r) for r in self._rows.values()]
        if predicate is not None:
            rows = [r for r in rows if predicate(r)]
        return rows

    def get(self, kind: ObservationKind, key: str) -> Optional[PatternStat]:
        r = self._rows.get((kind, key))
        return replace(r) if r is not None else None

    def put(self, row: PatternStat) -> None:
        self._rows[row.pair] = replace(row)

    def delete_all(self) -> None:
        self._rows.clear()

    def save(self) -> None:
        self.save_count += 1


class JsonStatStore(InMemoryStatStore):
    """
    Rows kept in memory and flushed to `<base_dir>/pattern_stats.json` on save():
      [{"kind": "style_preference", "key": "bullets", "score": 0.7, ...}, ...]

    Rows whose kind is no longer known are dropped on load.
    """

    def __init__(self, base_dir: str):
        super().__init__()
        os.makedirs(base_dir, exist_ok=True)
        self.base = base_dir
        self.path = os.path.join(base_dir, STATS_FILENAME)
        self.log_file = os.path.join(base_dir, "activity.log")
        self._load()

    def log(self, msg: str) -> None:
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"{_ts()} - {msg}\n")
        except OSError:
            pass

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "rb") as f:
                raw = orjson.loads(f.read())
        except (OSError, orjson.JSONDecodeError) as e:
            _debug(f"unreadable {STATS_FILENAME}, starting empty: {e}")
            return
        if not isinstance(raw, list):
            return
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                row = PatternStat.from_dict(item)
            except ValueError as e:
                _debug(f"skipping stored row: {e}")
                continue
            self._rows[row.pair] = row

    def put(self, row: PatternStat) -> None:
        super().put(row)
        self.log(f"STAT_UPSERT - {kind_to_raw(row.kind)}|{row.key} - score={row.score:.3f} count={row.count}")

    def delete_all(self) -> None:
        super().delete_all()
        self.log("STAT_WIPE")

    def save(self) -> None:
        super().save()
        data = [r.to_dict() for r in sorted(self._rows.values(), key=lambda r: (kind_to_raw(r.kind), r.key))]
        tmp = self.path + ".tmp"
        with open(tmp, "wb") as f:
            f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
        os.replace(tmp, self.path)


# ---------------------------------------------------------------------------
# Decay policy
# ---------------------------------------------------------------------------

EPHEMERAL_HALF_LIFE = 7.0
STICKY_HALF_LIFE = 365.0
SEASONAL_HALF_LIFE = 90.0
DEFAULT_HALF_LIFE = 14.0

NAMED_HALF_LIVES: Dict[str, float] = {
    "question_light": 180.0,
    "prefers_no_fluff": 120.0,
}

_EPHEMERAL_MARKERS = ("deadline", "time_pressure", "low_energy", "low_sleep")


def half_life_days(kind: ObservationKind, key: str) -> float:
    """Days for a score to halve with no new evidence; first matching rule wins."""
    if key.startswith("release:") or any(m in key for m in _EPHEMERAL_MARKERS):
        return EPHEMERAL_HALF_LIFE
    if kind is ObservationKind.CONSTRAINT_TRIGGER or key.startswith("trigger:"):
        return STICKY_HALF_LIFE
    if key in NAMED_HALF_LIVES:
        return NAMED_HALF_LIVES[key]
    if kind in (ObservationKind.STYLE_PREFERENCE, ObservationKind.WORKFLOW_PREFERENCE):
        return SEASONAL_HALF_LIFE
    return DEFAULT_HALF_LIFE


def decay_factor(elapsed_days: float, half_life: float) -> float:
    return 0.5 ** (max(0.0, elapsed_days) / max(1.0, half_life))


def _clamp01(x: float) -> float:
    return min(1.0, max(0.0, x))


class DecayedStatStore:
    """
    Serialized writer over a StatStore port.

    One RLock covers each read-decay-write so concurrent upserts of the same
    (kind, key) never lose updates.
    """

    def __init__(
        self,
        port: Optional[StatStore] = None,
        policy: Callable[[ObservationKind, str], float] = half_life_days,
        log_fn: Optional[Callable[[str], None]] = None,
    ):
        self.port = port if port is not None else InMemoryStatStore()
        self.policy = policy
        self.log_fn = log_fn or _debug
        self.write_lock = threading.RLock()

    def upsert(self, kind: ObservationKind, key: str, increment: float, now: dt.datetime) -> Optional[PatternStat]:
        """Decay the stored score to `now`, add `increment`, clamp to [0, 1]. Returns the row, if any."""
        with self.write_lock:
            hl = max(1.0, float(self.policy(kind, key)))
            row = self.port.get(kind, key)
            if row is None:
                if increment <= 0:
                    return None
                row = PatternStat(
                    kind=kind,
                    key=key,
                    score=_clamp01(increment),
                    count=1,
                    first_seen_at=now,
                    last_seen_at=now,
                    half_life_days=hl,
                )
            else:
                elapsed = max(0.0, (now - row.last_seen_at).total_seconds()) / SECONDS_PER_DAY
                row.score = _clamp01(row.score * decay_factor(elapsed, hl) + increment)
                row.count += 1
                row.last_seen_at = now
                row.half_life_days = hl
            self.port.put(row)
            return row

    def apply(self, observations: Iterable[Observation], now: dt.datetime) -> int:
        """Upsert every observation then save once. Errors are reported, never raised."""
        n = 0
        try:
            with self.write_lock:
                for o in observations:
                    self.upsert(o.kind, o.key, o.strength, now)
                    n += 1
                self.port.save()
        except Exception as e:
            self.log_fn(f"apply failed after {n} observations: {type(e).__name__}: {e}")
        return n

    def fetch(self, predicate: Optional[Callable[[PatternStat], bool]] = None) -> List[PatternStat]:
        # Readers take the write lock too; the port's row map is not safe to iterate mid-insert.
        with self.write_lock:
            return self.port.fetch(predicate)

    def wipe(self) -> None:
        with self.write_lock:
            self.port.delete_all()
            self.port.save()
