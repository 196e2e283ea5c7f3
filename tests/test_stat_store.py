"""Tests for decayed upserts, the half-life policy and the JSON stat store."""

import datetime as dt
import threading

import orjson
import pytest

from clarity_signals.observations import Observation, ObservationKind as K
from clarity_signals.stat_store import (
    STATS_FILENAME,
    DecayedStatStore,
    InMemoryStatStore,
    JsonStatStore,
    decay_factor,
    half_life_days,
)

DAY = dt.timedelta(days=1)


class TestHalfLifePolicy:

    @pytest.mark.parametrize("kind,key,expected", [
        (K.RELEASE_PATTERN, "release:settling", 7),
        (K.CONSTRAINT_TRIGGER, "trigger:low_sleep", 7),
        (K.CONSTRAINTS_SENSITIVITY, "time_pressure", 7),
        (K.CONSTRAINT_TRIGGER, "trigger:noise", 365),
        (K.WORKFLOW_PREFERENCE, "question_light", 180),
        (K.STYLE_PREFERENCE, "prefers_no_fluff", 120),
        (K.STYLE_PREFERENCE, "bullets", 90),
        (K.WORKFLOW_PREFERENCE, "options_first", 90),
        (K.NARRATIVE_PATTERN, "replay_loop", 14),
    ])
    def test_policy(self, kind, key, expected):
        assert half_life_days(kind, key) == expected

    def test_decay_factor_half_at_half_life(self):
        assert decay_factor(90.0, 90.0) == 0.5

    def test_decay_factor_strictly_decreasing(self):
        values = [decay_factor(d, 14.0) for d in (0, 1, 5, 14, 30)]
        assert values[0] == 1.0
        assert all(a > b for a, b in zip(values, values[1:]))


class TestUpsert:

    def test_first_positive_creates_row(self, stats, now):
        row = stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now)
        assert row.score == 0.7
        assert row.count == 1
        assert row.first_seen_at == row.last_seen_at == now
        assert row.half_life_days == 90

    def test_negative_never_creates_row(self, stats, now):
        assert stats.upsert(K.CONSTRAINT_TRIGGER, "trigger:noise", -0.6, now) is None
        assert stats.fetch() == []

    def test_score_halves_after_one_half_life(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.8, now)
        row = stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.0, now + 90 * DAY)
        assert row.score == pytest.approx(0.4)
        assert row.count == 2
        assert row.last_seen_at == now + 90 * DAY
        assert row.first_seen_at == now

    def test_longer_gap_gives_lower_score(self, now):
        scores = []
        for gap in (5, 10, 20):
            s = DecayedStatStore(InMemoryStatStore())
            s.upsert(K.NARRATIVE_PATTERN, "replay_loop", 0.6, now)
            scores.append(s.upsert(K.NARRATIVE_PATTERN, "replay_loop", 0.4, now + gap * DAY).score)
        assert scores[0] > scores[1] > scores[2]

    def test_score_clamped(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now)
        assert stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now).score == 1.0
        assert stats.upsert(K.STYLE_PREFERENCE, "bullets", -5.0, now).score == 0.0

    def test_negative_on_existing_row_lowers_score(self, stats, now):
        stats.upsert(K.CONSTRAINT_TRIGGER, "trigger:noise", 0.8, now)
        assert stats.upsert(K.CONSTRAINT_TRIGGER, "trigger:noise", -0.6, now).score == pytest.approx(0.2)

    def test_clock_going_backwards_does_not_grow_score(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.5, now)
        assert stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.0, now - 10 * DAY).score == 0.5

    def test_half_life_refreshed_from_policy(self, now):
        port = InMemoryStatStore()
        DecayedStatStore(port, policy=lambda k, key: 10.0).upsert(K.STYLE_PREFERENCE, "bullets", 0.8, now)
        row = DecayedStatStore(port, policy=lambda k, key: 20.0).upsert(
            K.STYLE_PREFERENCE, "bullets", 0.0, now + 20 * DAY)
        assert row.half_life_days == 20.0
        assert row.score == pytest.approx(0.4)

    def test_concurrent_upserts_lose_nothing(self, stats, now):
        def worker():
            for _ in range(50):
                stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.01, now)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert stats.fetch()[0].count == 200

    def test_fetch_while_new_keys_are_inserted(self, stats, now):
        done = threading.Event()

        def writer():
            for i in range(2000):
                stats.upsert(K.NARRATIVE_PATTERN, f"k{i}", 0.5, now)
            done.set()

        t = threading.Thread(target=writer)
        t.start()
        seen = 0
        while not done.is_set():
            seen = max(seen, len(stats.fetch()))
        t.join()
        assert len(stats.fetch()) == 2000
        assert seen <= 2000


class TestApply:

    def test_apply_saves_once(self, stats, mem_port, now):
        n = stats.apply([
            Observation(K.STYLE_PREFERENCE, "bullets", 0.7),
            Observation(K.STYLE_PREFERENCE, "concise", 0.5),
            Observation(K.CONSTRAINT_TRIGGER, "trigger:noise", -0.6),
        ], now)
        assert n == 3
        assert mem_port.save_count == 1
        assert {r.key for r in stats.fetch()} == {"bullets", "concise"}

    def test_apply_swallows_store_errors(self, now):
        class Broken(InMemoryStatStore):
            def put(self, row):
                raise OSError("disk full")

        messages = []
        s = DecayedStatStore(Broken(), log_fn=messages.append)
        s.apply([Observation(K.STYLE_PREFERENCE, "bullets", 0.7)], now)
        assert messages and "disk full" in messages[0]

    def test_wipe(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now)
        stats.wipe()
        assert stats.fetch() == []

    def test_fetch_predicate(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now)
        stats.upsert(K.RELEASE_PATTERN, "release:settling", 0.4, now)
        assert [r.key for r in stats.fetch(lambda r: r.kind is K.RELEASE_PATTERN)] == ["release:settling"]

    def test_fetch_returns_copies(self, stats, now):
        stats.upsert(K.STYLE_PREFERENCE, "bullets", 0.7, now)
        stats.fetch()[0].score = 0.0
        assert stats.fetch()[0].score == 0.7


class TestJsonStatStore:

    def test_round_trip(self, tmp_path, now):
        s = DecayedStatStore(JsonStatStore(str(tmp_path)))
        s.apply([Observation(K.CONSTRAINT_TRIGGER, "trigger:crowds", 0.4)], now)

        reloaded = JsonStatStore(str(tmp_path)).fetch()
        assert len(reloaded) == 1
        row = reloaded[0]
        assert (row.kind, row.key, row.score, row.count) == (K.CONSTRAINT_TRIGGER, "trigger:crowds", 0.4, 1)
        assert row.last_seen_at == now

    def test_persisted_with_raw_kind_names(self, tmp_path, now):
        s = DecayedStatStore(JsonStatStore(str(tmp_path)))
        s.apply([Observation(K.STYLE_PREFERENCE, "bullets", 0.7)], now)
        data = orjson.loads((tmp_path / STATS_FILENAME).read_bytes())
        assert data[0]["kind"] == "style_preference"

    def test_activity_log(self, tmp_path, now):
        s = DecayedStatStore(JsonStatStore(str(tmp_path)))
        s.apply([Observation(K.STYLE_PREFERENCE, "bullets", 0.7)], now)
        s.wipe()
        log = (tmp_path / "activity.log").read_text(encoding="utf-8")
        assert "STAT_UPSERT" in log
        assert "STAT_WIPE" in log

    def test_unknown_kind_rows_skipped(self, tmp_path, now):
        good = {
            "kind": "style_preference", "key": "bullets", "score": 0.5, "count": 2,
            "first_seen_at": now.isoformat(), "last_seen_at": now.isoformat(), "half_life_days": 90,
        }
        bad = dict(good, kind="mood_preference")
        (tmp_path / STATS_FILENAME).write_bytes(orjson.dumps([good, bad]))
        rows = JsonStatStore(str(tmp_path)).fetch()
        assert [r.key for r in rows] == ["bullets"]

    def test_corrupt_file_starts_empty(self, tmp_path):
        (tmp_path / STATS_FILENAME).write_text("[{", encoding="utf-8")
        assert JsonStatStore(str(tmp_path)).fetch() == []
