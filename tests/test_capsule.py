"""Tests for the capsule store and learned-cue export."""

import datetime as dt

import orjson

from clarity_signals.capsule import (
    CAPSULE_FILENAME,
    CapsuleStore,
    CapsuleTendency,
    equal_ignoring_ids,
    learned_cues_payload,
)


def _t(now, statement="Prefers bullet points", count=3, key="bullets"):
    return CapsuleTendency(
        statement=statement,
        evidence_count=count,
        first_seen_at=now - dt.timedelta(days=3),
        last_seen_at=now,
        source_kind="style_preference",
        source_key=key,
    )


class TestEquality:

    def test_ids_ignored(self, now):
        a, b = _t(now), _t(now)
        assert a.id != b.id
        assert a == b
        assert equal_ignoring_ids([a], [b])

    def test_order_ignored(self, now):
        x, y = _t(now, key="a"), _t(now, key="b")
        assert equal_ignoring_ids([x, y], [y, x])

    def test_content_difference_detected(self, now):
        assert not equal_ignoring_ids([_t(now, count=2)], [_t(now, count=3)])
        assert not equal_ignoring_ids([_t(now)], [])


class TestCapsuleStore:

    def test_defaults(self, capsule):
        assert capsule.learning_enabled() is True
        assert capsule.learning_reset_at() is None
        assert capsule.learned_tendencies() == []

    def test_clear_records_reset(self, capsule, now):
        capsule.set_learned_tendencies([_t(now)])
        capsule.clear_learned_tendencies(now)
        assert capsule.learned_tendencies() == []
        assert capsule.learning_reset_at() == now

    def test_persistence_round_trip(self, tmp_path, now):
        store = CapsuleStore(str(tmp_path))
        t = _t(now)
        store.set_learned_tendencies([t])
        store.set_learning_enabled(False)

        again = CapsuleStore(str(tmp_path))
        assert again.learning_enabled() is False
        loaded = again.learned_tendencies()
        assert loaded == [t]
        assert loaded[0].id == t.id

    def test_reset_marker_persisted(self, tmp_path, now):
        CapsuleStore(str(tmp_path)).clear_learned_tendencies(now)
        assert CapsuleStore(str(tmp_path)).learning_reset_at() == now

    def test_activity_log(self, tmp_path, now):
        store = CapsuleStore(str(tmp_path))
        store.set_learned_tendencies([_t(now)])
        store.clear_learned_tendencies(now)
        log = (tmp_path / "activity.log").read_text(encoding="utf-8")
        assert "CAPSULE_SET_TENDENCIES" in log
        assert "CAPSULE_RESET" in log

    def test_corrupt_file_starts_fresh(self, tmp_path):
        (tmp_path / CAPSULE_FILENAME).write_text("nope", encoding="utf-8")
        assert CapsuleStore(str(tmp_path)).learned_tendencies() == []

    def test_wipe_removes_file(self, tmp_path, now):
        store = CapsuleStore(str(tmp_path))
        store.set_learned_tendencies([_t(now)])
        store.wipe()
        assert not (tmp_path / CAPSULE_FILENAME).exists()
        assert store.learned_tendencies() == []

    def test_file_layout(self, tmp_path, now):
        CapsuleStore(str(tmp_path)).set_learned_tendencies([_t(now)])
        data = orjson.loads((tmp_path / CAPSULE_FILENAME).read_bytes())
        assert data["version"] == 1
        assert data["learned_tendencies"][0]["source_key"] == "bullets"


class TestLearnedCuesPayload:

    def test_none_when_disabled(self, capsule, now):
        capsule.set_learned_tendencies([_t(now)])
        capsule.set_learning_enabled(False)
        assert learned_cues_payload(capsule) is None

    def test_none_when_empty(self, capsule):
        assert learned_cues_payload(capsule) is None

    def test_bounds(self, capsule, now):
        capsule.set_learned_tendencies([
            _t(now, statement="x" * 300, count=5000),
            _t(now, statement="   ", count=1),
            _t(now, statement="Prefers checklists", count=0),
        ])
        cues = learned_cues_payload(capsule)
        assert len(cues) == 2
        assert len(cues[0]["statement"]) == 140
        assert cues[0]["evidence_count"] == 999
        assert cues[1]["evidence_count"] == 1
        assert cues[1]["last_seen_at"] == "2025-03-14T09:30:00Z"

    def test_limit(self, capsule, now):
        capsule.set_learned_tendencies([_t(now, statement=f"s{i}") for i in range(20)])
        assert len(learned_cues_payload(capsule)) == 12
        assert len(learned_cues_payload(capsule, limit=3)) == 3
