"""End-to-end tests for the per-entry pipeline."""

import datetime as dt

from clarity_signals.capsule import CapsuleStore
from clarity_signals.observations import ObservationKind as K
from clarity_signals.pipeline import SignalPipeline
from clarity_signals.redaction_dictionary import RedactionDictionary

DAY = dt.timedelta(days=1)

ENTRY = "Step by step please, and a tldr. My card is 4111 1111 1111 1111, email a@b.com"


def _statements(pipeline):
    return [t.statement for t in pipeline.capsule.learned_tendencies()]


class TestProcessEntry:

    def test_redacts_and_learns(self, now):
        p = SignalPipeline()
        res = p.process_entry(ENTRY, now)
        assert res.redacted_text == (
            "Step by step please, and a tldr. My card is [CARD], email [EMAIL]"
        )
        assert res.did_redact is True
        assert res.learned is True
        assert ("steps" in res.summary.desired_output_tags) and ("summary" in res.summary.desired_output_tags)
        assert (K.STYLE_PREFERENCE, "bullets") in {(o.kind, o.key) for o in res.observations}
        assert "Prefers bullet points" in _statements(p)

    def test_custom_terms_from_dictionary(self, now):
        p = SignalPipeline(dictionary=RedactionDictionary(terms=["Priya"]))
        assert p.process_entry("Lunch with Priya was lovely", now).redacted_text == "Lunch with [CUSTOM] was lovely"

    def test_learning_disabled_skips_stats(self, now):
        capsule = CapsuleStore()
        capsule.set_learning_enabled(False)
        p = SignalPipeline(capsule=capsule)
        res = p.process_entry(ENTRY, now)
        assert res.did_redact is True
        assert res.learned is False
        assert p.stats.fetch() == []

    def test_learning_failure_does_not_touch_redaction(self, now, monkeypatch):
        p = SignalPipeline(log_fn=lambda _m: None)

        def boom(*_a, **_k):
            raise RuntimeError("stats offline")

        monkeypatch.setattr(p.stats, "apply", boom)
        res = p.process_entry(ENTRY, now)
        assert "[CARD]" in res.redacted_text
        assert res.learned is False

    def test_observations_only_from_redacted_text(self, now):
        p = SignalPipeline()
        res = p.process_entry("I live in France, write to me at france@example.com", now)
        assert "france@example.com" not in res.redacted_text
        assert all("example" not in o.key for o in res.observations)


class TestResetLearning:

    def test_reset_clears_and_suppresses(self, now):
        p = SignalPipeline()
        p.process_entry(ENTRY, now)
        assert _statements(p)

        p.reset_learning(now + DAY)
        assert p.stats.fetch() == []
        assert p.capsule.learned_tendencies() == []
        assert p.capsule.learning_reset_at() == now + DAY

        p.process_entry(ENTRY, now + 2 * DAY)
        assert "Prefers bullet points" in _statements(p)


class TestStorageDir:

    def test_everything_persisted_under_one_dir(self, tmp_path, now):
        p = SignalPipeline.from_storage_dir(str(tmp_path))
        p.dictionary.add("Priya")
        p.process_entry("Step by step please. Priya says hi.", now)

        again = SignalPipeline.from_storage_dir(str(tmp_path))
        assert again.dictionary.terms == ["Priya"]
        assert any(r.key == "bullets" for r in again.stats.fetch())
        assert "Prefers bullet points" in _statements(again)

    def test_empty_dir_stays_in_memory(self, tmp_path):
        p = SignalPipeline.from_storage_dir("")
        assert p.capsule.path is None
        assert list(tmp_path.iterdir()) == []
