"""Tests for privacy-safe previews and the YAML config layer."""

import pytest

from clarity_signals import config
from clarity_signals.privacy_utils import contains_likely_pii, safe_preview, short_hash


class TestPrivacyUtils:

    def test_short_hash_is_stable_and_short(self):
        assert short_hash("hello") == short_hash("hello")
        assert len(short_hash("hello")) == 12
        assert short_hash("hello") != short_hash("hello!")

    def test_safe_preview_redacts(self):
        assert safe_preview("mail a@b.com\nthanks") == "mail [EMAIL] thanks"

    def test_safe_preview_truncates(self):
        out = safe_preview("word " * 100, max_len=20)
        assert len(out) <= 20
        assert out.endswith("...")

    def test_contains_likely_pii(self):
        assert contains_likely_pii("ring 07700 900123")
        assert not contains_likely_pii("a quiet afternoon")
        assert contains_likely_pii("lunch with Priya", ["priya"])


@pytest.fixture
def restore_config():
    yield
    config.load_config(config.DEFAULT_CONFIG_PATH)


class TestConfig:

    def test_shipped_defaults(self):
        assert config.cfg_get("observations.max_per_entry", None) == 16
        assert config.cfg_get("learning.global_cap", None) == 24
        assert config.CARD_CONTEXT_WINDOW == 28

    def test_missing_path_returns_default(self):
        assert config.cfg_get("nope.not.here", "fallback") == "fallback"

    def test_load_config_from_file(self, tmp_path, restore_config):
        p = tmp_path / "custom.yaml"
        p.write_text("learning:\n  sticky_cap: 3\n", encoding="utf-8")
        config.load_config(str(p))
        assert config.cfg_get("learning.sticky_cap", 8) == 3
        assert config.cfg_get("learning.seasonal_cap", 10) == 10

    def test_unreadable_config_falls_back_to_empty(self, tmp_path, restore_config, capsys):
        config.load_config(str(tmp_path / "missing.yaml"))
        assert config.CFG == {}
        assert "[signals] failed to load config" in capsys.readouterr().out
