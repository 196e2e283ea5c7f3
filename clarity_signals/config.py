# config.py
"""Configuration management for the signal pipeline."""

import os
from typing import Any, Dict

import yaml


# ---------------------------------------------------------------------------
# Config Loading
# ---------------------------------------------------------------------------

HERE = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_PATH = os.environ.get("CLARITY_SIGNALS_CONFIG") or os.path.join(HERE, "signals_config.yaml")


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


CFG: Dict[str, Any] = {}


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    global CFG
    try:
        CFG = _load_yaml(path)
    except Exception as e:
        CFG = {}
        print(f"[signals] failed to load config '{path}': {e}")
    return CFG


def cfg_get(path: str, default: Any) -> Any:
    """Get config value by dot-separated path (e.g., 'learning.sticky_cap')."""
    cur: Any = CFG
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


# Load config on import
load_config(DEFAULT_CONFIG_PATH)

# Storage
STORAGE_DIR: str = str(cfg_get("storage_dir", "") or "")

# Redaction
CARD_CONTEXT_WINDOW = int(cfg_get("redaction.card_context_window", 28))

# Observation bounds
OBS_MAX_PER_ENTRY = int(cfg_get("observations.max_per_entry", 16))
OBS_RESERVE_PROFILE = int(cfg_get("observations.reserve_profile", 3))
OBS_RESERVE_DOMAIN = int(cfg_get("observations.reserve_domain", 4))
OBS_SITUATIONAL_MAX = int(cfg_get("observations.situational_max", 6))
OBS_PROFILE_MAX = int(cfg_get("observations.profile_max", 6))
OBS_DHARMA_MAX = int(cfg_get("observations.dharma_max", 10))

# Projection lanes
LANE_STICKY_CAP = int(cfg_get("learning.sticky_cap", 8))
LANE_SEASONAL_CAP = int(cfg_get("learning.seasonal_cap", 10))
LANE_EPHEMERAL_CAP = int(cfg_get("learning.ephemeral_cap", 4))
LANE_GLOBAL_CAP = int(cfg_get("learning.global_cap", 24))
LANE_MAX_PER_KIND = int(cfg_get("learning.max_per_kind_within_lane", 6))
EPHEMERAL_RECENCY_DAYS = float(cfg_get("learning.ephemeral_recency_days", 7.0))
EXPORT_CUE_LIMIT = int(cfg_get("learning.export_cue_limit", 12))

# Debug flags
REDACTION_DEBUG = bool(cfg_get("debug.redaction", False))
LEARNING_DEBUG = bool(cfg_get("debug.learning", False))
PIPELINE_DEBUG = bool(cfg_get("debug.pipeline", False))
