"""
GutSound Configuration Tests

Coverage:
- Defaults and immutability
- In-memory overrides
- JSON override files (schema-validated)
"""

import dataclasses
import json

import pytest

from gutsound.config import (
    DEFAULT_CONFIG,
    AnalysisConfig,
    ConfigError,
    apply_overrides,
    load_config,
)
from gutsound.filters import GUT_BAND, HEART_BAND


# =============================================================================
# Test: Defaults
# =============================================================================


class TestDefaults:
    """Test default threshold values."""

    def test_bands_match_filter_constants(self):
        assert DEFAULT_CONFIG.filters.gut_band == GUT_BAND
        assert DEFAULT_CONFIG.filters.heart_band == HEART_BAND

    def test_key_thresholds(self):
        assert DEFAULT_CONFIG.events.window_ms == 100
        assert DEFAULT_CONFIG.events.threshold_multiplier == 2.5
        assert DEFAULT_CONFIG.events.transient_gate is False
        assert DEFAULT_CONFIG.scoring.timeline_segments == 10
        assert DEFAULT_CONFIG.readiness.baseline_days == 7

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CONFIG.events.window_ms = 50

    def test_hashable(self):
        assert hash(AnalysisConfig()) == hash(DEFAULT_CONFIG)


# =============================================================================
# Test: Overrides
# =============================================================================


class TestOverrides:
    """Test section overrides."""

    def test_override_returns_new_config(self):
        config = apply_overrides(DEFAULT_CONFIG, {"events": {"threshold_multiplier": 3.0}})
        assert config.events.threshold_multiplier == 3.0
        assert config.events.window_ms == 100
        assert DEFAULT_CONFIG.events.threshold_multiplier == 2.5

    def test_untouched_sections_are_shared(self):
        config = apply_overrides(DEFAULT_CONFIG, {"heart": {"min_bpm": 45.0}})
        assert config.contact is DEFAULT_CONFIG.contact

    def test_unknown_section(self):
        with pytest.raises(ConfigError, match="Unknown config section"):
            apply_overrides(DEFAULT_CONFIG, {"display": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown keys"):
            apply_overrides(DEFAULT_CONFIG, {"events": {"window": 50}})


# =============================================================================
# Test: Override Files
# =============================================================================


class TestLoadConfig:
    """Test JSON override files."""

    def test_valid_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "events": {"transient_gate": True},
            "scoring": {"timeline_segments": 20},
        }))
        config = load_config(path)
        assert config.events.transient_gate is True
        assert config.scoring.timeline_segments == 20

    def test_empty_document_is_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{}")
        assert load_config(path) == DEFAULT_CONFIG

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{events:")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_config(path)

    def test_schema_violation_names_path(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"events": {"threshold_multiplier": -1}}))
        with pytest.raises(ConfigError, match=r"Invalid config: events\.threshold_multiplier"):
            load_config(path)

    def test_unknown_key_rejected_by_schema(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"heart": {"bpm": 70}}))
        with pytest.raises(ConfigError, match="Invalid config"):
            load_config(path)
