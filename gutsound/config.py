"""
GutSound Analysis Configuration

Frozen threshold sets for every analysis component.

Responsibilities:
- Default constants for filters, events, contact, heart, scoring, readiness
- JSON override loading (validated against schemas/config.schema.json)

Invariants:
- Config objects are frozen and hashable
- Overrides produce a NEW AnalysisConfig; defaults are never mutated
- Vagal readiness weights are fixed and not overridable
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import jsonschema

from gutsound.filters import Band

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent / "schemas"


class ConfigError(ValueError):
    """Raised when a configuration override document is invalid."""
    pass


# =============================================================================
# Component Configs
# =============================================================================


@dataclass(frozen=True)
class FilterConfig:
    gut_low_hz: float = 100.0
    gut_high_hz: float = 450.0
    heart_low_hz: float = 20.0
    heart_high_hz: float = 80.0
    order: int = 3

    @property
    def gut_band(self) -> Band:
        return Band(self.gut_low_hz, self.gut_high_hz, self.order)

    @property
    def heart_band(self) -> Band:
        return Band(self.heart_low_hz, self.heart_high_hz, self.order)


@dataclass(frozen=True)
class EventConfig:
    """
    Event detection and classifier thresholds.

    Note:
        Spectral, harmonic and breath thresholds apply to the gut-band
        filtered signal. All durations are milliseconds.
    """
    window_ms: int = 100
    threshold_multiplier: float = 2.5
    fft_size: int = 2048

    # Duration gate
    min_duration_ms: float = 10.0
    max_duration_ms: float = 2000.0

    # Spectral (white noise)
    sfm_white_noise: float = 0.55
    sfm_auto_reject: float = 0.75
    bowel_low_hz: float = 100.0
    bowel_high_hz: float = 450.0
    bowel_min_ratio: float = 0.40
    zcr_max_gut: float = 0.22
    zcr_auto_reject: float = 0.35
    contrast_min_gut: float = 0.3

    # Harmonic (speech / music)
    min_harmonics: int = 3
    harmonic_tolerance: float = 0.05
    hnr_speech_db: float = 8.0
    f0_min_hz: float = 80.0
    f0_max_hz: float = 400.0
    min_f0_correlation: float = 0.3
    max_harmonics: int = 8

    # Breath artifact
    breath_min_ms: float = 400.0
    breath_max_ms: float = 3000.0
    breath_envelope_ms: float = 50.0
    breath_onset_ratio: float = 0.3
    breath_low_freq_hz: float = 200.0
    breath_low_freq_ratio: float = 0.6
    breath_confidence: float = 0.6

    # Burst validation
    burst_min_ms: float = 20.0
    burst_max_ms: float = 1500.0

    # Transient detection
    transient_gate: bool = False
    onset_window_samples: int = 256
    onset_mini_window: int = 16
    transient_slope: float = 10.0
    transient_energy_ratio: float = 5.0
    transient_max_ms: float = 100.0


@dataclass(frozen=True)
class ContactConfig:
    low_freq_hz: float = 200.0
    high_freq_hz: float = 400.0
    min_low_freq_ratio: float = 0.45
    max_high_freq_ratio: float = 0.15
    max_rolloff_hz: float = 350.0
    rolloff_fraction: float = 0.85
    window_ms: int = 100
    min_windows: int = 5
    min_cv: float = 0.12
    burst_peak_factor: float = 2.0
    min_burst_peaks: int = 2
    min_energy_variance_ratio: float = 3.0
    energy_floor: float = 1e-4
    min_spectral_criteria: int = 2
    min_temporal_criteria: int = 1


@dataclass(frozen=True)
class HeartConfig:
    min_bpm: float = 40.0
    max_bpm: float = 150.0
    min_peak_distance_ms: float = 400.0
    max_peak_distance_ms: float = 1500.0
    min_beats_for_bpm: int = 10
    min_beats_for_hrv: int = 20
    rmssd_min_ms: float = 20.0
    rmssd_max_ms: float = 80.0
    envelope_ms: float = 50.0
    peak_threshold_std: float = 0.5
    min_duration_s: float = 5.0
    expected_bpm: float = 75.0
    presence_min_s: float = 3.0
    presence_threshold: float = 0.01


@dataclass(frozen=True)
class ScoringConfig:
    """
    Motility / rhythmicity scoring constants.

    Note:
        epm_weight + active_weight should sum to 1.0 so the motility
        index stays on the 0-100 scale before clamping.
    """
    timeline_segments: int = 10
    epm_saturation: float = 20.0
    epm_weight: float = 0.7
    active_weight: float = 0.3
    quiet_below: int = 33
    active_from: int = 67
    fair_quality_penalty: float = 0.5


@dataclass(frozen=True)
class ReadinessConfig:
    baseline_days: int = 7
    default_intervention_fraction: float = 0.3
    min_timeline_segments: int = 4
    min_recording_s: float = 30.0
    relative_band: float = 15.0


@dataclass(frozen=True)
class AnalysisConfig:
    filters: FilterConfig = field(default_factory=FilterConfig)
    events: EventConfig = field(default_factory=EventConfig)
    contact: ContactConfig = field(default_factory=ContactConfig)
    heart: HeartConfig = field(default_factory=HeartConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)


DEFAULT_CONFIG = AnalysisConfig()


# =============================================================================
# Overrides
# =============================================================================


def apply_overrides(base: AnalysisConfig, overrides: dict[str, Any]) -> AnalysisConfig:
    """
    Return a copy of base with section values replaced.

    Args:
        base: Starting configuration
        overrides: Mapping of section name -> {field: value}

    Returns:
        New AnalysisConfig

    Raises:
        ConfigError: If a section or field name is unknown
    """
    sections = {}
    for section_name, values in overrides.items():
        if section_name not in {f.name for f in fields(AnalysisConfig)}:
            raise ConfigError(f"Unknown config section: {section_name}")
        section = getattr(base, section_name)
        known = {f.name for f in fields(section)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(
                f"Unknown keys in section '{section_name}': {sorted(unknown)}"
            )
        sections[section_name] = replace(section, **values)
    return replace(base, **sections)


def load_config(path: Path) -> AnalysisConfig:
    """
    Load a JSON override document and merge it onto the defaults.

    Raises:
        ConfigError: If the file is missing, not JSON, or fails schema validation
    """
    try:
        document = json.loads(Path(path).read_text())
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file is not valid JSON: {e}") from e

    schema = json.loads((SCHEMA_DIR / "config.schema.json").read_text())
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(
        validator.iter_errors(document),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    if errors:
        messages = [
            f"{'.'.join(str(p) for p in e.absolute_path) or '(root)'}: {e.message}"
            for e in errors
        ]
        raise ConfigError("Invalid config: " + "; ".join(messages))

    config = apply_overrides(DEFAULT_CONFIG, document)
    logger.debug(f"Loaded config overrides from {path}: {sorted(document)}")
    return config
