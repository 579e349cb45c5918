"""
GutSound Event Detection Tests

Coverage:
- Adaptive threshold and candidate grouping
- Feature extractors (spectral, harmonic, breath, burst, transient)
- Classifier ensemble: every stage runs, rejections keep stage order
- Event timing and ids
"""

from dataclasses import replace

import numpy as np
import pytest

from gutsound.config import EventConfig
from gutsound.events import (
    CandidateEvent,
    FilterKind,
    analyze_breath,
    analyze_harmonic,
    analyze_spectral,
    classify_event,
    compute_threshold,
    detect_candidates,
    detect_events,
    detect_transient,
    validate_burst,
)
from gutsound.synthetic import breath_noise, gut_sound
from tests.conftest import tone_bursts


SR = 44100
WINDOW = 4410


def _tone(freq_hz: float, n: int, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(n) / SR
    return amplitude * np.sin(2 * np.pi * freq_hz * t)


def _harmonic_complex(f0: float, count: int, n: int) -> np.ndarray:
    t = np.arange(n) / SR
    return sum(0.2 * np.sin(2 * np.pi * f0 * h * t) for h in range(1, count + 1))


# =============================================================================
# Test: Threshold & Candidates
# =============================================================================


class TestCandidates:
    """Test adaptive threshold and window grouping."""

    def test_threshold_is_mean_plus_k_std(self):
        energy = np.array([1.0, 3.0])
        assert compute_threshold(energy, 2.5) == pytest.approx(2.0 + 2.5 * 1.0)

    def test_threshold_of_empty_energy(self):
        assert compute_threshold(np.zeros(0), 2.5) == 0.0

    def test_candidates_group_consecutive_windows(self):
        energy = np.array([0.0, 0.0, 1.0, 1.5, 0.0, 2.0])
        candidates = detect_candidates(energy, 0.5)
        assert candidates == [
            CandidateEvent(start_window=2, end_window=3, peak_energy=1.5),
            CandidateEvent(start_window=5, end_window=5, peak_energy=2.0),
        ]

    def test_threshold_is_strict(self):
        """Windows exactly at threshold are not candidates."""
        assert detect_candidates(np.ones(5), 1.0) == []


# =============================================================================
# Test: Feature Extractors
# =============================================================================


class TestSpectral:
    """Test white-noise / gut-likeness features."""

    def test_too_short_returns_none(self):
        assert analyze_spectral(np.ones(100), SR) is None

    def test_white_noise_detected(self):
        rng = np.random.default_rng(0)
        features = analyze_spectral(rng.uniform(-0.5, 0.5, 4096), SR)
        assert features.is_white_noise
        assert not features.is_likely_gut_sound
        assert features.zcr > 0.35

    def test_in_band_tone_is_gut_like(self):
        features = analyze_spectral(_tone(200, 4096), SR)
        assert not features.is_white_noise
        assert features.is_likely_gut_sound
        assert features.bowel_peak_ratio > 0.9
        assert 0.0 <= features.sfm < 0.55


class TestHarmonic:
    """Test harmonic (speech / music) analysis."""

    def test_too_short_returns_none(self):
        assert analyze_harmonic(np.ones(1000), SR) is None

    def test_silence_has_no_harmonics(self):
        features = analyze_harmonic(np.zeros(4096), SR)
        assert not features.is_harmonic
        assert features.fundamental_hz is None
        assert features.hnr_db == 0.0

    def test_harmonic_complex_detected(self):
        features = analyze_harmonic(_harmonic_complex(150, 5, 4096), SR)
        assert features.is_harmonic
        assert features.fundamental_hz == pytest.approx(150, abs=5)
        assert features.harmonic_count >= 3
        assert np.isfinite(features.hnr_db)

    def test_noise_is_not_harmonic(self):
        rng = np.random.default_rng(3)
        features = analyze_harmonic(rng.normal(0, 0.1, 4096), SR)
        assert not features.should_reject


class TestBreath:
    """Test breath artifact scoring."""

    def test_breath_swell_detected(self):
        features = analyze_breath(breath_noise(800, SR), SR)
        assert features.onset_ratio < 0.3
        assert features.low_freq_emphasis >= 0.6
        assert features.breath_confidence == pytest.approx(1.0)
        assert features.is_breath_artifact

    def test_short_burst_not_considered(self):
        """Events shorter than breath_min_ms are never breath."""
        features = analyze_breath(gut_sound(300, SR), SR)
        assert not features.is_breath_artifact
        assert features.onset_ratio == 1.0

    def test_long_event_not_considered(self):
        features = analyze_breath(np.ones(int(3.5 * SR)), SR)
        assert not features.is_breath_artifact


class TestBurst:
    """Test physiological burst length validation."""

    def test_valid_burst(self):
        result = validate_burst(np.ones(int(0.3 * SR)), SR)
        assert result.is_valid_burst
        assert result.duration_ms == pytest.approx(300)

    def test_too_short(self):
        result = validate_burst(np.ones(int(0.01 * SR)), SR)
        assert not result.is_valid_burst
        assert not result.is_constant_noise
        assert result.reason.startswith("Too short")

    def test_too_long_is_constant_noise(self):
        result = validate_burst(np.ones(int(1.6 * SR)), SR)
        assert not result.is_valid_burst
        assert result.is_constant_noise
        assert result.is_breathing_artifact

    def test_empty(self):
        result = validate_burst(np.zeros(0), SR)
        assert not result.is_valid_burst
        assert result.reason == "Empty event"


class TestTransient:
    """Test click / clatter detection."""

    def test_click_is_transient(self):
        samples = np.zeros(1000)
        samples[100] = 1.0
        features = detect_transient(samples, SR)
        assert features.is_transient
        assert features.energy_ratio == pytest.approx(1000.0)
        assert features.transient_duration_ms < 1.0

    def test_too_few_samples(self):
        features = detect_transient(np.ones(5), SR)
        assert not features.is_transient
        assert features.onset_slope == 0.0

    def test_zero_energy_window_contributes_no_slope(self):
        """A rise out of digital silence cannot produce an infinite slope."""
        samples = np.zeros(512)
        samples[32:] = 0.5
        features = detect_transient(samples, SR)
        assert np.isfinite(features.onset_slope)
        assert features.onset_slope == 0.0


# =============================================================================
# Test: Classifier Ensemble
# =============================================================================


class TestClassifyEvent:
    """Test that every classifier stage runs and rejections accumulate."""

    def test_long_noise_event_collects_rejections_in_stage_order(self):
        rng = np.random.default_rng(0)
        filtered = rng.uniform(-0.5, 0.5, 40 * WINDOW)
        candidate = CandidateEvent(start_window=5, end_window=29, peak_energy=0.3)

        event = classify_event(candidate, 1, filtered, SR, WINDOW)

        assert event.duration_ms == 2500
        assert [r.filter for r in event.rejections] == [
            FilterKind.DURATION_MAX,
            FilterKind.SPECTRAL_WHITE_NOISE,
            FilterKind.BURST_VALIDATION,
        ]
        assert not event.accepted

    def test_all_features_attached_even_when_rejected(self):
        rng = np.random.default_rng(0)
        filtered = rng.uniform(-0.5, 0.5, 40 * WINDOW)
        candidate = CandidateEvent(start_window=5, end_window=29, peak_energy=0.3)

        event = classify_event(candidate, 1, filtered, SR, WINDOW)

        assert event.spectral is not None
        assert event.harmonic is not None
        assert event.breath is not None
        assert event.burst is not None
        assert event.transient is not None

    def test_transient_gate_off_by_default(self):
        samples = np.zeros(10 * WINDOW)
        samples[2 * WINDOW + 50] = 1.0
        candidate = CandidateEvent(start_window=2, end_window=2, peak_energy=0.01)

        event = classify_event(candidate, 1, samples, SR, WINDOW)
        assert event.transient.is_transient
        assert FilterKind.TRANSIENT not in [r.filter for r in event.rejections]

    def test_transient_gate_rejects_clicks(self):
        samples = np.zeros(10 * WINDOW)
        samples[2 * WINDOW + 50] = 1.0
        candidate = CandidateEvent(start_window=2, end_window=2, peak_energy=0.01)
        config = replace(EventConfig(), transient_gate=True)

        event = classify_event(candidate, 1, samples, SR, WINDOW, config)
        assert FilterKind.TRANSIENT in [r.filter for r in event.rejections]

    def test_duration_min(self):
        samples = _tone(200, 10 * WINDOW)
        candidate = CandidateEvent(start_window=2, end_window=2, peak_energy=0.3)
        config = replace(EventConfig(), min_duration_ms=150)

        event = classify_event(candidate, 1, samples, SR, WINDOW, config)
        assert event.rejections[0].filter == FilterKind.DURATION_MIN
        assert event.rejections[0].values == {"duration_ms": 100.0}

    def test_trace_is_json_ready(self):
        samples = _tone(200, 10 * WINDOW)
        candidate = CandidateEvent(start_window=2, end_window=4, peak_energy=0.3)
        trace = classify_event(candidate, 7, samples, SR, WINDOW).to_trace()

        assert trace["event_id"] == 7
        assert trace["start_ms"] == 200.0
        assert trace["end_ms"] == 500.0
        assert isinstance(trace["spectral"], dict)
        assert isinstance(trace["rejection_reasons"], list)


# =============================================================================
# Test: Detection
# =============================================================================


class TestDetectEvents:
    """Test the full detection pass."""

    def test_bursts_become_events_in_time_order(self):
        detection = detect_events(tone_bursts(), SR)

        assert len(detection.energy) == 100
        assert [e.event_id for e in detection.events] == [1, 2, 3]
        assert [e.start_ms for e in detection.events] == [2000.0, 5000.0, 8000.0]
        assert all(e.duration_ms == 300.0 for e in detection.events)

    def test_pure_tone_bursts_accepted(self):
        detection = detect_events(tone_bursts(), SR)
        assert len(detection.accepted) == 3
        assert detection.rejected == []

    def test_silence_has_no_events(self):
        detection = detect_events(np.zeros(5 * SR), SR)
        assert detection.events == []
        assert detection.threshold == 0.0

    def test_window_size_follows_config(self):
        detection = detect_events(np.zeros(SR), SR, replace(EventConfig(), window_ms=50))
        assert detection.window_size == 2205
        assert len(detection.energy) == 20
