"""
GutSound Contact Quality Tests

Coverage:
- Spectral band ratios and rolloff
- Temporal envelope criteria
- In-air rejection of flat (table / hum) recordings
"""

import numpy as np
import pytest

from gutsound.config import ContactConfig
from gutsound.contact import assess_contact, spectral_band_ratios, temporal_criteria
from gutsound.filters import FilterCache, apply_zero_phase
from gutsound.synthetic import table_hum


SR = 44100


def _tone(freq_hz: float, seconds: float, amplitude: float = 0.3) -> np.ndarray:
    t = np.arange(int(seconds * SR)) / SR
    return amplitude * np.sin(2 * np.pi * freq_hz * t)


def _on_off(seconds: float = 30.0, on_s: float = 0.5, period_s: float = 2.0) -> np.ndarray:
    """150 Hz tone gated on for on_s out of every period_s."""
    samples = _tone(150, seconds)
    t = np.arange(len(samples)) / SR
    samples[(t % period_s) >= on_s] = 0.0
    return samples


# =============================================================================
# Test: Spectral Criteria
# =============================================================================


class TestSpectralRatios:
    """Test low/high band energy ratios and rolloff."""

    def test_low_tone_is_low_dominant(self):
        low, high, rolloff = spectral_band_ratios(_tone(150, 0.1), SR)
        assert low > 0.9
        assert high < 0.01
        assert rolloff <= 350

    def test_high_tone_is_high_dominant(self):
        low, high, rolloff = spectral_band_ratios(_tone(1000, 0.1), SR)
        assert low < 0.01
        assert high > 0.9
        assert rolloff > 900

    def test_silence_defaults(self):
        """No energy: low ratio 0, high ratio 1."""
        low, high, _ = spectral_band_ratios(np.zeros(4096), SR)
        assert low == 0.0
        assert high == 1.0


# =============================================================================
# Test: Temporal Criteria
# =============================================================================


class TestTemporalCriteria:
    """Test envelope variability checks."""

    def test_bursty_envelope_meets_all_criteria(self):
        result = temporal_criteria(_on_off(), SR)
        assert result.has_temporal_variability
        assert result.has_burst_peaks
        assert result.has_energy_variance
        assert result.temporal_criteria_met == 3

    def test_flat_envelope_meets_none(self):
        result = temporal_criteria(_tone(150, 10.0), SR)
        assert result.coefficient_of_variation < 0.01
        assert result.burst_peak_count == 0
        assert result.temporal_criteria_met == 0

    def test_too_few_windows(self):
        """Fewer than min_windows windows gives the default (all unmet)."""
        result = temporal_criteria(_tone(150, 0.3), SR)
        assert result.temporal_criteria_met == 0
        assert result.energy_variance_ratio == 1.0

    def test_energy_floor_bounds_variance_ratio(self):
        """Silent windows are floored, so the ratio stays finite."""
        result = temporal_criteria(_on_off(), SR, ContactConfig(energy_floor=1e-4))
        assert np.isfinite(result.energy_variance_ratio)
        assert result.energy_variance_ratio == pytest.approx(
            np.sqrt(np.mean(_tone(150, 0.1) ** 2)) / 1e-4, rel=0.05
        )


# =============================================================================
# Test: Contact Verdict
# =============================================================================


class TestAssessContact:
    """Test the combined on-body verdict."""

    def test_table_hum_rejected_as_in_air(self):
        """A device resting on a vibrating table has a flat envelope."""
        design = FilterCache().gut(SR)
        filtered = apply_zero_phase(table_hum(10.0, SR), design)
        result = assess_contact(filtered, SR)

        assert result.temporal_criteria_met == 0
        assert not result.is_on_body
        assert result.should_reject_as_in_air

    def test_gut_like_spectrum_with_flat_envelope_rejected(self):
        """A steady 150 Hz tone passes every spectral check but never bursts."""
        sr = 8000
        t = np.arange(10 * sr) / sr
        result = assess_contact(0.3 * np.sin(2 * np.pi * 150 * t), sr)

        assert result.spectral_criteria_met == 3
        assert result.temporal_criteria_met == 0
        assert not result.is_on_body
        assert result.should_reject_as_in_air

    def test_short_input_rejected(self):
        result = assess_contact(np.zeros(500), SR)
        assert not result.is_on_body
        assert result.should_reject_as_in_air
        assert result.contact_confidence == 0.0
        assert result.spectral_rolloff == SR / 2

    def test_bursty_low_tone_is_on_body(self):
        """Low-frequency bursts meet both spectral and temporal thresholds."""
        result = assess_contact(_on_off(), SR)
        assert result.spectral_criteria_met >= 2
        assert result.temporal_criteria_met == 3
        assert result.is_on_body
        assert not result.should_reject_as_in_air

    def test_confidence_is_mean_of_criteria_fractions(self):
        result = assess_contact(_on_off(), SR)
        expected = (result.spectral_criteria_met / 3 + result.temporal_criteria_met / 3) / 2
        assert result.contact_confidence == pytest.approx(expected)

    def test_to_dict_nests_criteria(self):
        data = assess_contact(_on_off(), SR).to_dict()
        assert set(data["spectral"]) >= {"is_low_freq_dominant", "spectral_criteria_met"}
        assert set(data["temporal"]) >= {"coefficient_of_variation", "temporal_criteria_met"}
