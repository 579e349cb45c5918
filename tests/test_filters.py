"""
GutSound Filter Tests

Coverage:
- Design validation (realizable bands only)
- Section layout
- Magnitude response at passband, cutoff and stopband
- Causal / zero-phase application
- Filter cache identity and isolation
"""

import numpy as np
import pytest

from gutsound.filters import (
    GUT_BAND,
    HEART_BAND,
    Band,
    FilterCache,
    FilterDesignError,
    apply_causal,
    apply_zero_phase,
    design_bandpass,
    measure_attenuation_db,
)


SR = 44100


def _sine(freq_hz: float, seconds: float = 1.0, sr: int = SR) -> np.ndarray:
    t = np.arange(int(seconds * sr)) / sr
    return np.sin(2 * np.pi * freq_hz * t)


# =============================================================================
# Test: Design
# =============================================================================


class TestDesign:
    """Test bandpass design and validation."""

    def test_section_count_is_twice_order(self):
        """An order-n bandpass has n highpass + n lowpass sections."""
        design = design_bandpass(100, 450, 3, SR)
        assert design.num_sections == 6
        assert design.sos.shape == (6, 6)

    def test_sections_are_normalized(self):
        """Every section has a0 == 1."""
        design = design_bandpass(20, 80, 2, SR)
        np.testing.assert_allclose(design.sos[:, 3], 1.0)

    def test_highpass_sections_come_first(self):
        """The highpass half has its zeros at DC, the lowpass half at Nyquist."""
        design = design_bandpass(100, 450, 3, SR)
        for section in design.sos[:3]:
            assert np.sum(section[:3]) == pytest.approx(0.0, abs=1e-12)
        for section in design.sos[3:]:
            assert section[0] - section[1] + section[2] == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize(
        "low,high,order,sr",
        [
            (100, 450, 3, 800),    # high cutoff above Nyquist
            (100, 400, 3, 800),    # high cutoff at Nyquist
            (0, 450, 3, SR),       # zero low cutoff
            (-5, 450, 3, SR),      # negative low cutoff
            (450, 100, 3, SR),     # inverted band
            (200, 200, 3, SR),     # empty band
            (100, 450, 0, SR),     # no sections
        ],
    )
    def test_unrealizable_band_raises(self, low, high, order, sr):
        """Invalid bands raise FilterDesignError."""
        with pytest.raises(FilterDesignError):
            design_bandpass(low, high, order, sr)


# =============================================================================
# Test: Magnitude Response
# =============================================================================


class TestResponse:
    """Test analytic magnitude response of the gut and heart bands."""

    def test_gut_band_passband_is_flat(self):
        """Geometric centre of the gut band passes within 1 dB."""
        design = design_bandpass(100, 450, 3, SR)
        assert measure_attenuation_db(design, 212) > -1.0

    def test_gut_band_cutoff_is_half_power(self):
        """The low cutoff sits at about -3 dB."""
        design = design_bandpass(100, 450, 3, SR)
        assert -3.5 < measure_attenuation_db(design, 100) < -2.5

    def test_gut_band_stopband(self):
        """Out-of-band tones are strongly attenuated on both sides."""
        design = design_bandpass(100, 450, 3, SR)
        assert measure_attenuation_db(design, 20) < -40
        assert measure_attenuation_db(design, 2000) < -40

    def test_heart_band_rejects_gut_band(self):
        """The cardiac band suppresses a 300 Hz gut tone."""
        design = design_bandpass(20, 80, 3, SR)
        assert measure_attenuation_db(design, 40) > -1.0
        assert measure_attenuation_db(design, 300) < -30


# =============================================================================
# Test: Application
# =============================================================================


class TestApplication:
    """Test causal and zero-phase filtering."""

    def test_causal_preserves_length(self):
        design = design_bandpass(100, 450, 3, SR)
        x = _sine(200, 0.5)
        assert len(apply_causal(x, design)) == len(x)

    def test_zero_phase_preserves_length(self):
        design = design_bandpass(100, 450, 3, SR)
        x = _sine(200, 0.5)
        assert len(apply_zero_phase(x, design)) == len(x)

    def test_empty_input_returns_empty(self):
        """Empty in, empty out (no exception)."""
        design = design_bandpass(100, 450, 3, SR)
        assert len(apply_causal(np.zeros(0), design)) == 0
        assert len(apply_zero_phase(np.zeros(0), design)) == 0

    def test_zero_phase_passes_in_band_tone(self):
        """A 200 Hz tone keeps its amplitude away from the edges."""
        design = design_bandpass(100, 450, 3, SR)
        x = _sine(200, 1.0)
        y = apply_zero_phase(x, design)
        middle = slice(SR // 4, 3 * SR // 4)
        rms_in = np.sqrt(np.mean(x[middle] ** 2))
        rms_out = np.sqrt(np.mean(y[middle] ** 2))
        assert rms_out == pytest.approx(rms_in, rel=0.05)

    def test_zero_phase_removes_out_of_band_tone(self):
        """A 20 Hz tone is removed by the gut band."""
        design = design_bandpass(100, 450, 3, SR)
        x = _sine(20, 1.0)
        y = apply_zero_phase(x, design)
        middle = slice(SR // 4, 3 * SR // 4)
        assert np.sqrt(np.mean(y[middle] ** 2)) < 0.01

    def test_zero_phase_is_deterministic(self):
        design = design_bandpass(100, 450, 3, SR)
        x = _sine(300, 0.25)
        np.testing.assert_array_equal(apply_zero_phase(x, design), apply_zero_phase(x, design))


# =============================================================================
# Test: Cache
# =============================================================================


class TestFilterCache:
    """Test memoized designs."""

    def test_repeated_lookup_returns_same_object(self):
        cache = FilterCache()
        assert cache.get(GUT_BAND, SR) is cache.get(GUT_BAND, SR)
        assert len(cache) == 1

    def test_sample_rate_is_part_of_key(self):
        cache = FilterCache()
        a = cache.get(GUT_BAND, SR)
        b = cache.get(GUT_BAND, 48000)
        assert a is not b
        assert b.sample_rate == 48000
        assert len(cache) == 2

    def test_equal_bands_share_design(self):
        """Bands compare by value."""
        cache = FilterCache()
        assert cache.get(Band(100.0, 450.0, 3), SR) is cache.gut(SR)
        assert cache.get(Band(20.0, 80.0, 3), SR) is cache.heart(SR)
        assert HEART_BAND == Band(20.0, 80.0, 3)

    def test_caches_are_isolated(self):
        """Each cache instance owns its designs."""
        first, second = FilterCache(), FilterCache()
        assert first.gut(SR) is not second.gut(SR)

    def test_cached_design_filters_repeatably(self):
        """A cached design is reusable across calls without changing output."""
        cache = FilterCache()
        x = _sine(60, 0.5)
        first = apply_zero_phase(x, cache.heart(SR))
        second = apply_zero_phase(x, cache.heart(SR))
        np.testing.assert_array_equal(first, second)
        np.testing.assert_array_equal(apply_causal(x, cache.heart(SR)), apply_causal(x, cache.heart(SR)))

    def test_invalid_band_is_not_cached(self):
        cache = FilterCache()
        with pytest.raises(FilterDesignError):
            cache.get(Band(100.0, 450.0, 3), 800)
        assert len(cache) == 0
