"""
GutSound Audio & Environment Tests

Coverage:
- WAV round trip, mono downmix, clipping
- Framing helpers (windowed RMS, runs, zero crossings)
- Noise floor calibration and SNR grading
- Mains hum detection
"""

import numpy as np
import pytest

from gutsound import audio
from gutsound.environment import (
    CALIBRATION_SECONDS,
    SignalQuality,
    assess_signal_quality,
    calibrate_noise_floor,
    detect_hums,
    grade_snr,
)


SR = 44100


# =============================================================================
# Test: WAV I/O
# =============================================================================


class TestWavIO:
    """Test soundfile-backed read/write."""

    def test_round_trip_preserves_rate_and_length(self, tmp_path):
        path = tmp_path / "tone.wav"
        t = np.arange(SR) / SR
        samples = 0.5 * np.sin(2 * np.pi * 200 * t)
        audio.write_wav(path, samples, SR)

        loaded, sr = audio.read_wav(path)
        assert sr == SR
        assert len(loaded) == len(samples)
        assert loaded.dtype == np.float64
        np.testing.assert_allclose(loaded, samples, atol=2 / 32768)

    def test_write_clips_to_unit_range(self, tmp_path):
        path = tmp_path / "loud.wav"
        audio.write_wav(path, np.full(100, 2.0), SR)
        loaded, _ = audio.read_wav(path)
        assert np.max(loaded) <= 1.0
        assert np.min(loaded) > 0.99

    def test_stereo_is_downmixed(self, tmp_path):
        """Multi-channel input is averaged to mono."""
        import soundfile as sf

        path = tmp_path / "stereo.wav"
        stereo = np.column_stack([np.full(1000, 0.5), np.full(1000, -0.25)])
        sf.write(path, stereo, SR, subtype="FLOAT")

        loaded, _ = audio.read_wav(path)
        assert loaded.ndim == 1
        np.testing.assert_allclose(loaded, 0.125, atol=1e-6)


# =============================================================================
# Test: Framing & Metrics
# =============================================================================


class TestFraming:
    """Test framing helpers."""

    def test_windowed_rms_of_constant(self):
        rms = audio.windowed_rms(np.full(1000, 0.5), 100)
        assert len(rms) == 10
        np.testing.assert_allclose(rms, 0.5)

    def test_windowed_rms_drops_partial_window(self):
        assert len(audio.windowed_rms(np.ones(250), 100)) == 2

    def test_windowed_rms_short_input(self):
        assert len(audio.windowed_rms(np.ones(50), 100)) == 0

    def test_windowed_rms_with_hop(self):
        rms = audio.windowed_rms(np.ones(300), 100, hop=50)
        assert len(rms) == 5

    def test_find_runs_inclusive_ends(self):
        mask = np.array([False, True, True, False, True])
        assert audio.find_runs(mask) == [(1, 2), (4, 4)]

    def test_find_runs_empty(self):
        assert audio.find_runs(np.zeros(5, dtype=bool)) == []

    def test_zero_crossing_rate_alternating(self):
        assert audio.compute_zero_crossing_rate(np.array([1.0, -1.0, 1.0, -1.0])) == 1.0

    def test_zero_is_not_a_crossing(self):
        assert audio.compute_zero_crossing_rate(np.zeros(10)) == 0.0

    def test_rms_of_empty_is_zero(self):
        assert audio.compute_rms(np.zeros(0)) == 0.0

    def test_population_std(self):
        assert audio.population_std(np.array([1.0])) == 0.0
        assert audio.population_std(np.array([1.0, 3.0])) == 1.0


# =============================================================================
# Test: Noise Floor Calibration
# =============================================================================


class TestCalibration:
    """Test ambient noise floor measurement."""

    @pytest.mark.parametrize(
        "snr,expected",
        [
            (25.0, SignalQuality.EXCELLENT),
            (20.0, SignalQuality.EXCELLENT),
            (19.9, SignalQuality.GOOD),
            (12.0, SignalQuality.GOOD),
            (6.0, SignalQuality.FAIR),
            (5.9, SignalQuality.POOR),
            (-3.0, SignalQuality.POOR),
        ],
    )
    def test_grade_boundaries(self, snr, expected):
        assert grade_snr(snr) == expected

    def test_silence_is_excellent(self):
        """A silent floor has no measurable noise."""
        result = calibrate_noise_floor(np.zeros(SR * 6), SR)
        assert result.anf_mean == 0.0
        assert result.signal_quality == SignalQuality.EXCELLENT
        assert result.environment_suitable
        assert result.hum_frequencies == ()

    def test_uses_opening_seconds_only(self):
        """Loud audio after the calibration window is ignored."""
        samples = np.zeros(SR * 8)
        samples[int(CALIBRATION_SECONDS * SR) + SR:] = 0.9
        result = calibrate_noise_floor(samples, SR)
        assert result.anf_mean == 0.0
        assert result.calibration_windows == 50

    def test_loud_floor_is_poor(self):
        rng = np.random.default_rng(0)
        result = calibrate_noise_floor(rng.normal(0, 0.05, SR * 5), SR)
        assert result.signal_quality == SignalQuality.POOR
        assert not result.environment_suitable
        assert "too noisy" in result.recommendation

    def test_too_short_is_poor(self):
        result = calibrate_noise_floor(np.zeros(100), SR)
        assert result.calibration_windows == 0
        assert result.signal_quality == SignalQuality.POOR

    def test_adaptive_threshold(self):
        """threshold = mean + 1.5 * std of window RMS."""
        rng = np.random.default_rng(1)
        result = calibrate_noise_floor(rng.normal(0, 0.001, SR * 5), SR)
        assert result.adaptive_threshold == pytest.approx(
            result.anf_mean + 1.5 * result.anf_std
        )

    def test_to_dict_is_json_ready(self):
        result = calibrate_noise_floor(np.zeros(SR * 5), SR)
        data = result.to_dict()
        assert data["signal_quality"] == "excellent"
        assert isinstance(data["hum_frequencies"], list)


# =============================================================================
# Test: Hum Detection & Quality Assessment
# =============================================================================


class TestHumAndQuality:
    """Test mains hum detection and windowed quality grading."""

    def test_60hz_hum_detected(self):
        t = np.arange(SR) / SR
        hums = detect_hums(0.1 * np.sin(2 * np.pi * 60 * t), SR)
        assert 60 in hums
        assert 50 not in hums

    def test_no_hum_in_silence(self):
        assert detect_hums(np.zeros(SR), SR) == ()

    def test_assess_signal_quality(self):
        assessment = assess_signal_quality(0.1, 0.01)
        assert assessment.snr_db == pytest.approx(10.0)
        assert assessment.quality == SignalQuality.FAIR
        assert assessment.is_suitable

    def test_assess_silent_signal(self):
        assessment = assess_signal_quality(0.0, 0.01)
        assert assessment.snr_db == 0.0
        assert assessment.quality == SignalQuality.POOR
        assert not assessment.is_suitable
