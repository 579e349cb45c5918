"""
GutSound Heart-Rate & HRV Analyzer

Extracts heartbeats from the 20-80 Hz band of an abdominal recording.

Steps:
    1. Zero-phase 20-80 Hz bandpass
    2. Envelope = |x| smoothed by a centred 50 ms moving average
    3. Peaks above mean + 0.5 std, at least 400 ms apart
       (scipy find_peaks keeps the higher of two close peaks)
    4. Inter-beat intervals -> BPM, RMSSD, vagal tone score

INVARIANTS:
    - Detectable range is 40-150 BPM by construction (400/1500 ms)
    - Empty or < 5 s input returns the all-zero result
    - HRV fields stay at 0 unless >= 20 intervals are available
"""

import logging
from dataclasses import dataclass, field, replace

import numpy as np
from scipy.signal import find_peaks

from gutsound import audio
from gutsound.config import FilterConfig, HeartConfig
from gutsound.filters import FilterCache, apply_zero_phase
from gutsound.utils import clamp, round_half_up, round_to


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeartRateResult:
    bpm: int = 0
    beat_count: int = 0
    confidence: float = 0.0
    hrv_valid: bool = False
    rmssd: float = 0.0
    vagal_tone_score: int = 0
    avg_interval_ms: int = 0
    interval_std_ms: float = 0.0
    peak_timestamps_ms: tuple[int, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "bpm": self.bpm,
            "beat_count": self.beat_count,
            "confidence": self.confidence,
            "hrv_valid": self.hrv_valid,
            "rmssd": self.rmssd,
            "vagal_tone_score": self.vagal_tone_score,
            "avg_interval_ms": self.avg_interval_ms,
            "interval_std_ms": self.interval_std_ms,
            "peak_timestamps_ms": list(self.peak_timestamps_ms),
        }


@dataclass(frozen=True)
class SignalPresence:
    has_signal: bool
    signal_strength: float


# =============================================================================
# Envelope & Peaks
# =============================================================================


def moving_average_envelope(samples: np.ndarray, window_size: int) -> np.ndarray:
    """
    Centred moving average of |x| with a shrinking window at the edges.

    Args:
        samples: Input samples
        window_size: Total window length; half is taken on each side

    Returns:
        Envelope, same length as input
    """
    x = np.abs(np.asarray(samples, dtype=np.float64))
    n = len(x)
    if n == 0:
        return x
    half = window_size // 2
    cumulative = np.concatenate([[0.0], np.cumsum(x)])
    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.minimum(n - 1, idx + half) + 1
    return (cumulative[hi] - cumulative[lo]) / (hi - lo)


def detect_peaks(
    envelope: np.ndarray,
    sample_rate: int,
    config: HeartConfig = HeartConfig(),
) -> list[tuple[int, float]]:
    """
    Pick heartbeat peaks from an envelope.

    Returns:
        List of (sample_index, amplitude), in time order
    """
    if len(envelope) < 3:
        return []

    min_distance = max(1, int(config.min_peak_distance_ms / 1000 * sample_rate))
    threshold = float(np.mean(envelope)) + config.peak_threshold_std * float(np.std(envelope))

    indices, properties = find_peaks(envelope, height=threshold, distance=min_distance)
    return [(int(i), float(h)) for i, h in zip(indices, properties["peak_heights"])]


def filter_physiological(
    timestamps_ms: list[float],
    config: HeartConfig = HeartConfig(),
) -> list[float]:
    """
    Drop peaks that follow the last kept peak by less than min_peak_distance_ms.

    Gaps longer than max_peak_distance_ms are kept: they mark missed beats,
    not noise.
    """
    if len(timestamps_ms) < 2:
        return list(timestamps_ms)
    kept = [timestamps_ms[0]]
    for ts in timestamps_ms[1:]:
        if ts - kept[-1] >= config.min_peak_distance_ms:
            kept.append(ts)
    return kept


def count_missed_beat_gaps(
    timestamps_ms: list[float],
    config: HeartConfig = HeartConfig(),
) -> int:
    """Number of inter-beat gaps longer than max_peak_distance_ms."""
    if len(timestamps_ms) < 2:
        return 0
    return int(np.sum(np.diff(np.asarray(timestamps_ms)) > config.max_peak_distance_ms))


def compute_rmssd(intervals_ms: np.ndarray) -> float:
    """Root mean square of successive interval differences."""
    if len(intervals_ms) < 2:
        return 0.0
    diffs = np.diff(intervals_ms)
    return float(np.sqrt(np.mean(diffs ** 2)))


def vagal_tone_score(rmssd: float, config: HeartConfig = HeartConfig()) -> float:
    """Linear map of RMSSD from [rmssd_min, rmssd_max] onto [0, 100]."""
    normalized = (rmssd - config.rmssd_min_ms) / (config.rmssd_max_ms - config.rmssd_min_ms)
    return clamp(normalized * 100)


# =============================================================================
# Analysis
# =============================================================================


def analyze_heart_rate(
    samples: np.ndarray,
    duration_seconds: float,
    sample_rate: int,
    cache: FilterCache,
    config: HeartConfig = HeartConfig(),
    filters: FilterConfig = FilterConfig(),
) -> HeartRateResult:
    """
    Estimate heart rate and HRV from raw samples.

    Args:
        samples: Raw (unfiltered) samples
        duration_seconds: Nominal recording duration
        sample_rate: Sample rate (Hz)
        cache: Filter cache owned by the caller
        config: Heart thresholds
        filters: Band definitions

    Returns:
        HeartRateResult (all zeros for insufficient data)
    """
    samples = np.asarray(samples, dtype=np.float64)
    if len(samples) == 0 or duration_seconds < config.min_duration_s:
        logger.info("Heart rate: insufficient data")
        return HeartRateResult()

    design = cache.get(filters.heart_band, sample_rate)
    filtered = apply_zero_phase(samples, design)

    envelope_window = int(config.envelope_ms / 1000 * sample_rate)
    envelope = moving_average_envelope(filtered, envelope_window)

    raw_peaks = detect_peaks(envelope, sample_rate, config)
    timestamps = filter_physiological([i / sample_rate * 1000 for i, _ in raw_peaks], config)
    beat_count = len(timestamps)
    missed_gaps = count_missed_beat_gaps(timestamps, config)
    logger.debug(
        f"Heart peaks: raw={len(raw_peaks)}, physiological={beat_count}, "
        f"gaps over {config.max_peak_distance_ms:.0f} ms={missed_gaps}"
    )

    rounded_ts = tuple(round_half_up(t) for t in timestamps)

    if beat_count < config.min_beats_for_bpm:
        logger.info(f"Heart rate: insufficient beats ({beat_count} < {config.min_beats_for_bpm})")
        return replace(
            HeartRateResult(),
            beat_count=beat_count,
            confidence=beat_count / config.min_beats_for_bpm,
            peak_timestamps_ms=rounded_ts,
        )

    intervals = np.diff(np.asarray(timestamps))
    avg_interval = float(np.mean(intervals))
    interval_std = audio.population_std(intervals)
    bpm = 60000.0 / avg_interval
    bpm_valid = config.min_bpm <= bpm <= config.max_bpm
    if not bpm_valid:
        logger.warning(f"BPM {bpm:.1f} outside [{config.min_bpm}, {config.max_bpm}]")

    hrv_valid = len(intervals) >= config.min_beats_for_hrv
    rmssd = compute_rmssd(intervals) if hrv_valid else 0.0
    tone = vagal_tone_score(rmssd, config) if hrv_valid else 0.0

    expected_beats = duration_seconds / 60 * config.expected_bpm
    beat_ratio = min(1.0, beat_count / expected_beats)
    consistency = max(0.0, 1 - interval_std / avg_interval)
    confidence = beat_ratio * 0.5 + (0.25 if bpm_valid else 0.0) + consistency * 0.25

    logger.info(
        f"Heart rate: {bpm:.1f} BPM from {beat_count} beats, "
        f"RMSSD={rmssd:.1f}ms, confidence={confidence:.2f}"
    )

    return HeartRateResult(
        bpm=round_half_up(bpm) if bpm_valid else 0,
        beat_count=beat_count,
        confidence=round_to(confidence, 2),
        hrv_valid=hrv_valid,
        rmssd=round_to(rmssd, 1),
        vagal_tone_score=round_half_up(tone),
        avg_interval_ms=round_half_up(avg_interval),
        interval_std_ms=round_to(interval_std, 1),
        peak_timestamps_ms=rounded_ts,
    )


def check_signal_presence(
    samples: np.ndarray,
    sample_rate: int,
    cache: FilterCache,
    config: HeartConfig = HeartConfig(),
    filters: FilterConfig = FilterConfig(),
) -> SignalPresence:
    """
    Cheap pre-check: fraction of RMS that survives the cardiac band.

    Returns:
        SignalPresence(has_signal, strength in [0, 1]); strength is 0 for
        silence and for recordings shorter than presence_min_s
    """
    samples = np.asarray(samples, dtype=np.float64)
    if len(samples) < sample_rate * config.presence_min_s:
        return SignalPresence(has_signal=False, signal_strength=0.0)

    design = cache.get(filters.heart_band, sample_rate)
    filtered = apply_zero_phase(samples, design)

    original_rms = audio.compute_rms(samples)
    strength = audio.compute_rms(filtered) / original_rms if original_rms > 0 else 0.0
    strength = min(1.0, strength)

    return SignalPresence(
        has_signal=strength > config.presence_threshold,
        signal_strength=strength,
    )
