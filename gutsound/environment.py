"""
GutSound Ambient Noise Floor (ANF) Calibration

Estimates the recording environment's noise floor from the opening
seconds of a recording and grades it.

Responsibilities:
- Windowed RMS statistics over the calibration period
- Reference-based SNR estimate and quality grade
- Mains-hum detection by normalized autocorrelation
- Recommendation text for the host application

Invariants:
- Too little data yields a defined "poor" result, never an exception
- Silence grades as excellent (30 dB estimate)
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from gutsound import audio


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

CALIBRATION_SECONDS = 5.0
WINDOW_MS = 100
THRESHOLD_MULTIPLIER = 1.5
REFERENCE_GUT_RMS = 0.02
SILENT_SNR_DB = 30.0
MIN_SUITABLE_SNR_DB = 6.0
HUM_FREQUENCIES_HZ = (50, 60, 100, 120, 180, 240, 300)
HUM_CORRELATION = 0.7
HUM_ANALYSIS_SAMPLES = 4096


class SignalQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


QUALITY_MESSAGES = {
    SignalQuality.EXCELLENT: "Excellent signal quality - ideal for recording",
    SignalQuality.GOOD: "Good signal quality - suitable for recording",
    SignalQuality.FAIR: "Fair signal quality - consider quieter environment",
    SignalQuality.POOR: "Poor signal quality - too much background noise",
}


@dataclass(frozen=True)
class CalibrationResult:
    anf_mean: float
    anf_std: float
    adaptive_threshold: float
    estimated_snr_db: float
    hum_frequencies: tuple[int, ...]
    signal_quality: SignalQuality
    calibration_windows: int
    recommendation: str = ""

    @property
    def environment_suitable(self) -> bool:
        return self.signal_quality != SignalQuality.POOR

    def to_dict(self) -> dict:
        return {
            "anf_mean": self.anf_mean,
            "anf_std": self.anf_std,
            "adaptive_threshold": self.adaptive_threshold,
            "estimated_snr_db": self.estimated_snr_db,
            "hum_frequencies": list(self.hum_frequencies),
            "signal_quality": self.signal_quality.value,
            "calibration_windows": self.calibration_windows,
            "environment_suitable": self.environment_suitable,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class SignalQualityAssessment:
    snr_db: float
    quality: SignalQuality
    is_suitable: bool
    message: str = field(default="")


def grade_snr(snr_db: float) -> SignalQuality:
    """Map an SNR (dB) to a quality grade."""
    if snr_db >= 20:
        return SignalQuality.EXCELLENT
    if snr_db >= 12:
        return SignalQuality.GOOD
    if snr_db >= 6:
        return SignalQuality.FAIR
    return SignalQuality.POOR


def detect_hums(samples: np.ndarray, sample_rate: int) -> tuple[int, ...]:
    """
    Detect constant mains hum components.

    Returns:
        Candidate frequencies whose lag-one-period normalized
        autocorrelation exceeds HUM_CORRELATION
    """
    window = min(HUM_ANALYSIS_SAMPLES, len(samples))
    x = np.asarray(samples[:window], dtype=np.float64)
    detected = []

    for hum_hz in HUM_FREQUENCIES_HZ:
        period = round(sample_rate / hum_hz)
        if period >= window:
            continue
        energy = float(np.dot(x[: window - period], x[: window - period]))
        if energy <= 0:
            continue
        correlation = float(np.dot(x[: window - period], x[period:window])) / energy
        if correlation > HUM_CORRELATION:
            detected.append(hum_hz)

    return tuple(detected)


def _recommend(quality: SignalQuality, hums: tuple[int, ...]) -> str:
    if quality == SignalQuality.EXCELLENT:
        return "Environment is ideal. Begin recording."
    if quality == SignalQuality.GOOD:
        return "Environment is suitable. Begin recording."
    if quality == SignalQuality.FAIR:
        if hums:
            joined = ", ".join(str(h) for h in hums)
            return f"Background hum detected ({joined}Hz). Consider moving away from appliances."
        return "Some background noise detected. Consider a quieter location."
    return "Environment too noisy for reliable recording. Please find a quieter location."


def calibrate_noise_floor(samples: np.ndarray, sample_rate: int) -> CalibrationResult:
    """
    Measure the ambient noise floor over the first CALIBRATION_SECONDS.

    Args:
        samples: Raw (unfiltered) samples
        sample_rate: Sample rate (Hz)

    Returns:
        CalibrationResult with statistics, SNR grade and recommendation
    """
    window = audio.window_samples(WINDOW_MS, sample_rate)
    calibration = np.asarray(samples[: int(CALIBRATION_SECONDS * sample_rate)], dtype=np.float64)

    if window <= 0 or len(calibration) < window:
        logger.info("Noise floor calibration skipped: not enough samples")
        return CalibrationResult(
            anf_mean=0.0,
            anf_std=0.0,
            adaptive_threshold=0.01,
            estimated_snr_db=0.0,
            hum_frequencies=(),
            signal_quality=SignalQuality.POOR,
            calibration_windows=0,
            recommendation=_recommend(SignalQuality.POOR, ()),
        )

    rms = audio.windowed_rms(calibration, window)
    anf_mean = float(np.mean(rms))
    anf_std = float(np.std(rms))

    if anf_mean > 0:
        snr_db = 20.0 * math.log10(REFERENCE_GUT_RMS / anf_mean)
    else:
        snr_db = SILENT_SNR_DB

    hums = detect_hums(calibration, sample_rate)
    quality = grade_snr(snr_db)

    logger.info(f"Noise floor: mean={anf_mean:.6f}, SNR={snr_db:.1f} dB ({quality.value})")
    if hums:
        logger.info(f"Detected hum frequencies: {hums}")

    return CalibrationResult(
        anf_mean=anf_mean,
        anf_std=anf_std,
        adaptive_threshold=anf_mean + THRESHOLD_MULTIPLIER * anf_std,
        estimated_snr_db=snr_db,
        hum_frequencies=hums,
        signal_quality=quality,
        calibration_windows=len(rms),
        recommendation=_recommend(quality, hums),
    )


def assess_signal_quality(signal_rms: float, noise_floor_rms: float) -> SignalQualityAssessment:
    """Grade a signal window against a known noise floor."""
    snr_db = 0.0
    if noise_floor_rms > 0 and signal_rms > 0:
        snr_db = 10.0 * math.log10(signal_rms / noise_floor_rms)
    quality = grade_snr(snr_db)
    return SignalQualityAssessment(
        snr_db=snr_db,
        quality=quality,
        is_suitable=snr_db >= MIN_SUITABLE_SNR_DB,
        message=QUALITY_MESSAGES[quality],
    )
