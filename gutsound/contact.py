"""
GutSound Contact-Quality Assessor

Decides whether the recording device was on the body or resting on a
table / held in air, from the gut-band filtered signal.

Spectral criteria (first fft_size samples):
    - low-frequency ratio (< 200 Hz) >= 0.45
    - high-frequency ratio (>= 400 Hz) <= 0.15
    - 85% spectral rolloff <= 350 Hz

Temporal criteria (100 ms RMS windows, >= 5 windows needed):
    - coefficient of variation >= 0.12
    - burst peaks (windows > 2x mean) >= 2
    - max / min window energy >= 3

INVARIANTS:
    - is_on_body requires spectral_met >= 2 AND temporal_met >= 1
    - A flat envelope (temporal_met == 0) is never on-body, regardless
      of how gut-like its spectrum is
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from gutsound import audio
from gutsound.config import ContactConfig


logger = logging.getLogger(__name__)

FFT_SIZE = 2048


@dataclass(frozen=True)
class TemporalCriteria:
    coefficient_of_variation: float = 0.0
    has_temporal_variability: bool = False
    burst_peak_count: int = 0
    has_burst_peaks: bool = False
    energy_variance_ratio: float = 1.0
    has_energy_variance: bool = False
    temporal_criteria_met: int = 0


@dataclass(frozen=True)
class SpectralCriteria:
    is_low_freq_dominant: bool = False
    is_high_freq_suppressed: bool = False
    is_low_rolloff: bool = False
    spectral_criteria_met: int = 0


@dataclass(frozen=True)
class ContactQualityResult:
    is_on_body: bool
    low_freq_ratio: float
    high_freq_ratio: float
    spectral_rolloff: float
    contact_confidence: float
    should_reject_as_in_air: bool
    spectral: SpectralCriteria
    temporal: TemporalCriteria

    @property
    def spectral_criteria_met(self) -> int:
        return self.spectral.spectral_criteria_met

    @property
    def temporal_criteria_met(self) -> int:
        return self.temporal.temporal_criteria_met

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def spectral_band_ratios(
    samples: np.ndarray,
    sample_rate: int,
    config: ContactConfig = ContactConfig(),
) -> tuple[float, float, float]:
    """
    Low/high band energy ratios and rolloff frequency.

    Returns:
        (low_freq_ratio, high_freq_ratio, rolloff_hz)
    """
    magnitudes = audio.hann_magnitude_spectrum(samples, FFT_SIZE)
    freq_per_bin = sample_rate / FFT_SIZE
    power = magnitudes ** 2
    total = float(np.sum(power))

    low_bin = math.floor(config.low_freq_hz / freq_per_bin)
    high_bin = math.floor(config.high_freq_hz / freq_per_bin)

    low_ratio = float(np.sum(power[:low_bin])) / total if total > 0 else 0.0
    high_ratio = float(np.sum(power[high_bin:])) / total if total > 0 else 1.0

    cumulative = np.cumsum(power)
    reached = np.nonzero(cumulative >= total * config.rolloff_fraction)[0]
    rolloff_bin = int(reached[0]) if len(reached) > 0 else len(power) - 1

    return low_ratio, high_ratio, rolloff_bin * freq_per_bin


def temporal_criteria(
    samples: np.ndarray,
    sample_rate: int,
    config: ContactConfig = ContactConfig(),
) -> TemporalCriteria:
    """Envelope variability checks over non-overlapping RMS windows."""
    window = audio.window_samples(config.window_ms, sample_rate)
    energy = audio.windowed_rms(samples, window)
    if len(energy) < config.min_windows:
        return TemporalCriteria()

    mean_energy = float(np.mean(energy))
    cv = audio.population_std(energy) / mean_energy if mean_energy > 0 else 0.0
    has_variability = cv >= config.min_cv

    burst_peaks = int(np.count_nonzero(energy > mean_energy * config.burst_peak_factor))
    has_bursts = burst_peaks >= config.min_burst_peaks

    min_energy = max(config.energy_floor, float(np.min(energy)))
    variance_ratio = float(np.max(energy)) / min_energy
    has_variance = variance_ratio >= config.min_energy_variance_ratio

    return TemporalCriteria(
        coefficient_of_variation=cv,
        has_temporal_variability=has_variability,
        burst_peak_count=burst_peaks,
        has_burst_peaks=has_bursts,
        energy_variance_ratio=variance_ratio,
        has_energy_variance=has_variance,
        temporal_criteria_met=int(has_variability) + int(has_bursts) + int(has_variance),
    )


def assess_contact(
    filtered: np.ndarray,
    sample_rate: int,
    config: ContactConfig = ContactConfig(),
) -> ContactQualityResult:
    """
    Judge on-body contact from spectral shape and envelope dynamics.

    Args:
        filtered: Gut-band filtered samples
        sample_rate: Sample rate (Hz)
        config: Contact thresholds

    Returns:
        ContactQualityResult. Inputs shorter than FFT_SIZE / 2 samples get
        a defined off-body result.
    """
    filtered = np.asarray(filtered, dtype=np.float64)

    if len(filtered) < FFT_SIZE / 2:
        logger.info("Contact check: too few samples, treating as off-body")
        return ContactQualityResult(
            is_on_body=False,
            low_freq_ratio=0.0,
            high_freq_ratio=1.0,
            spectral_rolloff=sample_rate / 2,
            contact_confidence=0.0,
            should_reject_as_in_air=True,
            spectral=SpectralCriteria(),
            temporal=TemporalCriteria(),
        )

    low_ratio, high_ratio, rolloff = spectral_band_ratios(filtered, sample_rate, config)
    is_low_dominant = low_ratio >= config.min_low_freq_ratio
    is_high_suppressed = high_ratio <= config.max_high_freq_ratio
    is_low_rolloff = rolloff <= config.max_rolloff_hz
    spectral = SpectralCriteria(
        is_low_freq_dominant=is_low_dominant,
        is_high_freq_suppressed=is_high_suppressed,
        is_low_rolloff=is_low_rolloff,
        spectral_criteria_met=int(is_low_dominant) + int(is_high_suppressed) + int(is_low_rolloff),
    )

    temporal = temporal_criteria(filtered, sample_rate, config)

    passes_spectral = spectral.spectral_criteria_met >= config.min_spectral_criteria
    passes_temporal = temporal.temporal_criteria_met >= config.min_temporal_criteria
    is_on_body = passes_spectral and passes_temporal

    confidence = (spectral.spectral_criteria_met / 3 + temporal.temporal_criteria_met / 3) / 2
    reject_in_air = not passes_temporal or spectral.spectral_criteria_met == 0

    logger.info(
        f"Contact: spectral {spectral.spectral_criteria_met}/3, "
        f"temporal {temporal.temporal_criteria_met}/3 -> "
        f"{'on-body' if is_on_body else 'off-body'}"
    )
    if temporal.temporal_criteria_met == 0:
        logger.warning("Flat envelope: no burst variability, likely table or ambient noise")

    return ContactQualityResult(
        is_on_body=is_on_body,
        low_freq_ratio=low_ratio,
        high_freq_ratio=high_ratio,
        spectral_rolloff=rolloff,
        contact_confidence=confidence,
        should_reject_as_in_air=reject_in_air,
        spectral=spectral,
        temporal=temporal,
    )
