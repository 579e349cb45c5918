"""
GutSound Filter Designer & Applicator

Cascaded Butterworth bandpass filters realized as second-order sections.

Library Stack:
    - numpy: coefficient arrays
    - scipy.signal.butter: bilinear-transform Butterworth prototypes
    - scipy.signal.sosfilt: direct-form cascade application
    - scipy.signal.sosfreqz: analytic frequency response

Design:
    An order-n bandpass is a 2n-pole Butterworth highpass at low_hz
    followed by a 2n-pole Butterworth lowpass at high_hz, each from
    scipy.signal.butter as n second-order sections (2n sections total).

INVARIANTS:
    - 0 < low_hz < high_hz < sample_rate / 2, else FilterDesignError
    - Designs are frozen dataclasses; sos is never modified after design
    - apply_causal / apply_zero_phase preserve input length
"""

import logging
import math
import threading
from dataclasses import dataclass

import numpy as np
from scipy.signal import butter, sosfilt, sosfreqz


logger = logging.getLogger(__name__)


class FilterDesignError(ValueError):
    """Raised when a requested band cannot be realized at a sample rate."""
    pass


# =============================================================================
# Bands
# =============================================================================


@dataclass(frozen=True)
class Band:
    """Frequency band and prototype order. Hashable cache key component."""
    low_hz: float
    high_hz: float
    order: int = 3


GUT_BAND = Band(100.0, 450.0, 3)
HEART_BAND = Band(20.0, 80.0, 3)


@dataclass(frozen=True, eq=False)
class ButterworthFilter:
    """
    Immutable cascaded bandpass design.

    Attributes:
        sos: (2*order, 6) array of [b0, b1, b2, 1, a1, a2] rows,
             highpass sections first
        low_hz: Lower cutoff (Hz)
        high_hz: Upper cutoff (Hz)
        order: Sections per side
        sample_rate: Sample rate the design is valid for
    """
    sos: np.ndarray
    low_hz: float
    high_hz: float
    order: int
    sample_rate: int

    @property
    def num_sections(self) -> int:
        return int(self.sos.shape[0])


# =============================================================================
# Design
# =============================================================================


def design_bandpass(
    low_hz: float,
    high_hz: float,
    order: int,
    sample_rate: int,
) -> ButterworthFilter:
    """
    Design a cascaded Butterworth bandpass.

    Args:
        low_hz: Highpass cutoff (Hz)
        high_hz: Lowpass cutoff (Hz)
        order: Number of biquad sections per side (>= 1)
        sample_rate: Sample rate (Hz)

    Returns:
        ButterworthFilter with exactly 2*order sections

    Raises:
        FilterDesignError: If the band is not realizable
    """
    nyquist = sample_rate / 2.0
    if order < 1:
        raise FilterDesignError(f"Filter order must be >= 1, got {order}")
    if low_hz <= 0:
        raise FilterDesignError(f"Low cutoff must be > 0 Hz, got {low_hz}")
    if high_hz >= nyquist:
        raise FilterDesignError(
            f"High cutoff {high_hz} Hz must be below Nyquist ({nyquist} Hz)"
        )
    if low_hz >= high_hz:
        raise FilterDesignError(
            f"Low cutoff {low_hz} Hz must be below high cutoff {high_hz} Hz"
        )

    highpass = butter(2 * order, low_hz, btype="highpass", fs=sample_rate, output="sos")
    lowpass = butter(2 * order, high_hz, btype="lowpass", fs=sample_rate, output="sos")
    sos = np.vstack([highpass, lowpass]).astype(np.float64)

    logger.debug(
        f"Designed bandpass {low_hz}-{high_hz} Hz, order {order}, "
        f"sr={sample_rate} ({sos.shape[0]} sections)"
    )
    return ButterworthFilter(
        sos=sos,
        low_hz=float(low_hz),
        high_hz=float(high_hz),
        order=order,
        sample_rate=int(sample_rate),
    )


# =============================================================================
# Application
# =============================================================================


def apply_causal(samples: np.ndarray, design: ButterworthFilter) -> np.ndarray:
    """
    Single forward pass through the cascade (phase-shifted output).

    Returns:
        Filtered samples, same length as input (empty in, empty out)
    """
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return np.zeros(0, dtype=np.float64)
    return sosfilt(design.sos, x)


def apply_zero_phase(samples: np.ndarray, design: ButterworthFilter) -> np.ndarray:
    """
    Forward pass, then a pass over the reversed result (filtfilt).

    Note:
        No edge padding is applied, so the first and last few
        milliseconds carry start-up transients.
    """
    forward = apply_causal(samples, design)
    if forward.size == 0:
        return forward
    backward = sosfilt(design.sos, forward[::-1])
    return backward[::-1].copy()


def measure_attenuation_db(design: ButterworthFilter, freq_hz: float) -> float:
    """
    Evaluate the cascade's magnitude response at one frequency.

    Returns:
        Gain in dB (negative = attenuation)
    """
    _, response = sosfreqz(design.sos, worN=[float(freq_hz)], fs=design.sample_rate)
    magnitude = float(np.abs(response[0]))
    return 20.0 * math.log10(max(magnitude, 1e-300))


# =============================================================================
# Cache
# =============================================================================


class FilterCache:
    """
    Memoized filter designs keyed by (band, sample_rate).

    Owned explicitly by the caller; each instance is isolated. Repeated
    lookups return the identical ButterworthFilter object.
    """

    def __init__(self):
        self._designs: dict[tuple[Band, int], ButterworthFilter] = {}
        self._lock = threading.Lock()

    def get(self, band: Band, sample_rate: int) -> ButterworthFilter:
        key = (band, int(sample_rate))
        with self._lock:
            design = self._designs.get(key)
            if design is None:
                design = design_bandpass(band.low_hz, band.high_hz, band.order, sample_rate)
                self._designs[key] = design
        return design

    def gut(self, sample_rate: int) -> ButterworthFilter:
        return self.get(GUT_BAND, sample_rate)

    def heart(self, sample_rate: int) -> ButterworthFilter:
        return self.get(HEART_BAND, sample_rate)

    def __len__(self) -> int:
        return len(self._designs)
