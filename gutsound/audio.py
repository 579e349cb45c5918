"""
GutSound Audio Utilities

Deterministic, CPU-only signal primitives shared by all analysis modules.

Library Stack:
    - soundfile: WAV I/O (libsndfile-backed)
    - numpy: array operations and FFT

INVARIANTS:
    - All operations are deterministic
    - Sample rate is trusted as given (no resampling)
    - Framing is non-overlapping unless a hop is passed explicitly
    - Empty input yields empty / zero output, never an exception
"""

from pathlib import Path

import numpy as np
import soundfile as sf


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SAMPLE_RATE = 44100
EPS = 1e-10


# =============================================================================
# WAV I/O
# =============================================================================


def read_wav(path: Path) -> tuple[np.ndarray, int]:
    """
    Read an audio file and return mono float64 samples with its sample rate.

    Args:
        path: Path to WAV file

    Returns:
        Tuple of (samples in [-1, 1], sample_rate)

    Note:
        Multi-channel input is downmixed by arithmetic mean.
    """
    samples, sr = sf.read(path, dtype="float64", always_2d=False)
    return to_mono(samples), int(sr)


def write_wav(path: Path, samples: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> None:
    """
    Write samples to WAV as PCM 16-bit.

    Note:
        Hard clips to [-1, 1] before writing. No dithering.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    sf.write(path, clipped, sample_rate, subtype="PCM_16")


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Stereo -> mono by arithmetic mean; always returns float64."""
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim > 1:
        samples = np.mean(samples, axis=1)
    return samples


# =============================================================================
# Framing
# =============================================================================


def window_samples(window_ms: float, sample_rate: int) -> int:
    """Window length in samples (floor)."""
    return int(window_ms / 1000.0 * sample_rate)


def windowed_rms(
    samples: np.ndarray,
    window_size: int,
    hop: int | None = None,
) -> np.ndarray:
    """
    RMS of each full window.

    Args:
        samples: Input samples (1D)
        window_size: Window length in samples
        hop: Hop in samples (default: window_size, i.e. non-overlapping)

    Returns:
        Array of RMS values. Trailing partial windows are dropped.
    """
    hop = window_size if hop is None else hop
    if window_size <= 0 or hop <= 0 or len(samples) < window_size:
        return np.zeros(0, dtype=np.float64)

    n_windows = (len(samples) - window_size) // hop + 1
    if hop == window_size:
        frames = np.asarray(samples[: n_windows * window_size], dtype=np.float64)
        frames = frames.reshape(n_windows, window_size)
        return np.sqrt(np.mean(frames ** 2, axis=1))

    rms = np.zeros(n_windows, dtype=np.float64)
    for i in range(n_windows):
        frame = samples[i * hop: i * hop + window_size]
        rms[i] = np.sqrt(np.mean(frame ** 2))
    return rms


def find_runs(mask: np.ndarray) -> list[tuple[int, int]]:
    """
    Find contiguous runs of True in a boolean mask.

    Returns:
        List of (start_index, end_index) tuples, end is INCLUSIVE
    """
    runs = []
    in_run = False
    start = 0

    for i, val in enumerate(mask):
        if val and not in_run:
            in_run = True
            start = i
        elif not val and in_run:
            in_run = False
            runs.append((start, i - 1))

    if in_run:
        runs.append((start, len(mask) - 1))

    return runs


# =============================================================================
# Metrics
# =============================================================================


def compute_rms(samples: np.ndarray) -> float:
    """Compute RMS of entire signal (0.0 for empty input)."""
    if len(samples) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.asarray(samples, dtype=np.float64) ** 2)))


def population_std(values: np.ndarray) -> float:
    """Population standard deviation; 0.0 for fewer than 2 values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values))


def compute_zero_crossing_rate(samples: np.ndarray) -> float:
    """
    Zero-crossing rate as crossings / (n - 1).

    Note:
        Zero counts as non-negative, so 0 -> 0 is not a crossing.
    """
    if len(samples) < 2:
        return 0.0
    negative = np.asarray(samples) < 0
    crossings = np.count_nonzero(negative[1:] != negative[:-1])
    return float(crossings / (len(samples) - 1))


# =============================================================================
# Spectra
# =============================================================================


def hann_magnitude_spectrum(
    samples: np.ndarray,
    fft_size: int,
    pad_before_window: bool = False,
) -> np.ndarray:
    """
    Magnitude spectrum of the first fft_size samples.

    Args:
        samples: Input samples (1D)
        fft_size: FFT length
        pad_before_window: If True, zero-pad to fft_size first and taper
            the padded frame; otherwise taper the available samples and
            then zero-pad.

    Returns:
        fft_size // 2 magnitudes (DC up to, excluding, Nyquist)
    """
    frame = np.asarray(samples[:fft_size], dtype=np.float64)
    if pad_before_window:
        frame = np.concatenate([frame, np.zeros(fft_size - len(frame))])
        frame = frame * np.hanning(fft_size)
    else:
        frame = frame * np.hanning(len(frame))
    spectrum = np.fft.rfft(frame, n=fft_size)
    return np.abs(spectrum[: fft_size // 2])
