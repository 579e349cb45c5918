"""
GutSound Synthetic Signals

Deterministic generators for test fixtures and the `synth` command.
All randomness flows through a numpy Generator so a seed reproduces the
exact same samples.
"""

import logging

import numpy as np

from gutsound.audio import DEFAULT_SAMPLE_RATE


logger = logging.getLogger(__name__)

SIGNAL_KINDS = ("gut", "breath", "heart", "table")


def _time_axis(num_samples: int, sample_rate: int) -> np.ndarray:
    return np.arange(num_samples, dtype=np.float64) / sample_rate


def gut_sound(
    duration_ms: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    frequency_hz: float = 200.0,
) -> np.ndarray:
    """
    One bowel-sound burst: sharp attack, exponential decay, slight
    frequency modulation and a few partials.
    """
    n = int(duration_ms / 1000 * sample_rate)
    if n <= 0:
        return np.zeros(0)
    t = _time_axis(n, sample_rate)
    progress = np.arange(n) / n
    envelope = np.exp(-3 * progress) * (1 - np.exp(-50 * progress))
    modulated = frequency_hz * (1 + 0.2 * np.sin(2 * np.pi * 5 * t))
    tone = (
        0.6 * np.sin(2 * np.pi * modulated * t)
        + 0.3 * np.sin(2 * np.pi * frequency_hz * 1.5 * t)
        + 0.1 * np.sin(2 * np.pi * frequency_hz * 0.5 * t)
        + 0.15 * np.sin(2 * np.pi * frequency_hz * 2 * t)
    )
    return envelope * tone * 0.7


def breath_noise(
    duration_ms: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Breath-like burst: symmetric swell over low-frequency components plus hiss."""
    rng = rng if rng is not None else np.random.default_rng(0)
    n = int(duration_ms / 1000 * sample_rate)
    if n <= 0:
        return np.zeros(0)
    t = _time_axis(n, sample_rate)
    envelope = np.sin(np.pi * np.arange(n) / n)
    tone = np.zeros(n)
    for freq, amp in ((80, 0.4), (120, 0.3), (160, 0.2)):
        phase = rng.uniform(0, 0.1)
        tone += amp * np.sin(2 * np.pi * freq * t + phase)
    noise = rng.uniform(-1, 1, n) * 0.1
    return envelope * (tone + noise) * 0.5


def heartbeat_train(
    duration_s: float,
    bpm: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    noise: float = 0.0,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """
    Cardiac pulse train in the 40-80 Hz range.

    Beats start at 0.5 s; each is a 100 ms damped pulse and consecutive
    intervals are jittered by up to +/-5%.
    """
    rng = rng if rng is not None else np.random.default_rng(0)
    n = int(duration_s * sample_rate)
    samples = np.zeros(n)
    interval_s = 60.0 / bpm

    pulse_n = int(0.1 * sample_rate)
    pt = _time_axis(pulse_n, sample_rate)
    pulse_env = np.exp(-30 * pt) * (1 - np.exp(-100 * pt))
    pulse = pulse_env * (
        0.5 * np.sin(2 * np.pi * 40 * pt)
        + 0.3 * np.sin(2 * np.pi * 80 * pt)
        + 0.1 * np.sin(2 * np.pi * 60 * pt)
    )

    beat_time = 0.5
    while beat_time < duration_s:
        start = int(beat_time * sample_rate)
        end = min(start + pulse_n, n)
        samples[start:end] += pulse[: end - start]
        beat_time += interval_s * (1 + rng.uniform(-0.05, 0.05))

    if noise > 0:
        samples += rng.uniform(-noise, noise, n)
    return samples


def table_hum(
    duration_s: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    frequency_hz: float = 150.0,
    amplitude: float = 0.3,
) -> np.ndarray:
    """Constant-envelope in-band tone: a device resting on a vibrating surface."""
    t = _time_axis(int(duration_s * sample_rate), sample_rate)
    return amplitude * np.sin(2 * np.pi * frequency_hz * t)


def gut_recording(
    duration_s: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    events_per_minute: float = 10.0,
    burst_ms: float = 300.0,
    noise: float = 0.002,
    seed: int = 0,
) -> np.ndarray:
    """
    Abdominal-style recording: low-level noise with gut bursts placed on an
    evenly spaced grid jittered by the seed.
    """
    rng = np.random.default_rng(seed)
    n = int(duration_s * sample_rate)
    samples = rng.normal(0.0, noise, n)

    count = int(duration_s / 60 * events_per_minute)
    if count == 0:
        return samples
    slot = duration_s / count
    for i in range(count):
        onset = i * slot + rng.uniform(0.1, 0.5) * slot
        freq = rng.uniform(150, 250)
        burst = gut_sound(burst_ms, sample_rate, freq) * rng.uniform(0.4, 0.8)
        start = int(onset * sample_rate)
        end = min(start + len(burst), n)
        samples[start:end] += burst[: end - start]
    return samples


def generate(
    kind: str,
    duration_s: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    seed: int = 0,
) -> np.ndarray:
    """
    Full-length signal of the given kind.

    Raises:
        ValueError: Unknown kind
    """
    rng = np.random.default_rng(seed)
    if kind == "gut":
        samples = gut_recording(duration_s, sample_rate, seed=seed)
    elif kind == "breath":
        # One 800 ms breath every 4 s over a quiet floor
        n = int(duration_s * sample_rate)
        samples = rng.normal(0.0, 0.002, n)
        t = 0.5
        while t + 0.8 < duration_s:
            burst = breath_noise(800, sample_rate, rng)
            start = int(t * sample_rate)
            samples[start:start + len(burst)] += burst
            t += 4.0
    elif kind == "heart":
        samples = heartbeat_train(duration_s, 72, sample_rate, noise=0.01, rng=rng)
    elif kind == "table":
        samples = table_hum(duration_s, sample_rate)
    else:
        raise ValueError(f"Unknown signal kind: {kind} (expected one of {', '.join(SIGNAL_KINDS)})")

    logger.info(f"Generated {kind} signal: {duration_s}s @ {sample_rate}Hz")
    return samples
