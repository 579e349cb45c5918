"""
GutSound Event Detector & Classifier

Segments the gut-band filtered signal into candidate bursts and runs an
ensemble of independent classifiers over each one.

Detection:
    1. Non-overlapping 100 ms RMS energy windows
    2. Adaptive threshold = mean + 2.5 * std of window energies
    3. Consecutive above-threshold windows form one candidate event

Classifiers (fixed order, ALL run for every event):
    DURATION_MIN / DURATION_MAX   duration gate
    SPECTRAL_WHITE_NOISE          flatness, bowel-band ratio, ZCR
    HARMONIC_SPEECH               autocorrelation f0, harmonics, HNR
    BREATH_ARTIFACT               gradual onset + low-frequency emphasis
    BURST_VALIDATION              physiological burst length
    TRANSIENT                     click/clatter onset (gate off by default)

INVARIANTS:
    - No classifier short-circuits another; rejections are concatenated
    - accepted == (no rejections recorded)
    - Both accepted and rejected events are returned, in time order
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable

import numpy as np

from gutsound import audio
from gutsound.config import EventConfig
from gutsound.utils import round_half_up


logger = logging.getLogger(__name__)


# =============================================================================
# Types
# =============================================================================


class FilterKind(str, Enum):
    """Classifier that produced a rejection."""
    DURATION_MIN = "DURATION_MIN"
    DURATION_MAX = "DURATION_MAX"
    SPECTRAL_WHITE_NOISE = "SPECTRAL_WHITE_NOISE"
    HARMONIC_SPEECH = "HARMONIC_SPEECH"
    BREATH_ARTIFACT = "BREATH_ARTIFACT"
    BURST_VALIDATION = "BURST_VALIDATION"
    TRANSIENT = "TRANSIENT"


@dataclass(frozen=True)
class Rejection:
    filter: FilterKind
    reason: str
    values: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"filter": self.filter.value, "reason": self.reason, "values": dict(self.values)}


@dataclass(frozen=True)
class SpectralFeatures:
    sfm: float
    bowel_peak_ratio: float
    zcr: float
    spectral_contrast: float
    is_white_noise: bool
    is_likely_gut_sound: bool


@dataclass(frozen=True)
class HarmonicFeatures:
    is_harmonic: bool
    fundamental_hz: float | None
    harmonic_count: int
    hnr_db: float
    speech_confidence: float
    should_reject: bool


@dataclass(frozen=True)
class BreathFeatures:
    is_breath_artifact: bool
    onset_ratio: float
    low_freq_emphasis: float
    breath_confidence: float


@dataclass(frozen=True)
class BurstValidation:
    is_valid_burst: bool
    is_constant_noise: bool
    is_breathing_artifact: bool
    duration_ms: float
    reason: str


@dataclass(frozen=True)
class TransientFeatures:
    is_transient: bool
    onset_slope: float
    energy_ratio: float
    transient_duration_ms: float


@dataclass(frozen=True)
class CandidateEvent:
    """Run of above-threshold energy windows (end_window inclusive)."""
    start_window: int
    end_window: int
    peak_energy: float


@dataclass
class DetectedEvent:
    """One candidate burst with its features and rejection provenance."""
    event_id: int
    start_ms: float
    end_ms: float
    duration_ms: float
    peak_energy: float
    start_window: int
    end_window: int
    spectral: SpectralFeatures | None = None
    harmonic: HarmonicFeatures | None = None
    breath: BreathFeatures | None = None
    burst: BurstValidation | None = None
    transient: TransientFeatures | None = None
    rejections: list[Rejection] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return not self.rejections

    @property
    def window_count(self) -> int:
        return self.end_window - self.start_window + 1

    def to_trace(self) -> dict[str, Any]:
        """Structured per-event trace (JSON-serializable)."""
        def _maybe(features):
            return asdict(features) if features is not None else None

        return {
            "event_id": self.event_id,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "duration_ms": self.duration_ms,
            "peak_energy": self.peak_energy,
            "spectral": _maybe(self.spectral),
            "harmonic": _maybe(self.harmonic),
            "breath": _maybe(self.breath),
            "burst": _maybe(self.burst),
            "transient": _maybe(self.transient),
            "accepted": self.accepted,
            "rejection_reasons": [r.to_dict() for r in self.rejections],
        }


@dataclass
class EventDetection:
    """Result of one detection pass over a filtered recording."""
    energy: np.ndarray
    threshold: float
    window_size: int
    events: list[DetectedEvent]

    @property
    def accepted(self) -> list[DetectedEvent]:
        return [e for e in self.events if e.accepted]

    @property
    def rejected(self) -> list[DetectedEvent]:
        return [e for e in self.events if not e.accepted]


# =============================================================================
# Detection
# =============================================================================


def compute_threshold(energy: np.ndarray, multiplier: float) -> float:
    """Adaptive threshold = mean + multiplier * population std."""
    if len(energy) == 0:
        return 0.0
    return float(np.mean(energy)) + multiplier * audio.population_std(energy)


def detect_candidates(energy: np.ndarray, threshold: float) -> list[CandidateEvent]:
    """Group consecutive windows with energy strictly above threshold."""
    runs = audio.find_runs(energy > threshold)
    return [
        CandidateEvent(
            start_window=start,
            end_window=end,
            peak_energy=float(np.max(energy[start:end + 1])),
        )
        for start, end in runs
    ]


def detect_events(
    filtered: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> EventDetection:
    """
    Detect and classify events in a gut-band filtered recording.

    Args:
        filtered: Zero-phase gut-band filtered samples
        sample_rate: Sample rate (Hz)
        config: Event thresholds

    Returns:
        EventDetection with every candidate (accepted and rejected)
    """
    filtered = np.asarray(filtered, dtype=np.float64)
    window_size = audio.window_samples(config.window_ms, sample_rate)
    energy = audio.windowed_rms(filtered, window_size)
    threshold = compute_threshold(energy, config.threshold_multiplier)

    candidates = detect_candidates(energy, threshold)
    logger.debug(
        f"Energy windows: {len(energy)} | threshold: {threshold:.6f} | "
        f"candidates: {len(candidates)}"
    )

    events = [
        classify_event(candidate, i + 1, filtered, sample_rate, window_size, config)
        for i, candidate in enumerate(candidates)
    ]

    accepted = sum(1 for e in events if e.accepted)
    logger.info(f"Events detected: {len(events)}, accepted: {accepted}")

    return EventDetection(
        energy=energy,
        threshold=threshold,
        window_size=window_size,
        events=events,
    )


# =============================================================================
# Feature Extractors
# =============================================================================


def analyze_spectral(
    samples: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> SpectralFeatures | None:
    """
    Spectral flatness, bowel-band ratio, ZCR and spectral contrast.

    Returns:
        None when fewer than fft_size / 4 samples are available
    """
    fft_size = config.fft_size
    if len(samples) < fft_size / 4:
        return None

    magnitudes = audio.hann_magnitude_spectrum(samples, fft_size, pad_before_window=True)
    freq_per_bin = sample_rate / fft_size

    # Spectral flatness over non-negligible bins
    non_zero = magnitudes[magnitudes > audio.EPS]
    sfm = 0.0
    if len(non_zero) > 0:
        arithmetic_mean = float(np.mean(non_zero))
        geometric_mean = float(np.exp(np.mean(np.log(non_zero))))
        if arithmetic_mean > 0:
            sfm = min(1.0, max(0.0, geometric_mean / arithmetic_mean))

    # Energy ratio in the bowel band
    power = magnitudes ** 2
    low_bin = math.floor(config.bowel_low_hz / freq_per_bin)
    high_bin = math.ceil(config.bowel_high_hz / freq_per_bin)
    total_energy = float(np.sum(power))
    bowel_energy = float(np.sum(power[low_bin:high_bin + 1]))
    bowel_peak_ratio = bowel_energy / total_energy if total_energy > 0 else 0.0

    zcr = audio.compute_zero_crossing_rate(samples)

    # Contrast: top 10% vs bottom 50% of magnitudes
    ordered = np.sort(magnitudes)[::-1]
    peak_count = max(1, int(len(ordered) * 0.1))
    valley_count = int(len(ordered) * 0.5)
    peak_mean = float(np.mean(ordered[:peak_count]))
    valley_mean = float(np.mean(ordered[-valley_count:])) if valley_count > 0 else 0.0
    spectral_contrast = 0.0
    if peak_mean > 0:
        spectral_contrast = min(1.0, max(0.0, (peak_mean - valley_mean) / peak_mean))

    is_white_noise = (
        sfm >= config.sfm_auto_reject
        or (
            sfm >= config.sfm_white_noise
            and bowel_peak_ratio < config.bowel_min_ratio
            and zcr > config.zcr_max_gut
        )
        or zcr >= config.zcr_auto_reject
    )
    is_likely_gut_sound = (
        not is_white_noise
        and sfm < config.sfm_white_noise
        and bowel_peak_ratio >= config.bowel_min_ratio
        and zcr <= config.zcr_max_gut
        and spectral_contrast >= config.contrast_min_gut
    )

    return SpectralFeatures(
        sfm=sfm,
        bowel_peak_ratio=bowel_peak_ratio,
        zcr=zcr,
        spectral_contrast=spectral_contrast,
        is_white_noise=bool(is_white_noise),
        is_likely_gut_sound=bool(is_likely_gut_sound),
    )


_NO_HARMONICS = HarmonicFeatures(
    is_harmonic=False,
    fundamental_hz=None,
    harmonic_count=0,
    hnr_db=0.0,
    speech_confidence=0.0,
    should_reject=False,
)


def analyze_harmonic(
    samples: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> HarmonicFeatures | None:
    """
    Detect voiced speech / music by harmonic structure.

    Steps:
        1. Autocorrelation f0 search over lags sr/f0_max .. sr/f0_min
        2. Count harmonics whose peak exceeds 2x the local noise floor
        3. HNR = 10 log10(harmonic energy / non-harmonic energy)

    Returns:
        None when fewer than fft_size samples are available
    """
    fft_size = config.fft_size
    if len(samples) < fft_size:
        return None

    min_lag = int(sample_rate / config.f0_max_hz)
    max_lag = int(sample_rate / config.f0_min_hz)

    windowed = np.asarray(samples[:fft_size], dtype=np.float64) * np.hanning(fft_size)
    centered = windowed - np.mean(windowed)
    energy = float(np.sum(centered ** 2))
    if energy < audio.EPS:
        return _NO_HARMONICS

    best_lag = 0
    best_corr = 0.0
    for lag in range(min_lag, min(max_lag, len(centered) - 1) + 1):
        corr = float(np.dot(centered[:-lag], centered[lag:])) / energy
        if corr > best_corr:
            best_corr = corr
            best_lag = lag

    if best_corr < config.min_f0_correlation or best_lag == 0:
        return _NO_HARMONICS

    fundamental_hz = sample_rate / best_lag

    magnitudes = audio.hann_magnitude_spectrum(samples, fft_size)
    freq_per_bin = sample_rate / fft_size
    n_bins = len(magnitudes)
    tolerance = max(1, round_half_up(fundamental_hz * config.harmonic_tolerance / freq_per_bin))
    max_harmonic = min(config.max_harmonics, int((sample_rate / 2) / fundamental_hz))

    harmonic_energy = 0.0
    harmonic_count = 0
    for h in range(1, max_harmonic + 1):
        expected_bin = round_half_up(h * fundamental_hz / freq_per_bin)
        min_bin = max(0, expected_bin - tolerance)
        max_bin = min(n_bins - 1, expected_bin + tolerance)
        if min_bin > max_bin:
            continue

        peak_mag = float(np.max(magnitudes[min_bin:max_bin + 1]))
        neighbours = np.concatenate([
            magnitudes[max(0, min_bin - 5):min_bin],
            magnitudes[max_bin + 1:min(n_bins - 1, max_bin + 5) + 1],
        ])
        local_noise = float(np.mean(neighbours)) if len(neighbours) > 0 else 0.0

        if peak_mag > local_noise * 2:
            harmonic_count += 1
            harmonic_energy += peak_mag ** 2

    # Energy in bins that are not near any harmonic
    freqs = np.arange(n_bins) * freq_per_bin
    harmonic_freqs = np.arange(1, max_harmonic + 1) * fundamental_hz
    near_harmonic = np.zeros(n_bins, dtype=bool)
    for hf in harmonic_freqs:
        near_harmonic |= np.abs(freqs - hf) < fundamental_hz * config.harmonic_tolerance
    noise_energy = float(np.sum(magnitudes[~near_harmonic] ** 2))

    hnr_db = 0.0
    if noise_energy > 0 and harmonic_energy > 0:
        hnr_db = 10.0 * math.log10(harmonic_energy / noise_energy)

    is_harmonic = harmonic_count >= config.min_harmonics
    should_reject = is_harmonic and hnr_db >= config.hnr_speech_db

    speech_confidence = 0.0
    if is_harmonic:
        speech_confidence = min(1.0, (harmonic_count - 2) / 4)
        speech_confidence += min(0.5, hnr_db / 20)

    return HarmonicFeatures(
        is_harmonic=is_harmonic,
        fundamental_hz=fundamental_hz,
        harmonic_count=harmonic_count,
        hnr_db=hnr_db,
        speech_confidence=speech_confidence,
        should_reject=should_reject,
    )


_NOT_BREATH = BreathFeatures(
    is_breath_artifact=False,
    onset_ratio=1.0,
    low_freq_emphasis=0.0,
    breath_confidence=0.0,
)


def analyze_breath(
    samples: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> BreathFeatures:
    """
    Score how breath-like an event is.

    Breathing has a gradual onset (low early energy relative to the peak)
    and concentrates energy below ~200 Hz. Only events between
    breath_min_ms and breath_max_ms are considered.
    """
    duration_ms = len(samples) / sample_rate * 1000.0
    if duration_ms < config.breath_min_ms or duration_ms > config.breath_max_ms:
        return _NOT_BREATH

    env_window = audio.window_samples(config.breath_envelope_ms, sample_rate)
    envelope = audio.windowed_rms(samples, env_window, hop=max(1, env_window // 2))
    if len(envelope) < 4:
        return _NOT_BREATH

    peak_index = int(np.argmax(envelope))
    peak_energy = float(envelope[peak_index])
    onset_end = max(1, int(peak_index * 0.2))
    onset_energy = float(np.mean(envelope[:onset_end]))
    onset_ratio = onset_energy / peak_energy if peak_energy > 0 else 1.0

    fft_size = min(config.fft_size, len(samples))
    magnitudes = audio.hann_magnitude_spectrum(samples, fft_size)
    freq_per_bin = sample_rate / fft_size
    low_bin = math.floor(config.breath_low_freq_hz / freq_per_bin)
    power = magnitudes ** 2
    total_energy = float(np.sum(power))
    low_freq_emphasis = float(np.sum(power[:low_bin])) / total_energy if total_energy > 0 else 0.0

    breath_confidence = 0.3
    if onset_ratio < config.breath_onset_ratio:
        breath_confidence += 0.4
    if low_freq_emphasis >= config.breath_low_freq_ratio:
        breath_confidence += 0.3

    return BreathFeatures(
        is_breath_artifact=breath_confidence >= config.breath_confidence,
        onset_ratio=onset_ratio,
        low_freq_emphasis=low_freq_emphasis,
        breath_confidence=breath_confidence,
    )


def validate_burst(
    samples: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> BurstValidation:
    """
    Check that an event has a physiological burst length.

    Returns:
        Valid for burst_min_ms..burst_max_ms inclusive; longer events are
        flagged as breathing / constant noise, shorter ones as too short.
    """
    if len(samples) == 0:
        return BurstValidation(
            is_valid_burst=False,
            is_constant_noise=False,
            is_breathing_artifact=False,
            duration_ms=0.0,
            reason="Empty event",
        )

    duration_ms = len(samples) / sample_rate * 1000.0

    if duration_ms < config.burst_min_ms:
        return BurstValidation(
            is_valid_burst=False,
            is_constant_noise=False,
            is_breathing_artifact=False,
            duration_ms=duration_ms,
            reason=f"Too short: {duration_ms:.0f}ms < {config.burst_min_ms:.0f}ms",
        )

    if duration_ms > config.burst_max_ms:
        return BurstValidation(
            is_valid_burst=False,
            is_constant_noise=True,
            is_breathing_artifact=True,
            duration_ms=duration_ms,
            reason=(
                f"Breathing artifact / constant noise: "
                f"{duration_ms:.0f}ms > {config.burst_max_ms:.0f}ms"
            ),
        )

    return BurstValidation(
        is_valid_burst=True,
        is_constant_noise=False,
        is_breathing_artifact=False,
        duration_ms=duration_ms,
        reason=f"Valid burst: {duration_ms:.0f}ms",
    )


def detect_transient(
    samples: np.ndarray,
    sample_rate: int,
    config: EventConfig = EventConfig(),
) -> TransientFeatures:
    """
    Detect sharp clicks / clatter by onset slope and peak-to-mean energy.

    Note:
        A mini-window following one with zero energy contributes no slope.
    """
    analysis_window = min(config.onset_window_samples, len(samples))
    if analysis_window < 10:
        return TransientFeatures(
            is_transient=False, onset_slope=0.0, energy_ratio=0.0, transient_duration_ms=0.0,
        )

    mini = config.onset_mini_window
    onset = np.asarray(samples[:analysis_window], dtype=np.float64)
    n_mini = len(onset) // mini
    onset_energies = np.mean(onset[: n_mini * mini].reshape(n_mini, mini) ** 2, axis=1)

    max_slope = 0.0
    for prev, cur in zip(onset_energies[:-1], onset_energies[1:]):
        if prev > 0:
            max_slope = max(max_slope, float((cur - prev) / prev))

    energies = np.asarray(samples, dtype=np.float64) ** 2
    peak_energy = float(np.max(energies))
    mean_energy = float(np.mean(energies))
    energy_ratio = peak_energy / mean_energy if mean_energy > 0 else 0.0

    above_half = int(np.count_nonzero(energies >= peak_energy * 0.5))
    transient_duration_ms = above_half / sample_rate * 1000.0

    is_transient = max_slope > config.transient_slope or (
        energy_ratio > config.transient_energy_ratio
        and transient_duration_ms < config.transient_max_ms
    )

    return TransientFeatures(
        is_transient=bool(is_transient),
        onset_slope=max_slope,
        energy_ratio=energy_ratio,
        transient_duration_ms=transient_duration_ms,
    )


# =============================================================================
# Classifier Stages
# =============================================================================
#
# Each stage inspects the event, may attach features to it, and returns its
# own rejection list. classify_event concatenates every stage's output.


def _duration_stage(event, samples, sample_rate, config) -> list[Rejection]:
    rejections = []
    d = event.duration_ms
    if d < config.min_duration_ms:
        rejections.append(Rejection(
            FilterKind.DURATION_MIN,
            f"Too short: {d:.0f}ms < {config.min_duration_ms:.0f}ms",
            {"duration_ms": d},
        ))
    if d > config.max_duration_ms:
        rejections.append(Rejection(
            FilterKind.DURATION_MAX,
            f"Too long (sustained noise): {d:.0f}ms > {config.max_duration_ms:.0f}ms",
            {"duration_ms": d},
        ))
    return rejections


def _spectral_stage(event, samples, sample_rate, config) -> list[Rejection]:
    event.spectral = analyze_spectral(samples, sample_rate, config)
    s = event.spectral
    if s is None or not s.is_white_noise:
        return []
    return [Rejection(
        FilterKind.SPECTRAL_WHITE_NOISE,
        f"White noise detected: SFM={s.sfm:.3f}, ZCR={s.zcr:.3f}",
        {"sfm": s.sfm, "zcr": s.zcr, "bowel_peak_ratio": s.bowel_peak_ratio},
    )]


def _harmonic_stage(event, samples, sample_rate, config) -> list[Rejection]:
    if len(samples) < sample_rate * 0.1:
        return []
    event.harmonic = analyze_harmonic(samples, sample_rate, config)
    h = event.harmonic
    if h is None or not h.should_reject:
        return []
    return [Rejection(
        FilterKind.HARMONIC_SPEECH,
        (
            f"Speech/music detected: f0={h.fundamental_hz:.0f}Hz, "
            f"{h.harmonic_count} harmonics, HNR={h.hnr_db:.1f}dB"
        ),
        {"fundamental_hz": h.fundamental_hz, "harmonic_count": h.harmonic_count, "hnr_db": h.hnr_db},
    )]


def _breath_stage(event, samples, sample_rate, config) -> list[Rejection]:
    event.breath = analyze_breath(samples, sample_rate, config)
    b = event.breath
    if not b.is_breath_artifact:
        return []
    return [Rejection(
        FilterKind.BREATH_ARTIFACT,
        f"Breath pattern: onset={b.onset_ratio:.2f}, lowFreq={b.low_freq_emphasis * 100:.0f}%",
        {
            "onset_ratio": b.onset_ratio,
            "low_freq_emphasis": b.low_freq_emphasis,
            "breath_confidence": b.breath_confidence,
        },
    )]


def _burst_stage(event, samples, sample_rate, config) -> list[Rejection]:
    event.burst = validate_burst(samples, sample_rate, config)
    b = event.burst
    if b.is_valid_burst:
        return []
    return [Rejection(
        FilterKind.BURST_VALIDATION,
        b.reason,
        {"is_constant_noise": b.is_constant_noise, "is_breathing_artifact": b.is_breathing_artifact},
    )]


def _transient_stage(event, samples, sample_rate, config) -> list[Rejection]:
    event.transient = detect_transient(samples, sample_rate, config)
    t = event.transient
    if not (config.transient_gate and t.is_transient):
        return []
    return [Rejection(
        FilterKind.TRANSIENT,
        f"Sharp transient: slope={t.onset_slope:.2f}, energyRatio={t.energy_ratio:.2f}",
        {
            "onset_slope": t.onset_slope,
            "energy_ratio": t.energy_ratio,
            "transient_duration_ms": t.transient_duration_ms,
        },
    )]


ClassifierStage = Callable[[DetectedEvent, np.ndarray, int, EventConfig], list[Rejection]]

CLASSIFIER_STAGES: list[ClassifierStage] = [
    _duration_stage,
    _spectral_stage,
    _harmonic_stage,
    _breath_stage,
    _burst_stage,
    _transient_stage,
]


def classify_event(
    candidate: CandidateEvent,
    event_id: int,
    filtered: np.ndarray,
    sample_rate: int,
    window_size: int,
    config: EventConfig = EventConfig(),
) -> DetectedEvent:
    """
    Run every classifier stage over one candidate.

    Returns:
        DetectedEvent with features attached and all rejections recorded
    """
    start_ms = float(candidate.start_window * config.window_ms)
    end_ms = float((candidate.end_window + 1) * config.window_ms)

    start_sample = candidate.start_window * window_size
    end_sample = min((candidate.end_window + 1) * window_size, len(filtered))
    samples = filtered[start_sample:end_sample]

    event = DetectedEvent(
        event_id=event_id,
        start_ms=start_ms,
        end_ms=end_ms,
        duration_ms=end_ms - start_ms,
        peak_energy=candidate.peak_energy,
        start_window=candidate.start_window,
        end_window=candidate.end_window,
    )

    for stage in CLASSIFIER_STAGES:
        event.rejections.extend(stage(event, samples, sample_rate, config))

    if event.rejections:
        logger.debug(
            f"Event #{event_id} {start_ms:.0f}-{end_ms:.0f}ms rejected: "
            f"{', '.join(r.filter.value for r in event.rejections)}"
        )
    return event
