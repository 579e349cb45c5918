"""
GutSound Analysis Engine

Runs every analysis component over one in-memory recording.

Flow:
    raw -> noise floor calibration
        -> gut-band zero-phase filter -> contact check
           -> (on contact) event detection + classification -> analytics
        -> cardiac-band heart rate (independent of the gut path)
    analytics -> rhythmicity

INVARIANTS:
    - A recording rejected as in-air gets zeroed analytics and no events
    - The filter cache is the only state shared across calls
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from gutsound import debug
from gutsound.config import DEFAULT_CONFIG, AnalysisConfig
from gutsound.contact import ContactQualityResult, assess_contact
from gutsound.environment import CalibrationResult, calibrate_noise_floor
from gutsound.events import EventDetection, detect_events
from gutsound.filters import ButterworthFilter, FilterCache, apply_zero_phase
from gutsound.heart import HeartRateResult, analyze_heart_rate
from gutsound.scoring import (
    RhythmicityAnalysis,
    SessionAnalytics,
    compute_session_analytics,
    rejected_session_analytics,
    rhythmicity_index,
)


logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    sample_rate: int
    duration_seconds: float
    num_samples: int
    calibration: CalibrationResult
    gut_filter: ButterworthFilter
    contact: ContactQualityResult
    detection: EventDetection
    heart: HeartRateResult
    analytics: SessionAnalytics
    rhythmicity: RhythmicityAnalysis

    @property
    def rejected_as_in_air(self) -> bool:
        return self.contact.should_reject_as_in_air

    @property
    def summary(self) -> debug.DebugSummary:
        return debug.summarize(self.detection.events)

    @property
    def trace(self) -> list[dict[str, Any]]:
        return debug.build_trace(self.detection.events)

    @property
    def debug_log(self) -> str:
        return debug.format_debug_log(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sample_rate": self.sample_rate,
            "duration_seconds": self.duration_seconds,
            "rejected_as_in_air": self.rejected_as_in_air,
            "calibration": self.calibration.to_dict(),
            "contact": self.contact.to_dict(),
            "heart": self.heart.to_dict(),
            "analytics": self.analytics.to_dict(),
            "rhythmicity": self.rhythmicity.to_dict(),
            "summary": self.summary.to_dict(),
        }


def analyze_recording(
    samples: np.ndarray,
    sample_rate: int,
    duration_seconds: float | None = None,
    config: AnalysisConfig = DEFAULT_CONFIG,
    cache: FilterCache | None = None,
) -> AnalysisResult:
    """
    Analyze one complete recording.

    Args:
        samples: Normalized mono samples in [-1, 1]
        sample_rate: Sample rate (Hz)
        duration_seconds: Nominal duration; derived from the sample count if None
        config: Analysis configuration
        cache: Filter cache; a private one is created if None

    Returns:
        AnalysisResult

    Raises:
        FilterDesignError: Configured band is invalid for this sample rate
    """
    samples = np.asarray(samples, dtype=np.float64)
    cache = cache if cache is not None else FilterCache()
    if duration_seconds is None:
        duration_seconds = len(samples) / sample_rate

    calibration = calibrate_noise_floor(samples, sample_rate)

    gut_filter = cache.get(config.filters.gut_band, sample_rate)
    filtered = apply_zero_phase(samples, gut_filter)

    contact = assess_contact(filtered, sample_rate, config.contact)

    if contact.should_reject_as_in_air:
        logger.warning("Recording rejected: device appears to be in air, not on skin")
        detection = EventDetection(
            energy=np.zeros(0), threshold=0.0, window_size=0, events=[],
        )
        analytics = rejected_session_analytics(duration_seconds, config.scoring)
    else:
        detection = detect_events(filtered, sample_rate, config.events)
        analytics = compute_session_analytics(
            detection,
            duration_seconds,
            config.scoring,
            window_ms=config.events.window_ms,
            signal_quality=calibration.signal_quality,
        )

    heart = analyze_heart_rate(
        samples, duration_seconds, sample_rate, cache, config.heart, config.filters,
    )

    return AnalysisResult(
        sample_rate=sample_rate,
        duration_seconds=duration_seconds,
        num_samples=len(samples),
        calibration=calibration,
        gut_filter=gut_filter,
        contact=contact,
        detection=detection,
        heart=heart,
        analytics=analytics,
        rhythmicity=rhythmicity_index(analytics),
    )
