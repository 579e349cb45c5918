"""
GutSound Motility & Rhythmicity Scorer

Aggregates accepted events and envelope energy into per-session analytics.

Formulas:
    eventsPerMinute  = accepted / (duration_s / 60)
    motilityIndex    = round(epm_weight * min(100, epm / epm_saturation * 100)
                             + active_weight * active_fraction * 100)
    activityTimeline = per-segment mean energy / max window energy * 100
    rhythmicityIndex = round(0.50 * (100 - CV%) + 0.25 * epm band score
                             + 0.25 * active-percent band score)

INVARIANTS:
    - motilityIndex and rhythmicityIndex are clamped to [0, 100]
    - activityTimeline always has exactly timeline_segments entries
    - Category thresholds: < 33 quiet, < 67 normal, else active
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from gutsound.config import ScoringConfig
from gutsound.environment import SignalQuality
from gutsound.events import EventDetection
from gutsound.utils import clamp, round_half_up, round_to


logger = logging.getLogger(__name__)


class MotilityCategory(str, Enum):
    QUIET = "quiet"
    NORMAL = "normal"
    ACTIVE = "active"


@dataclass(frozen=True)
class SessionAnalytics:
    """Persistable per-session summary."""
    events_per_minute: float
    total_active_seconds: int
    total_quiet_seconds: int
    motility_index: int
    activity_timeline: tuple[int, ...]

    @property
    def timeline_segments(self) -> int:
        return len(self.activity_timeline)

    def to_dict(self) -> dict[str, Any]:
        return {
            "events_per_minute": self.events_per_minute,
            "total_active_seconds": self.total_active_seconds,
            "total_quiet_seconds": self.total_quiet_seconds,
            "motility_index": self.motility_index,
            "activity_timeline": list(self.activity_timeline),
            "timeline_segments": self.timeline_segments,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionAnalytics":
        return cls(
            events_per_minute=float(data["events_per_minute"]),
            total_active_seconds=int(data["total_active_seconds"]),
            total_quiet_seconds=int(data["total_quiet_seconds"]),
            motility_index=int(data["motility_index"]),
            activity_timeline=tuple(int(v) for v in data.get("activity_timeline", [])),
        )


@dataclass(frozen=True)
class RhythmicityAnalysis:
    index: int
    activity_cv: float
    cv_score: float
    frequency_score: int
    ratio_score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "activity_cv": self.activity_cv,
            "cv_score": self.cv_score,
            "frequency_score": self.frequency_score,
            "ratio_score": self.ratio_score,
        }


# =============================================================================
# Motility
# =============================================================================


def activity_timeline(energy: np.ndarray, segments: int) -> list[int]:
    """
    Split window energies into segments and scale each segment's mean.

    Returns:
        `segments` integers in [0, 100]; segments past the end are 0
    """
    if len(energy) == 0:
        return [0] * segments

    per_segment = math.ceil(len(energy) / segments)
    max_energy = float(np.max(energy))
    timeline = []
    for i in range(segments):
        chunk = energy[i * per_segment:(i + 1) * per_segment]
        if len(chunk) == 0 or max_energy <= 0:
            timeline.append(0)
        else:
            timeline.append(round_half_up(float(np.mean(chunk)) / max_energy * 100))
    return timeline


def motility_index(
    events_per_minute: float,
    active_fraction: float,
    config: ScoringConfig = ScoringConfig(),
) -> int:
    """Weighted blend of normalized event rate and active-time fraction, 0-100."""
    normalized_epm = clamp(events_per_minute / config.epm_saturation * 100)
    activeness = active_fraction * 100
    blended = normalized_epm * config.epm_weight + activeness * config.active_weight
    return int(clamp(round_half_up(blended)))


def motility_category(index: float, config: ScoringConfig = ScoringConfig()) -> MotilityCategory:
    if index < config.quiet_below:
        return MotilityCategory.QUIET
    if index < config.active_from:
        return MotilityCategory.NORMAL
    return MotilityCategory.ACTIVE


def motility_category_label(category: MotilityCategory) -> str:
    return category.value.capitalize()


def compute_session_analytics(
    detection: EventDetection,
    duration_seconds: float,
    config: ScoringConfig = ScoringConfig(),
    window_ms: int = 100,
    signal_quality: SignalQuality | None = None,
) -> SessionAnalytics:
    """
    Summarize one detection pass.

    Args:
        detection: Event detection result (energy windows + events)
        duration_seconds: Nominal recording duration
        config: Scoring constants
        window_ms: Energy window length used by detection
        signal_quality: Optional ANF grade; "fair" halves the motility index

    Returns:
        SessionAnalytics
    """
    accepted = detection.accepted
    return analytics_from_windows(
        detection.energy,
        accepted_count=len(accepted),
        active_windows=sum(e.window_count for e in accepted),
        duration_seconds=duration_seconds,
        config=config,
        window_ms=window_ms,
        signal_quality=signal_quality,
    )


def analytics_from_windows(
    energy: np.ndarray,
    accepted_count: int,
    active_windows: int,
    duration_seconds: float,
    config: ScoringConfig = ScoringConfig(),
    window_ms: int = 100,
    signal_quality: SignalQuality | None = None,
) -> SessionAnalytics:
    """Analytics from window energies and accepted-event counts alone."""
    energy = np.asarray(energy, dtype=np.float64)
    minutes = duration_seconds / 60
    epm = accepted_count / minutes if minutes > 0 else 0.0

    active_seconds = active_windows * window_ms / 1000
    quiet_seconds = max(0.0, duration_seconds - active_seconds)
    n_windows = len(energy)
    active_fraction = active_windows / n_windows if n_windows > 0 else 0.0

    index = motility_index(epm, active_fraction, config)
    if signal_quality == SignalQuality.FAIR:
        index = round_half_up(index * config.fair_quality_penalty)

    timeline = activity_timeline(energy, config.timeline_segments)

    logger.info(
        f"Analytics: {epm:.1f} events/min, active {active_seconds:.1f}s, "
        f"motility {index} ({motility_category(index, config).value})"
    )

    return SessionAnalytics(
        events_per_minute=round_to(epm, 1),
        total_active_seconds=round_half_up(active_seconds),
        total_quiet_seconds=round_half_up(quiet_seconds),
        motility_index=index,
        activity_timeline=tuple(timeline),
    )


def rejected_session_analytics(
    duration_seconds: float,
    config: ScoringConfig = ScoringConfig(),
) -> SessionAnalytics:
    """Analytics for a recording rejected as off-body: all quiet, no activity."""
    return SessionAnalytics(
        events_per_minute=0.0,
        total_active_seconds=0,
        total_quiet_seconds=round_half_up(duration_seconds),
        motility_index=0,
        activity_timeline=tuple([0] * config.timeline_segments),
    )


# =============================================================================
# Rhythmicity
# =============================================================================

EPM_BANDS = ((5, 15, 100), (3, 20, 75), (1, 25, 50))
ACTIVE_PERCENT_BANDS = ((30, 60, 100), (20, 70, 75), (10, 80, 50))
OUTSIDE_BAND_SCORE = 25


def band_score(value: float, bands: tuple[tuple[float, float, int], ...]) -> int:
    """Score of the first (narrowest) inclusive band containing value."""
    for low, high, score in bands:
        if low <= value <= high:
            return score
    return OUTSIDE_BAND_SCORE


def rhythmicity_index(analytics: SessionAnalytics) -> RhythmicityAnalysis:
    """
    Pattern consistency from timeline variability plus ideal-band scores.

    Returns:
        RhythmicityAnalysis; an empty timeline scores a neutral 50
    """
    timeline = np.asarray(analytics.activity_timeline, dtype=np.float64)
    if len(timeline) == 0:
        return RhythmicityAnalysis(
            index=50, activity_cv=0.0, cv_score=50.0, frequency_score=50, ratio_score=50,
        )

    mean = float(np.mean(timeline))
    cv = float(np.std(timeline)) / mean * 100 if mean > 0 else 0.0
    cv_score = clamp(100 - cv)

    frequency_score = band_score(analytics.events_per_minute, EPM_BANDS)

    total = analytics.total_active_seconds + analytics.total_quiet_seconds
    active_percent = analytics.total_active_seconds / total * 100 if total > 0 else 0.0
    ratio_score = band_score(active_percent, ACTIVE_PERCENT_BANDS)

    index = round_half_up(cv_score * 0.5 + frequency_score * 0.25 + ratio_score * 0.25)

    return RhythmicityAnalysis(
        index=int(clamp(index)),
        activity_cv=cv,
        cv_score=cv_score,
        frequency_score=frequency_score,
        ratio_score=ratio_score,
    )
