"""
GutSound Vagal Readiness Aggregator

Combines a session's analytics with the patient's recent history into a
0-100 Vagal Readiness Score.

Formula:
    score = round(0.40 * baseline + 0.30 * rhythmicity + 0.30 * intervention)

Components:
    baseline      - current motility vs trailing 7-day average, mapped by
                    the change curve (+20% -> 100, 0% -> 50, -20% -> 0)
    rhythmicity   - the session's rhythmicity index, unchanged
    intervention  - activity timeline split at the intervention start,
                    after vs before average mapped by the same curve

INVARIANTS:
    - score is always in [0, 100]
    - Missing context (no history, no intervention, degenerate split)
      yields a neutral 50 for that component
    - Session store failures propagate as SessionStoreError; they are
      never treated as "no history"
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, Union

from jsonschema import Draft7Validator

from gutsound.config import SCHEMA_DIR, ReadinessConfig, ScoringConfig
from gutsound.scoring import (
    MotilityCategory,
    SessionAnalytics,
    motility_category,
    rhythmicity_index,
)
from gutsound.utils import clamp, now_iso, round_half_up


logger = logging.getLogger(__name__)

BASELINE_WEIGHT = 0.40
RHYTHMICITY_WEIGHT = 0.30
INTERVENTION_WEIGHT = 0.30
NEUTRAL_SCORE = 50


class SessionStoreError(RuntimeError):
    """Raised when session history cannot be read."""


# =============================================================================
# Session Store
# =============================================================================


@dataclass(frozen=True)
class SessionRecord:
    created_at: datetime
    analytics: SessionAnalytics | None


class SessionStore(Protocol):
    def fetch_sessions_with_analytics(self, patient_id: str) -> list[SessionRecord]:
        ...


class InMemorySessionStore:
    """Session history held in a dict keyed by patient id."""

    def __init__(self, sessions: dict[str, list[SessionRecord]] | None = None):
        self._sessions: dict[str, list[SessionRecord]] = {
            pid: list(records) for pid, records in (sessions or {}).items()
        }

    def add(self, patient_id: str, record: SessionRecord) -> None:
        self._sessions.setdefault(patient_id, []).append(record)

    def fetch_sessions_with_analytics(self, patient_id: str) -> list[SessionRecord]:
        return [r for r in self._sessions.get(patient_id, []) if r.analytics is not None]


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class JsonSessionStore:
    """
    Session history read from a JSON file.

    File layout (validated by sessions.schema.json):
        {"sessions": [{"patient_id": ..., "created_at": ISO-8601,
                       "analytics": {...} | null}, ...]}

    The file is read on every fetch so that external updates are seen.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            with open(self.path, "r") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SessionStoreError(f"Cannot read session history {self.path}: {e}") from e

        with open(SCHEMA_DIR / "sessions.schema.json", "r") as f:
            schema = json.load(f)
        errors = sorted(
            Draft7Validator(schema).iter_errors(document),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        if errors:
            first = errors[0]
            location = "/".join(str(p) for p in first.absolute_path) or "(root)"
            raise SessionStoreError(
                f"Invalid session history {self.path} at {location}: {first.message}"
            )
        return document

    def fetch_sessions_with_analytics(self, patient_id: str) -> list[SessionRecord]:
        document = self._load()
        records = []
        for entry in document["sessions"]:
            if entry["patient_id"] != patient_id or entry.get("analytics") is None:
                continue
            try:
                records.append(SessionRecord(
                    created_at=_parse_timestamp(entry["created_at"]),
                    analytics=SessionAnalytics.from_dict(entry["analytics"]),
                ))
            except (KeyError, ValueError) as e:
                raise SessionStoreError(f"Malformed session entry in {self.path}: {e}") from e
        logger.debug(f"Loaded {len(records)} sessions for patient {patient_id}")
        return records


# =============================================================================
# Intervention
# =============================================================================


@dataclass(frozen=True)
class NoIntervention:
    pass


@dataclass(frozen=True)
class InterventionNoTiming:
    pass


@dataclass(frozen=True)
class InterventionWithStart:
    start_seconds: float


Intervention = Union[NoIntervention, InterventionNoTiming, InterventionWithStart]


def change_score(percent_change: float) -> int:
    """Map a percent change onto 0-100: +20% -> 100, 0% -> 50, -20% -> 0."""
    return round_half_up(clamp(50 + percent_change / 20 * 50))


def intervention_delta(
    timeline: tuple[int, ...] | list[int],
    intervention: Intervention,
    duration_seconds: float,
    config: ReadinessConfig = ReadinessConfig(),
) -> int:
    """
    Score the activity response to a breathing intervention.

    Args:
        timeline: Activity timeline of the session
        intervention: Intervention variant recorded for the session
        duration_seconds: Recording duration
        config: Readiness constants

    Returns:
        0-100 score; 50 when there is nothing to compare
    """
    if isinstance(intervention, NoIntervention):
        return NEUTRAL_SCORE
    if len(timeline) < config.min_timeline_segments:
        return NEUTRAL_SCORE

    if isinstance(intervention, InterventionWithStart) and duration_seconds > 0:
        fraction = intervention.start_seconds / duration_seconds
    else:
        fraction = config.default_intervention_fraction

    split = math.floor(len(timeline) * fraction)
    if split < 1 or split >= len(timeline) - 1:
        logger.debug(f"Degenerate intervention split at {split}/{len(timeline)}")
        return NEUTRAL_SCORE

    before = timeline[:split]
    after = timeline[split:]
    before_avg = sum(before) / len(before)
    after_avg = sum(after) / len(after)

    if before_avg == 0:
        return 75 if after_avg > 20 else NEUTRAL_SCORE

    return change_score((after_avg - before_avg) / before_avg * 100)


# =============================================================================
# Baseline
# =============================================================================


@dataclass(frozen=True)
class Baseline:
    average: int
    session_count: int


def compute_baseline(
    store: SessionStore,
    patient_id: str,
    now: datetime | None = None,
    config: ReadinessConfig = ReadinessConfig(),
) -> Baseline:
    """
    Average motility index over the trailing baseline window.

    Raises:
        SessionStoreError: Propagated from the store
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=config.baseline_days)

    sessions = store.fetch_sessions_with_analytics(patient_id)
    recent = [s for s in sessions if s.analytics is not None and s.created_at >= cutoff]

    if not recent:
        return Baseline(average=NEUTRAL_SCORE, session_count=0)

    total = sum(s.analytics.motility_index for s in recent)
    return Baseline(average=round_half_up(total / len(recent)), session_count=len(recent))


# =============================================================================
# Score
# =============================================================================


class ReadinessCategory(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    MODERATE = "moderate"
    DEVELOPING = "developing"


def readiness_category(score: float) -> ReadinessCategory:
    if score >= 80:
        return ReadinessCategory.EXCELLENT
    if score >= 60:
        return ReadinessCategory.GOOD
    if score >= 40:
        return ReadinessCategory.MODERATE
    return ReadinessCategory.DEVELOPING


def readiness_category_label(category: ReadinessCategory, is_incomplete: bool = False) -> str:
    if is_incomplete:
        return "Incomplete"
    return category.value.capitalize()


@dataclass(frozen=True)
class ReadinessComponents:
    baseline_component: int
    rhythmicity_component: int
    intervention_component: int


@dataclass(frozen=True)
class VagalReadinessScore:
    score: int
    category: ReadinessCategory
    components: ReadinessComponents
    baseline_motility: int
    current_motility: int
    change_from_baseline: int
    baseline_session_count: int
    is_incomplete: bool
    calculated_at: str = field(default_factory=now_iso)

    @property
    def category_label(self) -> str:
        return readiness_category_label(self.category, self.is_incomplete)

    @property
    def insight(self) -> str:
        return readiness_insight(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "category": self.category.value,
            "category_label": self.category_label,
            "components": {
                "baseline_component": self.components.baseline_component,
                "rhythmicity_component": self.components.rhythmicity_component,
                "intervention_component": self.components.intervention_component,
            },
            "baseline_motility": self.baseline_motility,
            "current_motility": self.current_motility,
            "change_from_baseline": self.change_from_baseline,
            "baseline_session_count": self.baseline_session_count,
            "is_incomplete": self.is_incomplete,
            "calculated_at": self.calculated_at,
            "insight": self.insight,
        }


def compute_vagal_readiness(
    analytics: SessionAnalytics | None,
    patient_id: str,
    store: SessionStore,
    duration_seconds: float,
    intervention: Intervention = NoIntervention(),
    now: datetime | None = None,
    config: ReadinessConfig = ReadinessConfig(),
) -> VagalReadinessScore | None:
    """
    Compute the Vagal Readiness Score for one session.

    Args:
        analytics: Current session analytics; None yields None
        patient_id: Patient whose history forms the baseline
        store: Session history collaborator
        duration_seconds: Recording duration
        intervention: Intervention variant for the session
        now: Reference time for the baseline window (defaults to UTC now)
        config: Readiness constants

    Returns:
        VagalReadinessScore, or None when analytics are missing

    Raises:
        SessionStoreError: History could not be read
    """
    if analytics is None:
        return None

    baseline = compute_baseline(store, patient_id, now=now, config=config)
    current = analytics.motility_index

    change = 0.0
    if baseline.average > 0:
        change = (current - baseline.average) / baseline.average * 100
    baseline_component = change_score(change)

    rhythmicity_component = rhythmicity_index(analytics).index
    intervention_component = intervention_delta(
        analytics.activity_timeline, intervention, duration_seconds, config,
    )

    raw = (
        baseline_component * BASELINE_WEIGHT
        + rhythmicity_component * RHYTHMICITY_WEIGHT
        + intervention_component * INTERVENTION_WEIGHT
    )
    score = int(clamp(round_half_up(raw)))
    category = readiness_category(score)

    logger.info(
        f"Vagal readiness: {score} ({category.value}) "
        f"[baseline={baseline_component}, rhythm={rhythmicity_component}, "
        f"intervention={intervention_component}]"
    )

    return VagalReadinessScore(
        score=score,
        category=category,
        components=ReadinessComponents(
            baseline_component=baseline_component,
            rhythmicity_component=rhythmicity_component,
            intervention_component=intervention_component,
        ),
        baseline_motility=baseline.average,
        current_motility=current,
        change_from_baseline=round_half_up(change),
        baseline_session_count=baseline.session_count,
        is_incomplete=duration_seconds < config.min_recording_s,
    )


def readiness_insight(score: VagalReadinessScore) -> str:
    """Guidance message for a readiness result."""
    if score.is_incomplete:
        return (
            "Recording was too short (< 30 seconds) to calculate an accurate Vagal Readiness "
            "Score. Please record for at least 30 seconds for reliable analysis."
        )

    components = score.components

    if score.category == ReadinessCategory.EXCELLENT:
        if components.intervention_component >= 80:
            return (
                "Excellent vagal tone! Your body responds very well to breathing interventions. "
                "Keep up the consistent practice."
            )
        return (
            "Excellent vagal readiness. Your gut-brain axis is showing strong "
            "parasympathetic activity."
        )

    if score.category == ReadinessCategory.GOOD:
        if score.change_from_baseline > 10:
            return (
                "Good progress! Your motility is above your 7-day baseline. "
                "The interventions are helping."
            )
        if components.rhythmicity_component >= 70:
            return (
                "Good rhythmicity patterns detected. Your gut activity is consistent "
                "and well-regulated."
            )
        return (
            "Good vagal readiness. Continue with regular practice to strengthen "
            "the gut-brain connection."
        )

    if score.category == ReadinessCategory.MODERATE:
        if components.intervention_component < 50:
            return (
                "Try the 4-7-8 breathing technique for better vagal stimulation "
                "during your next session."
            )
        if components.rhythmicity_component < 50:
            return "Consider recording at consistent times to establish better gut rhythm patterns."
        return (
            "Moderate vagal activity. Consistent daily practice can help improve "
            "your readiness score."
        )

    if score.baseline_session_count < 3:
        return (
            "Building your baseline. Record a few more sessions this week to "
            "establish your patterns."
        )
    return (
        "Your vagal readiness is developing. Focus on relaxation before recording "
        "and try guided interventions."
    )


# =============================================================================
# Personal Motility Category
# =============================================================================


def relative_motility_category(
    motility: float,
    patient_id: str,
    store: SessionStore,
    readiness: ReadinessConfig = ReadinessConfig(),
    scoring: ScoringConfig = ScoringConfig(),
) -> MotilityCategory:
    """
    Categorize motility against the patient's own average.

    Deviation below -relative_band is quiet, above +relative_band active.
    Without history the absolute category is used.

    Raises:
        ValueError: Empty patient id
        SessionStoreError: History could not be read
    """
    if not patient_id:
        raise ValueError("patient_id is required for a relative motility category")

    sessions = [s for s in store.fetch_sessions_with_analytics(patient_id) if s.analytics]
    if not sessions:
        return motility_category(motility, scoring)

    average = sum(s.analytics.motility_index for s in sessions) / len(sessions)
    deviation = motility - average
    if deviation < -readiness.relative_band:
        return MotilityCategory.QUIET
    if deviation > readiness.relative_band:
        return MotilityCategory.ACTIVE
    return MotilityCategory.NORMAL
