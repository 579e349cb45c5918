"""
Stage: Motility & Rhythmicity Scoring

Responsibilities:
    - Session analytics (events/min, active/quiet seconds, motility index,
      activity timeline) from the events artifact
    - Rhythmicity index of the session
    - Output: metadata/analytics

Invariants:
    - A recording rejected as in-air scores motility 0 with all time quiet
    - A "fair" noise floor halves the motility index
"""

import math

from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.environment import SignalQuality
from gutsound.scoring import (
    analytics_from_windows,
    motility_category,
    motility_category_label,
    rejected_session_analytics,
    rhythmicity_index,
)
from gutsound.stages.base import (
    build_artifact_ref,
    find_artifact,
    read_json_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


CONTRACT = StageContract(
    name="scoring",
    requires=frozenset({"metadata/recording", "metadata/events"}),
    produces=frozenset({"metadata/analytics"}),
    version="1.0.0",
)


class ScoringStage(Stage):
    """Aggregate events into session analytics."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        inputs = [find_artifact(ctx, "metadata/recording"), find_artifact(ctx, "metadata/events")]

        recording = read_json_artifact(ctx, "metadata/recording")
        events = read_json_artifact(ctx, "metadata/events")
        duration = recording["duration_seconds"]
        scoring = ctx.config.scoring

        if events["rejected_as_in_air"]:
            analytics = rejected_session_analytics(duration, scoring)
        else:
            accepted = [e for e in events["events"] if e["accepted"]]
            window_ms = events["window_ms"]
            analytics = analytics_from_windows(
                events["energy"],
                accepted_count=len(accepted),
                active_windows=sum(math.ceil(e["duration_ms"] / window_ms) for e in accepted),
                duration_seconds=duration,
                config=scoring,
                window_ms=window_ms,
                signal_quality=SignalQuality(recording["calibration"]["signal_quality"]),
            )

        category = motility_category(analytics.motility_index, scoring)
        document = {
            **analytics.to_dict(),
            "motility_category": category.value,
            "motility_label": motility_category_label(category),
            "rhythmicity": rhythmicity_index(analytics).to_dict(),
        }
        path = write_artifact(ctx.stage_dir(name), "analytics.json", document)
        artifacts = [build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/analytics",
            description="Session analytics and rhythmicity",
        )]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            inputs=inputs, artifacts=artifacts,
        )
        return artifacts
