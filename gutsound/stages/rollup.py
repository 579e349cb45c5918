"""
Stage: Final Roll-Up

Responsibilities:
    - Aggregate artifacts from all previous stages in stage order
    - Write a single session report combining every stage's result

Output: metadata/report (rollup/report.json)
    - recording: sha256, duration, sample rate, signal quality
    - contact: verdict and confidence
    - events: accepted/rejected counts and rejections by filter
    - analytics, heart, readiness (null when not computed)

Invariants:
    - ONLY stage allowed to read other stages' status files
    - No additional inference; values are copied from stage artifacts
"""

import json

from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.stages.base import (
    build_artifact_ref,
    read_json_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


CONTRACT = StageContract(
    name="rollup",
    requires=frozenset({
        "metadata/recording",
        "metadata/contact",
        "metadata/events",
        "metadata/heart",
        "metadata/analytics",
    }),
    produces=frozenset({"metadata/report"}),
    version="1.0.0",
)

EXPECTED_STAGES = ["ingest", "contact", "events", "heart", "scoring", "readiness"]


class RollupStage(Stage):
    """Aggregate outputs from all previous stages."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version

        stage_statuses = {}
        for stage_name in EXPECTED_STAGES:
            status_path = ctx.stage_dir(stage_name) / "status.json"
            if status_path.exists():
                stage_statuses[stage_name] = json.loads(status_path.read_text())
        missing = [s for s in EXPECTED_STAGES if s not in stage_statuses]
        all_success = not missing and all(s["success"] for s in stage_statuses.values())

        recording = read_json_artifact(ctx, "metadata/recording")
        contact = read_json_artifact(ctx, "metadata/contact")
        events = read_json_artifact(ctx, "metadata/events")
        analytics = read_json_artifact(ctx, "metadata/analytics")
        heart = read_json_artifact(ctx, "metadata/heart")
        has_readiness = any(a["role"] == "metadata/readiness" for a in ctx.artifacts)
        readiness = read_json_artifact(ctx, "metadata/readiness") if has_readiness else None

        report = {
            "job_id": ctx.job_id,
            "pipeline_version": ctx.pipeline_version,
            "recording": {
                "sha256": recording["sha256"],
                "duration_seconds": recording["duration_seconds"],
                "sample_rate": recording["sample_rate"],
                "signal_quality": recording["calibration"]["signal_quality"],
            },
            "contact": {
                "is_on_body": contact["is_on_body"],
                "contact_confidence": contact["contact_confidence"],
                "should_reject_as_in_air": contact["should_reject_as_in_air"],
            },
            "events": events["summary"],
            "analytics": {k: v for k, v in analytics.items() if k != "rhythmicity"},
            "rhythmicity_index": analytics["rhythmicity"]["index"],
            "heart": {
                "bpm": heart["bpm"],
                "beat_count": heart["beat_count"],
                "confidence": heart["confidence"],
                "hrv_valid": heart["hrv_valid"],
                "rmssd": heart["rmssd"],
                "vagal_tone_score": heart["vagal_tone_score"],
            },
            "readiness": readiness,
        }
        path = write_artifact(ctx.stage_dir(name), "report.json", report)
        report_ref = build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/report",
            description="Session report",
        )

        # Prior artifacts verbatim in stage order, then the report
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, all_success, started_at,
            inputs=list(ctx.artifacts), artifacts=[*ctx.artifacts, report_ref],
        )
        return [report_ref]
