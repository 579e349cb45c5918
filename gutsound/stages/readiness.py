"""
Stage: Vagal Readiness

Responsibilities:
    - Baseline lookup in the patient's session history
    - Vagal Readiness Score for the session
    - Output: metadata/readiness

Invariants:
    - Runs only when a patient id is given; otherwise the stage is
      recorded as skipped and produces nothing
    - Session history read failures fail the stage; they never degrade
      into a neutral baseline
"""

import logging

from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.readiness import (
    InMemorySessionStore,
    JsonSessionStore,
    SessionStoreError,
    compute_vagal_readiness,
    relative_motility_category,
)
from gutsound.scoring import SessionAnalytics
from gutsound.stages.base import (
    build_artifact_ref,
    build_error,
    fail,
    find_artifact,
    read_json_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


logger = logging.getLogger(__name__)


CONTRACT = StageContract(
    name="readiness",
    requires=frozenset({"metadata/recording", "metadata/analytics"}),
    produces=frozenset({"metadata/readiness"}),
    version="1.0.0",
)


class ReadinessStage(Stage):
    """Score vagal readiness against the patient's history."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        inputs = [find_artifact(ctx, "metadata/recording"), find_artifact(ctx, "metadata/analytics")]
        options = ctx.options

        if not options.patient_id:
            logger.info("Readiness skipped: no patient id")
            write_stage_status(
                ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
                inputs=inputs, skipped=True,
            )
            return []

        recording = read_json_artifact(ctx, "metadata/recording")
        analytics = SessionAnalytics.from_dict(read_json_artifact(ctx, "metadata/analytics"))

        if options.history_path is not None:
            store = JsonSessionStore(options.history_path)
        else:
            store = InMemorySessionStore()

        try:
            score = compute_vagal_readiness(
                analytics,
                options.patient_id,
                store,
                recording["duration_seconds"],
                intervention=options.intervention,
                config=ctx.config.readiness,
            )
            relative = relative_motility_category(
                analytics.motility_index,
                options.patient_id,
                store,
                ctx.config.readiness,
                ctx.config.scoring,
            )
        except SessionStoreError as e:
            raise fail(ctx, name, version, started_at, build_error(
                code="READINESS_HISTORY_ERROR",
                message=str(e),
                stage=name,
                detail={"history_path": str(options.history_path)},
            ), inputs=inputs)

        document = {
            "patient_id": options.patient_id,
            **score.to_dict(),
            "relative_motility_category": relative.value,
        }
        path = write_artifact(ctx.stage_dir(name), "readiness.json", document)
        artifacts = [build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/readiness",
            description="Vagal Readiness Score",
        )]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            inputs=inputs, artifacts=artifacts,
        )
        return artifacts
