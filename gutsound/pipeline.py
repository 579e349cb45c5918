"""
GutSound Pipeline Orchestrator

PIPELINE STAGES (FIXED ORDER):

    1. ingest      -> gutsound.stages.ingest
    2. contact     -> gutsound.stages.contact
    3. events      -> gutsound.stages.events
    4. heart       -> gutsound.stages.heart
    5. scoring     -> gutsound.stages.scoring
    6. readiness   -> gutsound.stages.readiness
    7. rollup      -> gutsound.stages.rollup

INVARIANTS:
    - Stages execute in order
    - Stages never call each other (only the orchestrator sequences)
    - Each stage's contract is validated before it runs
    - Pipeline stops on first stage failure
    - Same input + same config = identical analysis artifacts
"""

import importlib
import json
import logging

from gutsound.config import DEFAULT_CONFIG, AnalysisConfig
from gutsound.context import JobContext
from gutsound.contracts import PIPELINE_VERSION, StageContext, StageValidator, ValidationError
from gutsound.filters import FilterCache, FilterDesignError
from gutsound.stages.base import StageFailure, build_error, write_stage_status
from gutsound.utils import now_iso, serialize_json


logger = logging.getLogger(__name__)


# Stage registry: (name, module_path, class_name)
STAGE_ORDER = [
    ("ingest", "gutsound.stages.ingest", "IngestStage"),
    ("contact", "gutsound.stages.contact", "ContactStage"),
    ("events", "gutsound.stages.events", "EventsStage"),
    ("heart", "gutsound.stages.heart", "HeartStage"),
    ("scoring", "gutsound.stages.scoring", "ScoringStage"),
    ("readiness", "gutsound.stages.readiness", "ReadinessStage"),
    ("rollup", "gutsound.stages.rollup", "RollupStage"),
]


def load_stage(module_path: str, class_name: str):
    module = importlib.import_module(module_path)
    return getattr(module, class_name)()


def run_pipeline(ctx: JobContext, config: AnalysisConfig = DEFAULT_CONFIG) -> bool:
    """
    Execute all stages in order.

    Args:
        ctx: JobContext with all paths configured
        config: Analysis configuration shared by every stage

    Returns:
        True if all stages succeeded, False otherwise.

    Note:
        Overwrites the initialized job-level status.json.
    """
    started_at = now_iso()
    failed_stage = None
    pipeline_errors: list[dict] = []
    artifacts: list[dict] = []
    cache = FilterCache()
    validator = StageValidator()

    for stage_name, module_path, class_name in STAGE_ORDER:
        stage = load_stage(module_path, class_name)
        stage_ctx = StageContext(
            job_id=ctx.job_id,
            input_audio=ctx.input_wav_path,
            workspace=ctx.job_dir,
            artifacts=tuple(artifacts),
            pipeline_version=PIPELINE_VERSION,
            config=config,
            options=ctx.options,
            cache=cache,
        )
        try:
            validator.validate(stage.contract, artifacts)
            logger.debug(f"Running stage {stage_name} v{stage.contract.version}")
            artifacts.extend(stage.run(stage_ctx))
        except ValidationError as e:
            error = build_error(
                code="STAGE_VALIDATION_FAILED",
                message=str(e),
                stage=stage_name,
                detail={
                    "missing_roles": sorted(e.missing_roles),
                    "type_errors": e.type_errors,
                },
            )
            write_stage_status(
                ctx.stage_dirs[stage_name], ctx.job_id, stage_name, stage.contract.version,
                False, now_iso(), errors=[error],
            )
            failed_stage, pipeline_errors = stage_name, [error]
            break
        except FilterDesignError as e:
            error = build_error(
                code="FILTER_DESIGN_ERROR",
                message=str(e),
                stage=stage_name,
            )
            write_stage_status(
                ctx.stage_dirs[stage_name], ctx.job_id, stage_name, stage.contract.version,
                False, now_iso(), errors=[error],
            )
            failed_stage, pipeline_errors = stage_name, [error]
            break
        except StageFailure as e:
            failed_stage, pipeline_errors = e.stage, e.errors
            break

    if failed_stage is not None:
        logger.error(f"Stage '{failed_stage}' failed: {pipeline_errors[0]['message']}")

    completed_at = now_iso()
    success = failed_stage is None

    rollup_status_path = ctx.stage_dirs["rollup"] / "status.json"
    if rollup_status_path.exists():
        aggregated_artifacts = json.loads(rollup_status_path.read_text()).get("artifacts", [])
    else:
        aggregated_artifacts = artifacts

    job_status = {
        "job_id": ctx.job_id,
        "version": PIPELINE_VERSION,
        "started_at": started_at,
        "completed_at": completed_at,
        "success": success,
        "failed_stage": failed_stage,
        "stages": {
            name: f"{name}/status.json"
            for name, _, _ in STAGE_ORDER
            if (ctx.stage_dirs[name] / "status.json").exists()
        },
        "artifacts": aggregated_artifacts,
        "errors": pipeline_errors,
    }
    (ctx.job_dir / "status.json").write_text(serialize_json(job_status))

    return success
