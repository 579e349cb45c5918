"""
GutSound Stage Base Utilities.

Responsibilities:
- StageFailure exception for pipeline control flow
- Error object builder
- Stage status.json writer
- Artifact write/read helpers

Invariants:
- Stages always write status.json before raising StageFailure
- JSON artifacts are written with sorted keys (deterministic)
"""

import json
from pathlib import Path
from typing import Any

from gutsound.contracts import StageContext
from gutsound.utils import now_iso, serialize_json


class StageFailure(Exception):
    """
    Raised when a stage fails.

    Stage must write its status.json before raising this exception.
    The orchestrator catches this to stop pipeline execution.
    """

    def __init__(self, stage: str, errors: list[dict]):
        self.stage = stage
        self.errors = errors
        super().__init__(f"Stage '{stage}' failed")


def build_error(
    code: str,
    message: str,
    stage: str,
    detail: dict | None = None,
) -> dict:
    """
    Build a structured error object.

    Args:
        code: Error code (e.g., "INGEST_INPUT_MISSING")
        message: Human-readable error message
        stage: Stage name where error occurred
        detail: Optional additional details
    """
    error: dict = {
        "code": code,
        "message": message,
        "stage": stage,
    }
    if detail is not None:
        error["detail"] = detail
    return error


def write_stage_status(
    stage_dir: Path,
    job_id: str,
    stage: str,
    stage_version: str,
    success: bool,
    started_at: str,
    inputs: list | None = None,
    artifacts: list | None = None,
    errors: list | None = None,
    skipped: bool = False,
) -> None:
    """
    Write stage status.json to the stage directory.

    Args:
        stage_dir: Path to stage directory
        job_id: Job identifier
        stage: Stage name
        stage_version: Contract version of the stage
        success: Whether stage succeeded
        started_at: ISO-8601 timestamp when stage started
        inputs: Artifact refs the stage consumed (default: [])
        artifacts: Artifact refs the stage produced (default: [])
        errors: Error objects (default: [])
        skipped: Stage had nothing to do for this run
    """
    status = {
        "job_id": job_id,
        "stage": stage,
        "stage_version": stage_version,
        "started_at": started_at,
        "completed_at": now_iso(),
        "success": success,
        "skipped": skipped,
        "inputs": [] if inputs is None else inputs,
        "artifacts": [] if artifacts is None else artifacts,
        "errors": [] if errors is None else errors,
    }
    stage_dir.mkdir(parents=True, exist_ok=True)
    (stage_dir / "status.json").write_text(serialize_json(status))


def write_artifact(stage_dir: Path, rel_path: str, content: dict | str) -> str:
    """
    Write a JSON (dict) or text artifact.

    Returns:
        Relative path from job root (e.g., "events/events.json")
    """
    artifact_path = stage_dir / rel_path
    artifact_path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, dict):
        artifact_path.write_text(serialize_json(content))
    else:
        artifact_path.write_text(content)
    return f"{stage_dir.name}/{rel_path}"


def build_artifact_ref(
    path: str,
    artifact_type: str,
    role: str,
    description: str,
) -> dict:
    """
    Build a standardized artifact reference.

    Returns:
        {path, type, role, description}
    """
    return {
        "path": path,
        "type": artifact_type,
        "role": role,
        "description": description,
    }


def find_artifact(ctx: StageContext, role: str) -> dict:
    """Latest artifact with the given role (validator guarantees presence)."""
    for artifact in reversed(ctx.artifacts):
        if artifact["role"] == role:
            return artifact
    raise KeyError(f"No artifact with role '{role}'")


def read_json_artifact(ctx: StageContext, role: str) -> dict[str, Any]:
    artifact = find_artifact(ctx, role)
    return json.loads((ctx.workspace / artifact["path"]).read_text())


def fail(
    ctx: StageContext,
    stage: str,
    stage_version: str,
    started_at: str,
    error: dict,
    inputs: list | None = None,
) -> StageFailure:
    """Write a failed status.json and return the StageFailure to raise."""
    write_stage_status(
        ctx.stage_dir(stage),
        ctx.job_id,
        stage,
        stage_version,
        False,
        started_at,
        inputs=inputs,
        errors=[error],
    )
    return StageFailure(stage, [error])
