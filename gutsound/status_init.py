"""
GutSound Job Status Initialization.

Responsibilities:
- Build the initialized job-level status object
- Validate job status against schemas/status.schema.json

Forbidden:
- No directory creation
- No job ID logic

Note:
    The initialized status has the same keys as the final one; the
    orchestrator fills completed_at, success and stages when it finishes.
"""

import json
from typing import Any

import jsonschema

from gutsound.config import SCHEMA_DIR
from gutsound.contracts import PIPELINE_VERSION
from gutsound.utils import now_iso


SCHEMA_PATH = SCHEMA_DIR / "status.schema.json"


def build_initial_status(job_id: str) -> dict[str, Any]:
    """
    Build the initial status object.

    Args:
        job_id: The job identifier.

    Returns:
        Status dictionary with no outcome recorded yet.
    """
    return {
        "job_id": job_id,
        "version": PIPELINE_VERSION,
        "started_at": now_iso(),
        "completed_at": None,
        "success": None,
        "failed_stage": None,
        "stages": {},
        "artifacts": [],
        "errors": [],
    }


def validate_status(status: dict[str, Any]) -> list[str]:
    """
    Validate a job status object against the status schema.

    Returns:
        List of validation error messages (empty if valid).
    """
    schema = json.loads(SCHEMA_PATH.read_text())
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in validator.iter_errors(status):
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        errors.append(f"{path}: {error.message}")
    return errors
