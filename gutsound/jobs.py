"""
GutSound Jobs - Job ID resolution and workspace layout.

Responsibilities:
- Job ID resolution (generate or use explicit)
- Workspace layout planning (shared by dry runs and creation)
- Collision detection

Forbidden:
- No schema logic
- No pipeline execution
"""

import uuid
from pathlib import Path


# Stage directory names, in execution order
STAGE_NAMES = ["ingest", "contact", "events", "heart", "scoring", "readiness", "rollup"]


class WorkspaceExistsError(Exception):
    """Raised when attempting to create a workspace that already exists."""
    pass


def resolve_job_id(explicit_id: str | None) -> str:
    """Use the explicit job ID when given, otherwise a fresh UUID4."""
    if explicit_id is not None:
        return explicit_id
    return str(uuid.uuid4())


def workspace_layout(jobs_root: Path, job_id: str) -> dict[str, Path]:
    """
    Plan the directories of a job workspace without touching the filesystem.

        jobs/<job_id>/
          meta/
          input/
          ingest/ contact/ events/ heart/ scoring/ readiness/ rollup/

    Returns:
        Dict with keys job_dir, meta_dir, input_dir and each stage name.
    """
    job_dir = jobs_root / job_id
    layout = {
        "job_dir": job_dir,
        "meta_dir": job_dir / "meta",
        "input_dir": job_dir / "input",
    }
    for stage_name in STAGE_NAMES:
        layout[stage_name] = job_dir / stage_name
    return layout


def stage_dirs(layout: dict[str, Path]) -> dict[str, Path]:
    """Pick the per-stage directories out of a workspace layout."""
    return {name: layout[name] for name in STAGE_NAMES}


def create_full_workspace(jobs_root: Path, job_id: str) -> dict[str, Path]:
    """
    Create every directory of workspace_layout().

    Raises:
        WorkspaceExistsError: If the job directory already exists.
    """
    layout = workspace_layout(jobs_root, job_id)
    job_dir = layout["job_dir"]

    if job_dir.exists():
        raise WorkspaceExistsError(f"Job workspace already exists: {job_dir}")

    jobs_root.mkdir(parents=True, exist_ok=True)
    job_dir.mkdir(parents=False, exist_ok=False)
    for key, path in layout.items():
        if key != "job_dir":
            path.mkdir()

    return layout
