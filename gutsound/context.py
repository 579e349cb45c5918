"""
GutSound JobContext - Pipeline execution context.

Responsibilities:
- Hold all paths and run options for a job
- Serialization for meta/run.json

Invariants:
- Immutable during pipeline execution
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gutsound.readiness import (
    Intervention,
    InterventionNoTiming,
    InterventionWithStart,
    NoIntervention,
)


@dataclass(frozen=True)
class RunOptions:
    """Per-run options that are not analysis thresholds."""
    patient_id: str | None = None
    history_path: Path | None = None
    intervention: Intervention = NoIntervention()

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.intervention, InterventionWithStart):
            intervention: dict[str, Any] = {
                "kind": "with_start",
                "start_seconds": self.intervention.start_seconds,
            }
        elif isinstance(self.intervention, InterventionNoTiming):
            intervention = {"kind": "no_timing"}
        else:
            intervention = {"kind": "none"}
        return {
            "patient_id": self.patient_id,
            "history_path": str(self.history_path) if self.history_path else None,
            "intervention": intervention,
        }


@dataclass
class JobContext:
    """Paths and options for one job."""

    job_id: str
    job_dir: Path
    meta_dir: Path
    input_wav_path: Path
    input_json_path: Path
    stage_dirs: dict[str, Path] = field(default_factory=dict)
    options: RunOptions = field(default_factory=RunOptions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_dir": str(self.job_dir),
            "meta_dir": str(self.meta_dir),
            "input_wav_path": str(self.input_wav_path),
            "input_json_path": str(self.input_json_path),
            "stage_dirs": {k: str(v) for k, v in self.stage_dirs.items()},
            "options": self.options.to_dict(),
        }
