"""
Stage: Ingest & Calibrate

Responsibilities:
    - Validate the input recording is a readable WAV with finite samples
    - Compute SHA-256 of the input for reproducibility
    - Measure the ambient noise floor (ANF) from the opening seconds
    - Output: audio/original (reference) + metadata/recording

Invariants:
    - Same input file = same SHA-256 hash
    - The audio/original artifact references input/original.wav; no copy
"""

import hashlib
import logging

import numpy as np
import soundfile as sf

from gutsound.audio import read_wav
from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.environment import calibrate_noise_floor
from gutsound.stages.base import (
    build_artifact_ref,
    build_error,
    fail,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


logger = logging.getLogger(__name__)


CONTRACT = StageContract(
    name="ingest",
    requires=frozenset(),
    produces=frozenset({"audio/original", "metadata/recording"}),
    version="1.0.0",
)


def sha256_file(path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class IngestStage(Stage):
    """Validate the input and record its basic properties."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        path = ctx.input_audio

        if not path.exists():
            raise fail(ctx, name, version, started_at, build_error(
                code="INGEST_INPUT_MISSING",
                message="original.wav not found in input directory",
                stage=name,
                detail={"expected_path": str(path)},
            ))

        try:
            samples, sample_rate = read_wav(path)
        except (sf.LibsndfileError, RuntimeError, ValueError) as e:
            raise fail(ctx, name, version, started_at, build_error(
                code="INGEST_READ_ERROR",
                message=f"Failed to read audio file: {e}",
                stage=name,
                detail={"path": str(path), "error": str(e)},
            ))

        if len(samples) == 0:
            raise fail(ctx, name, version, started_at, build_error(
                code="INGEST_EMPTY_AUDIO",
                message="Audio file is empty",
                stage=name,
                detail={"path": str(path)},
            ))

        if not np.all(np.isfinite(samples)):
            raise fail(ctx, name, version, started_at, build_error(
                code="INGEST_INVALID_AUDIO",
                message="Audio file contains non-finite values (NaN or Inf)",
                stage=name,
                detail={"path": str(path)},
            ))

        calibration = calibrate_noise_floor(samples, sample_rate)
        duration = len(samples) / sample_rate
        logger.info(f"Ingested {path.name}: {duration:.1f}s @ {sample_rate}Hz")

        recording = {
            "sha256": sha256_file(path),
            "sample_rate": sample_rate,
            "num_samples": len(samples),
            "duration_seconds": duration,
            "calibration": calibration.to_dict(),
        }
        recording_path = write_artifact(ctx.stage_dir(name), "recording.json", recording)

        artifacts = [
            build_artifact_ref(
                path="input/original.wav",
                artifact_type="audio/wav",
                role="audio/original",
                description="Canonical input recording",
            ),
            build_artifact_ref(
                path=recording_path,
                artifact_type="application/json",
                role="metadata/recording",
                description="Recording properties and noise floor calibration",
            ),
        ]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            artifacts=artifacts,
        )
        return artifacts
