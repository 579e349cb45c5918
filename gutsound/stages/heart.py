"""
Stage: Heart Rate

Responsibilities:
    - Cardiac-band (20-80 Hz) analysis of the original recording
    - Output: metadata/heart (BPM, HRV, vagal tone, beat timestamps)

Invariants:
    - Independent of the contact verdict and of gut-sound events
    - Short recordings produce the defined zero result, never a failure
"""

from gutsound.audio import read_wav
from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.heart import analyze_heart_rate, check_signal_presence
from gutsound.stages.base import (
    build_artifact_ref,
    find_artifact,
    read_json_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


CONTRACT = StageContract(
    name="heart",
    requires=frozenset({"audio/original", "metadata/recording"}),
    produces=frozenset({"metadata/heart"}),
    version="1.0.0",
)


class HeartStage(Stage):
    """Estimate heart rate and HRV."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        inputs = [find_artifact(ctx, "audio/original"), find_artifact(ctx, "metadata/recording")]

        recording = read_json_artifact(ctx, "metadata/recording")
        samples, sample_rate = read_wav(ctx.input_audio)
        config, filters = ctx.config.heart, ctx.config.filters

        presence = check_signal_presence(samples, sample_rate, ctx.cache, config, filters)
        result = analyze_heart_rate(
            samples, recording["duration_seconds"], sample_rate, ctx.cache, config, filters,
        )

        document = {
            **result.to_dict(),
            "has_signal": presence.has_signal,
            "signal_strength": presence.signal_strength,
        }
        path = write_artifact(ctx.stage_dir(name), "heart.json", document)
        artifacts = [build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/heart",
            description="Heart rate and heart-rate variability",
        )]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            inputs=inputs, artifacts=artifacts,
        )
        return artifacts
