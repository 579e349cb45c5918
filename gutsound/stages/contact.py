"""
Stage: Contact Quality

Responsibilities:
    - Gut-band zero-phase filter of the original recording
    - Spectral and temporal on-body checks
    - Output: metadata/contact

Invariants:
    - should_reject_as_in_air gates every downstream gut-sound stage
"""

from gutsound.audio import read_wav
from gutsound.contact import assess_contact
from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.filters import apply_zero_phase
from gutsound.stages.base import (
    build_artifact_ref,
    find_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


CONTRACT = StageContract(
    name="contact",
    requires=frozenset({"audio/original"}),
    produces=frozenset({"metadata/contact"}),
    version="1.0.0",
)


class ContactStage(Stage):
    """Decide whether the device was on the body."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        inputs = [find_artifact(ctx, "audio/original")]

        samples, sample_rate = read_wav(ctx.input_audio)
        design = ctx.cache.get(ctx.config.filters.gut_band, sample_rate)
        filtered = apply_zero_phase(samples, design)
        result = assess_contact(filtered, sample_rate, ctx.config.contact)

        path = write_artifact(ctx.stage_dir(name), "contact.json", result.to_dict())
        artifacts = [build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/contact",
            description="On-body contact assessment",
        )]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            inputs=inputs, artifacts=artifacts,
        )
        return artifacts
