"""
Stage: Gut-Sound Events

Responsibilities:
    - Gut-band filter, energy windowing, candidate detection
    - Full classifier ensemble over every candidate
    - Output: metadata/events (energy windows, per-event trace, summary)

Invariants:
    - A recording rejected as in-air yields no events and an empty energy
      series; the rejection is recorded in the artifact
    - Events appear in time order with 1-based ids
"""

import numpy as np

from gutsound.audio import read_wav
from gutsound.contracts import Stage, StageContext, StageContract
from gutsound.debug import build_trace, summarize
from gutsound.events import EventDetection, detect_events
from gutsound.filters import apply_zero_phase
from gutsound.stages.base import (
    build_artifact_ref,
    find_artifact,
    read_json_artifact,
    write_artifact,
    write_stage_status,
)
from gutsound.utils import now_iso


CONTRACT = StageContract(
    name="events",
    requires=frozenset({"audio/original", "metadata/contact"}),
    produces=frozenset({"metadata/events"}),
    version="1.0.0",
)


def detection_document(detection: EventDetection, window_ms: int, rejected: bool) -> dict:
    """JSON form of a detection pass."""
    return {
        "rejected_as_in_air": rejected,
        "window_ms": window_ms,
        "threshold": detection.threshold,
        "energy": [float(e) for e in detection.energy],
        "events": build_trace(detection.events),
        "summary": summarize(detection.events).to_dict(),
    }


class EventsStage(Stage):
    """Detect and classify gut-sound events."""

    contract = CONTRACT

    def run(self, ctx: StageContext) -> list[dict]:
        started_at = now_iso()
        name, version = self.contract.name, self.contract.version
        inputs = [find_artifact(ctx, "audio/original"), find_artifact(ctx, "metadata/contact")]

        contact = read_json_artifact(ctx, "metadata/contact")
        rejected = bool(contact["should_reject_as_in_air"])
        window_ms = ctx.config.events.window_ms

        if rejected:
            detection = EventDetection(energy=np.zeros(0), threshold=0.0, window_size=0, events=[])
        else:
            samples, sample_rate = read_wav(ctx.input_audio)
            design = ctx.cache.get(ctx.config.filters.gut_band, sample_rate)
            filtered = apply_zero_phase(samples, design)
            detection = detect_events(filtered, sample_rate, ctx.config.events)

        path = write_artifact(
            ctx.stage_dir(name), "events.json", detection_document(detection, window_ms, rejected),
        )
        artifacts = [build_artifact_ref(
            path=path,
            artifact_type="application/json",
            role="metadata/events",
            description="Detected gut-sound events with classifier trace",
        )]
        write_stage_status(
            ctx.stage_dir(name), ctx.job_id, name, version, True, started_at,
            inputs=inputs, artifacts=artifacts,
        )
        return artifacts
