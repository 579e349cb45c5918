"""
GutSound Diagnostic Trace

Renders an analysis result as structured per-event traces, a rejection
summary, and human-readable logs. Nothing here depends on a UI.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gutsound.events import DetectedEvent

if TYPE_CHECKING:
    from gutsound.engine import AnalysisResult


RULE = "=" * 63


@dataclass(frozen=True)
class DebugSummary:
    total_events: int
    events_accepted: int
    events_rejected: int
    rejections_by_filter: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_events": self.total_events,
            "events_accepted": self.events_accepted,
            "events_rejected": self.events_rejected,
            "rejections_by_filter": dict(self.rejections_by_filter),
        }


def build_trace(events: list[DetectedEvent]) -> list[dict[str, Any]]:
    return [e.to_trace() for e in events]


def summarize(events: list[DetectedEvent]) -> DebugSummary:
    """Count accepted/rejected events and rejections per classifier."""
    accepted = sum(1 for e in events if e.accepted)
    # Counter preserves first-seen order, matching the classifier order
    by_filter = Counter(r.filter.value for e in events for r in e.rejections)
    return DebugSummary(
        total_events=len(events),
        events_accepted=accepted,
        events_rejected=len(events) - accepted,
        rejections_by_filter=dict(by_filter),
    )


def _check(flag: bool) -> str:
    return "OK" if flag else "FAIL"


def _event_lines(event: DetectedEvent) -> list[str]:
    lines = [
        f"\n   --- Event #{event.event_id}: {event.start_ms:.0f}-{event.end_ms:.0f}ms "
        f"({event.duration_ms:.0f}ms) ---"
    ]
    s = event.spectral
    if s is not None:
        lines.append(
            f"      Spectral: SFM={s.sfm:.3f} | BowelRatio={s.bowel_peak_ratio * 100:.1f}% | "
            f"ZCR={s.zcr:.3f} | Contrast={s.spectral_contrast:.3f}"
        )
    h = event.harmonic
    if h is not None:
        f0 = f"{h.fundamental_hz:.0f}" if h.fundamental_hz is not None else "N/A"
        lines.append(
            f"      Harmonic: f0={f0}Hz | Harmonics={h.harmonic_count} | "
            f"HNR={h.hnr_db:.1f}dB | Confidence={h.speech_confidence * 100:.0f}%"
        )
    b = event.breath
    if b is not None:
        lines.append(
            f"      Breath: onset={b.onset_ratio:.2f} | lowFreq={b.low_freq_emphasis * 100:.0f}% | "
            f"confidence={b.breath_confidence * 100:.0f}%"
        )
    burst = event.burst
    if burst is not None:
        verdict = "VALID" if burst.is_valid_burst else "INVALID"
        lines.append(f"      Burst: {verdict} - {burst.reason}")
    t = event.transient
    if t is not None:
        lines.append(
            f"      Transient: slope={t.onset_slope:.2f} | energyRatio={t.energy_ratio:.2f} | "
            f"{'TRANSIENT' if t.is_transient else 'OK'}"
        )
    if event.accepted:
        lines.append("      -> ACCEPTED")
    else:
        filters = ", ".join(r.filter.value for r in event.rejections)
        lines.append(f"      -> REJECTED ({filters})")
    return lines


def format_debug_log(result: "AnalysisResult") -> str:
    """
    Multi-section text log of one analysis.

    Sections: [1] noise floor, [2] bandpass, [3] contact quality,
    [4] event detection, [5] per-event filtering, [6] final metrics,
    [7] rejection summary. A recording rejected as in-air stops after [3].
    """
    cal = result.calibration
    contact = result.contact
    detection = result.detection
    design = result.gut_filter

    lines = [
        RULE,
        "GUTSOUND DEBUG ANALYSIS",
        f"Duration: {result.duration_seconds:.1f}s | Samples: {result.num_samples} | "
        f"Rate: {result.sample_rate}Hz",
        RULE,
        "\n[1] AMBIENT NOISE FLOOR CALIBRATION",
        f"   ANF Mean: {cal.anf_mean:.6f}",
        f"   ANF StdDev: {cal.anf_std:.6f}",
        f"   Estimated SNR: {cal.estimated_snr_db:.1f} dB",
        f"   Signal Quality: {cal.signal_quality.value.upper()}",
    ]
    if cal.hum_frequencies:
        lines.append(f"   Detected Hums: {', '.join(str(h) for h in cal.hum_frequencies)}Hz")

    lines += [
        f"\n[2] APPLYING BUTTERWORTH BANDPASS ({design.low_hz:g}-{design.high_hz:g}Hz)",
        f"   Filter applied: {design.low_hz:g}-{design.high_hz:g}Hz, order {design.order}, "
        f"{design.num_sections} sections",
    ]

    spectral = contact.spectral
    temporal = contact.temporal
    lines += [
        "\n[3] CONTACT QUALITY ANALYSIS",
        "   --- SPECTRAL CRITERIA ---",
        f"   Low-freq ratio: {contact.low_freq_ratio * 100:.1f}% "
        f"{_check(spectral.is_low_freq_dominant)}",
        f"   High-freq ratio: {contact.high_freq_ratio * 100:.1f}% "
        f"{_check(spectral.is_high_freq_suppressed)}",
        f"   Spectral rolloff: {contact.spectral_rolloff:.0f}Hz {_check(spectral.is_low_rolloff)}",
        f"   Spectral criteria met: {spectral.spectral_criteria_met}/3",
        "   --- TEMPORAL CRITERIA ---",
        f"   Coefficient of Variation: {temporal.coefficient_of_variation * 100:.1f}% "
        f"{_check(temporal.has_temporal_variability)}",
        f"   Burst peaks: {temporal.burst_peak_count} {_check(temporal.has_burst_peaks)}",
        f"   Energy variance ratio: {temporal.energy_variance_ratio:.1f}x "
        f"{_check(temporal.has_energy_variance)}",
        f"   Temporal criteria met: {temporal.temporal_criteria_met}/3",
        "   --- VERDICT ---",
        f"   Contact confidence: {contact.contact_confidence * 100:.0f}%",
    ]
    if contact.is_on_body:
        lines.append("   -> ON-BODY")
    elif contact.should_reject_as_in_air:
        lines.append("   -> IN-AIR/TABLE (REJECTED)")
    else:
        lines.append("   -> UNCERTAIN")
    if temporal.temporal_criteria_met == 0:
        lines.append("   FLAT SIGNAL: no burst variability, likely table or constant ambient noise")

    if result.rejected_as_in_air:
        lines.append("\nRECORDING REJECTED: device appears to be in air, not on skin")
        return "\n".join(lines)

    energy = detection.energy
    avg_energy = float(energy.mean()) if len(energy) else 0.0
    lines += [
        "\n[4] EVENT DETECTION",
        f"   Windows: {len(energy)} | Avg energy: {avg_energy:.6f} | "
        f"Threshold: {detection.threshold:.6f}",
        f"   Raw events detected: {len(detection.events)}",
        "\n[5] EVENT FILTERING",
    ]
    for event in detection.events:
        lines += _event_lines(event)

    analytics = result.analytics
    summary = result.summary
    lines += [
        "\n[6] FINAL METRICS",
        f"   Events accepted: {summary.events_accepted} of {summary.total_events}",
        f"   Events per minute: {analytics.events_per_minute:.1f}",
        f"   Active time: {analytics.total_active_seconds}s",
        f"   Motility Index: {analytics.motility_index}",
        "\n[7] REJECTION SUMMARY",
    ]
    for name, count in summary.rejections_by_filter.items():
        lines.append(f"   {name}: {count} events")

    lines += ["\n" + RULE, "END DEBUG ANALYSIS", RULE]
    return "\n".join(lines)


def debug_summary(result: "AnalysisResult") -> str:
    """Concise multi-line summary of one analysis."""
    summary = result.summary
    contact = result.contact
    cal = result.calibration
    lines = [
        f"Motility Index: {result.analytics.motility_index}",
        f"Events: {summary.events_accepted}/{summary.total_events} accepted",
        f"Contact: {'ON-BODY' if contact.is_on_body else 'IN-AIR'} "
        f"({contact.contact_confidence * 100:.0f}%)",
        f"SNR: {cal.estimated_snr_db:.1f}dB ({cal.signal_quality.value})",
    ]
    if summary.rejections_by_filter:
        lines.append("Rejections:")
        for name, count in summary.rejections_by_filter.items():
            lines.append(f"  {name}: {count}")
    return "\n".join(lines)
