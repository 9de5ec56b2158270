"""Export the chosen track with a JSON manifest and a human-readable report."""

import os
from datetime import datetime, timezone

from redubber.artifacts import write_artifact
from redubber.constants import GOOD_PRECISION, PERFECT_PRECISION, VERSION


def grade(precision: float, fallback_count: int) -> str:
    """perfect / good / acceptable, by timing precision and fallbacks."""
    if precision >= PERFECT_PRECISION and fallback_count == 0:
        return "perfect"
    if precision >= GOOD_PRECISION:
        return "good"
    return "acceptable"


def build_report(outcome, state, slug: str, settings, source: str = "") -> dict:
    """Assemble the run report as a JSON-serializable dict."""
    best = outcome.best
    record = best.record
    segments = best.segments
    fallbacks = outcome.fallback_segments
    retried = [s for s in segments if s["attempts"] > 1]
    trimmed = [s for s in segments if s["trimmed_seconds"] > 0]

    return {
        "project": slug,
        "source": source,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "redubber_version": VERSION,
        "accepted": outcome.accepted,
        "grade": grade(record.precision, len(fallbacks)),
        "chosen_iteration": best.iteration,
        "calibration": state.to_dict(),
        "settings": settings.to_dict(),
        "stats": {
            "segments": len(segments),
            "voice_segments": sum(1 for s in segments if s["has_voice"]),
            "retried_segments": len(retried),
            "fallback_segments": len(fallbacks),
            "trimmed_segments": len(trimmed),
            "total_attempts": sum(s["attempts"] for s in segments),
            "duration_seconds": round(record.final_duration, 3),
            "target_duration_seconds": round(record.target_duration, 3),
            "precision": round(record.precision, 2),
            "track_precision": round(record.track_precision, 2),
            "quality_score": round(record.quality_score, 2),
        },
        "track_quality": best.metrics.to_dict(),
        "iterations": [r.to_dict() for r in outcome.history],
        "fallbacks": [
            {"index": s["index"], "start": s["start"], "end": s["end"], "text": s["text"]}
            for s in fallbacks
        ],
        "trimmed": [
            {"index": s["index"], "start": s["start"], "seconds": s["trimmed_seconds"], "text": s["text"]}
            for s in trimmed
        ],
        "segments": segments,
    }


def format_report(report: dict) -> str:
    """Render the report for a human reviewer."""
    stats = report["stats"]
    lines = [
        f"Redub report: {report['project']}",
        f"Generated:    {report['generated_at']}",
        "",
        f"Result:       {'accepted' if report['accepted'] else 'best effort'} "
        f"(iteration {report['chosen_iteration']}, grade: {report['grade']})",
        f"Duration:     {stats['duration_seconds']:.3f}s (target {stats['target_duration_seconds']:.3f}s)",
        f"Precision:    {stats['precision']:.1f}% speech, {stats['track_precision']:.1f}% track",
        f"Quality:      {stats['quality_score']:.1f}/100",
        f"Segments:     {stats['segments']} total, {stats['voice_segments']} voiced, "
        f"{stats['retried_segments']} retried, {stats['fallback_segments']} fallback",
        f"Calibration:  scale {report['calibration']['global_length_scale']:.4f}, "
        f"silence {report['calibration']['silence_compensation']:.3f}, "
        f"boost {report['calibration']['dynamic_boost_db']:.1f} dB",
        "",
        "Iterations:",
    ]
    for it in report["iterations"]:
        marker = "*" if it["iteration"] == report["chosen_iteration"] else " "
        lines.append(
            f"  {marker} #{it['iteration']}  scale {it['scale']:.4f}  "
            f"precision {it['precision']:6.2f}%  quality {it['quality_score']:6.2f}  "
            f"fallbacks {it['fallback_count']}"
        )

    lines += ["", "Segments (attempts, precision):"]
    for seg in report["segments"]:
        lines.append(
            f"  {seg['index']:>4}  {seg['start']:>9.3f}-{seg['end']:<9.3f} "
            f"{seg['state']:<9} x{seg['attempts']}  {seg['precision']:6.2f}%  {seg['text'][:40]}"
        )

    if report["fallbacks"]:
        lines += ["", "Fallback silence (review these cues):"]
        for fb in report["fallbacks"]:
            lines.append(f"  cue {fb['index']} at {fb['start']:.3f}s: {fb['text']}")

    if report.get("trimmed"):
        lines += ["", "Speech cut at the cue end (review these cues):"]
        for tr in report["trimmed"]:
            lines.append(f"  cue {tr['index']} at {tr['start']:.3f}s lost {tr['seconds']:.3f}s: {tr['text']}")

    return "\n".join(lines) + "\n"


def export(outcome, state, project_dir: str, slug: str, settings, source: str = "") -> tuple[str, str]:
    """Write the final track and reports.

    Creates:
      - output/<slug>/final/<slug>.wav (the assembled track)
      - output/<slug>/final/report.json (manifest)
      - output/<slug>/final/report.txt (human-readable report)

    Returns (track path, text report path).
    """
    final_dir = os.path.join(project_dir, "final")
    os.makedirs(final_dir, exist_ok=True)

    output_path = os.path.join(final_dir, f"{slug}.wav")
    outcome.best.track.export(output_path, format="wav")

    report = build_report(outcome, state, slug, settings, source)
    write_artifact(final_dir, "report.json", report)

    report_path = os.path.join(final_dir, "report.txt")
    with open(report_path, "w") as f:
        f.write(format_report(report))

    return output_path, report_path
