"""CLI interface with subcommand routing."""

import argparse
import json
import logging
import os
import shutil
import signal
import sys
import threading

from redubber.artifacts import list_projects, load_artifact
from redubber.cache import load_calibration, reset_calibration
from redubber.config import load_settings
from redubber.constants import CACHE_FILENAME, EDGE_VOICE, OUTPUT_DIR, PIPER_COMMAND, VERSION
from redubber.errors import RedubError, RunCancelled
from redubber.parser import analyze_timing, parse_cue_file
from redubber.pipeline import run
from redubber.quality import assess
from redubber.tts import EdgeTTSEngine, PiperEngine, Synthesizer


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install with: brew install ffmpeg (or apt install ffmpeg)", file=sys.stderr)
        raise SystemExit(1)


def _require_file(path: str, what: str = "File"):
    if not os.path.isfile(path):
        print(f"Error: {what} not found: {path}", file=sys.stderr)
        raise SystemExit(1)


def _load_settings(args):
    """Settings file plus command-line overrides."""
    try:
        return load_settings(
            args.settings,
            max_iterations=args.max_iterations,
            max_retries=args.max_retries,
            synthesis_workers=args.workers,
            synthesis_timeout=args.timeout,
            cooldown_every=args.cooldown_every,
            keep_attempts=True if args.keep_attempts else None,
            polish=False if args.no_polish else None,
        )
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: Invalid settings: {e}", file=sys.stderr)
        raise SystemExit(1)


def _build_engine(args):
    if args.engine == "piper":
        command = args.piper_command
        if not shutil.which(command):
            print(f"Error: Piper executable not found: {command}", file=sys.stderr)
            raise SystemExit(1)
        if not (args.model or args.voice):
            print("Error: --model is required with --engine piper", file=sys.stderr)
            raise SystemExit(1)
        return PiperEngine(model=args.model, command=command)
    return EdgeTTSEngine(default_voice=args.voice or EDGE_VOICE)


def cmd_run(args):
    """Redub a cue file."""
    _check_ffmpeg()
    _require_file(args.cue_file, "Cue file")
    if args.reference:
        _require_file(args.reference, "Reference media")

    settings = _load_settings(args)
    synthesizer = Synthesizer(_build_engine(args), settings)

    # Ctrl-C stops cooperatively between segments
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        result = run(
            args.cue_file,
            synthesizer,
            settings,
            voice=args.voice,
            target_duration=args.target_duration,
            reference=args.reference,
            output_base=args.output_dir,
            use_cache=not args.no_cache,
            cancel_event=cancel,
        )
    except RunCancelled:
        print("Cancelled. Partial iteration discarded.", file=sys.stderr)
        raise SystemExit(130)
    except RedubError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    outcome = result.outcome
    record = outcome.best.record
    status = "accepted" if outcome.accepted else "best effort"
    print(f"\nDone ({status}): {result.output_path}")
    print(f"  Duration: {record.final_duration:.3f}s (target {result.target_duration:.3f}s)")
    print(f"  Precision: {record.precision:.1f}%  Quality: {record.quality_score:.1f}")
    fallbacks = outcome.fallback_segments
    if fallbacks:
        print(f"  Fallback silence used for cues: {', '.join(str(s['index']) for s in fallbacks)}")
    trimmed = [s for s in outcome.best.segments if s["trimmed_seconds"] > 0]
    if trimmed:
        print(f"  Speech cut at cue end for cues: {', '.join(str(s['index']) for s in trimmed)}")
    print(f"  Report: {result.report_path}")


def cmd_analyze(args):
    """Show timing statistics of a cue file."""
    _require_file(args.cue_file, "Cue file")
    try:
        segments = parse_cue_file(args.cue_file)
    except RedubError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    info = analyze_timing(segments)
    if args.json:
        print(json.dumps(info, indent=2))
        return
    print(f"Cues:            {info['cues']}")
    print(f"Timeline:        {info['first_start']:.3f}s → {info['last_end']:.3f}s")
    print(f"Speech:          {info['speech_seconds']:.3f}s ({info['speech_ratio']:.0%})")
    print(f"Silence:         {info['silence_seconds']:.3f}s")
    print(f"Mean cue:        {info['mean_cue_seconds']:.3f}s")
    print(f"Longest gap:     {info['longest_gap']:.3f}s")
    print(f"Overlaps:        {info['overlaps']}")
    print(f"Chars/second:    {info['chars_per_second']:.1f}")


def cmd_assess(args):
    """Print quality metrics for an audio file."""
    _require_file(args.audio_file, "Audio file")
    metrics = assess(args.audio_file)
    for key, value in metrics.to_dict().items():
        print(f"  {key:<24} {value}")


def cmd_cache(args):
    """Show or reset the calibration cache."""
    if args.action == "reset":
        if reset_calibration(args.output_dir):
            print("Calibration cache removed.")
        else:
            print("No calibration cache to remove.")
        return
    path = os.path.join(args.output_dir, CACHE_FILENAME)
    if not os.path.exists(path):
        print("No calibration cache (defaults in use).")
        return
    state = load_calibration(load_settings(), args.output_dir)
    print(f"Calibration cache: {path}")
    for key, value in state.to_dict().items():
        print(f"  {key:<22} {value:.4f}")


def cmd_status(args):
    """Show the last report of a project."""
    if not args.slug:
        projects = list_projects(args.output_dir)
        if not projects:
            print("No projects found.")
            return
        print("Projects:")
        for name in projects:
            print(f"  {name}")
        return

    report = load_artifact(os.path.join(args.output_dir, args.slug, "final"), "report.json")
    if report is None:
        print(f"Error: No report for project '{args.slug}'.", file=sys.stderr)
        raise SystemExit(1)
    stats = report["stats"]
    print(f"Project: {report['project']}")
    print(f"Source:  {report.get('source', 'unknown')}")
    print(f"Result:  {'accepted' if report['accepted'] else 'best effort'} ({report['grade']})")
    print(f"Precision {stats['precision']:.1f}%, quality {stats['quality_score']:.1f}, "
          f"{stats['fallback_segments']} fallback segment(s)")


def _add_run_options(run_parser):
    target = run_parser.add_mutually_exclusive_group()
    target.add_argument("--target-duration", type=float, help="Output duration in seconds")
    target.add_argument("--reference", help="Original audio/video whose duration to match")
    run_parser.add_argument("--engine", choices=["edge", "piper"], default="edge", help="Speech engine")
    run_parser.add_argument("--voice", help="Voice name (edge) or model path (piper)")
    run_parser.add_argument("--model", help="Piper model path")
    run_parser.add_argument("--piper-command", default=PIPER_COMMAND, help="Piper executable")
    run_parser.add_argument("--settings", help="JSON file with setting overrides")
    run_parser.add_argument("--max-iterations", type=int, help="Global calibration iterations")
    run_parser.add_argument("--max-retries", type=int, help="Synthesis attempts per segment")
    run_parser.add_argument("--workers", type=int, help="Concurrent synthesis calls")
    run_parser.add_argument("--timeout", type=float, help="Synthesis timeout in seconds")
    run_parser.add_argument("--cooldown-every", type=int, help="Pause after every N segments")
    run_parser.add_argument("--keep-attempts", action="store_true", help="Keep rejected attempt audio")
    run_parser.add_argument("--no-polish", action="store_true", help="Skip the enhancement chain")
    run_parser.add_argument("--no-cache", action="store_true", help="Ignore and do not update the calibration cache")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="redubber",
        description="Redubber: subtitle-synchronized speech redubbing",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("--output-dir", default=OUTPUT_DIR, help="Output base directory")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run
    run_parser = subparsers.add_parser("run", help="Redub a cue file")
    run_parser.add_argument("cue_file", help="Path to the .vtt/.srt cue file")
    _add_run_options(run_parser)
    run_parser.set_defaults(func=cmd_run)

    # analyze
    analyze_parser = subparsers.add_parser("analyze", help="Show cue timing statistics")
    analyze_parser.add_argument("cue_file", help="Path to the cue file")
    analyze_parser.add_argument("--json", action="store_true", help="Print JSON")
    analyze_parser.set_defaults(func=cmd_analyze)

    # assess
    assess_parser = subparsers.add_parser("assess", help="Measure audio quality of a file")
    assess_parser.add_argument("audio_file", help="Path to the audio file")
    assess_parser.set_defaults(func=cmd_assess)

    # cache
    cache_parser = subparsers.add_parser("cache", help="Show or reset the calibration cache")
    cache_parser.add_argument("action", choices=["show", "reset"], nargs="?", default="show")
    cache_parser.set_defaults(func=cmd_cache)

    # status
    status_parser = subparsers.add_parser("status", help="Show a project's last report")
    status_parser.add_argument("slug", nargs="?", help="Project slug (omit to list projects)")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
