"""
GutSound CLI - Argument parsing and dispatch.

Responsibilities:
- Argument parsing
- Logging setup
- Workspace creation and input copy
- Printing success/errors
- Exit codes

Forbidden:
- No analysis logic (stages and engine own it)
"""

import argparse
import logging
import shutil
import sys
from pathlib import Path


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gutsound",
        description="GutSound acoustic gut-sound analytics.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Analyze a recording through the staged job pipeline.",
        description=(
            "Analyze a recording through the staged job pipeline.\n\n"
            "Creates a job directory, copies the input recording and runs\n"
            "ingest, contact, events, heart, scoring, readiness and rollup."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("--input", metavar="PATH", required=True, help="Input recording (WAV).")
    run_parser.add_argument("--job-id", metavar="JOB_ID", help="Explicit job identifier.")
    run_parser.add_argument(
        "--jobs-root",
        metavar="PATH",
        default="./jobs",
        help="Root directory for job workspaces (default: ./jobs).",
    )
    run_parser.add_argument("--patient-id", metavar="ID", help="Patient id; enables vagal readiness.")
    run_parser.add_argument("--history", metavar="PATH", help="Session history JSON file.")
    intervention = run_parser.add_mutually_exclusive_group()
    intervention.add_argument(
        "--intervention-start",
        metavar="SECONDS",
        type=float,
        help="Breathing intervention start time within the recording.",
    )
    intervention.add_argument(
        "--intervention-no-timing",
        action="store_true",
        help="An intervention took place but its start time is unknown.",
    )
    run_parser.add_argument("--config", metavar="PATH", help="JSON configuration overrides.")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the planned job layout without creating files.",
    )

    # analyze
    analyze_parser = subparsers.add_parser(
        "analyze",
        parents=[common],
        help="Analyze a recording in memory and print a summary.",
    )
    analyze_parser.add_argument("--input", metavar="PATH", required=True, help="Input recording (WAV).")
    analyze_parser.add_argument("--config", metavar="PATH", help="JSON configuration overrides.")
    analyze_parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Print the full per-event debug log instead of the summary.",
    )
    analyze_parser.add_argument("--json", action="store_true", help="Print the result as JSON.")

    # synth
    synth_parser = subparsers.add_parser(
        "synth",
        parents=[common],
        help="Write a synthetic test recording.",
    )
    synth_parser.add_argument(
        "--kind",
        choices=["gut", "breath", "heart", "table"],
        required=True,
        help="Signal kind.",
    )
    synth_parser.add_argument("--output", metavar="PATH", required=True, help="Output WAV path.")
    synth_parser.add_argument("--duration", type=float, default=30.0, help="Seconds (default: 30).")
    synth_parser.add_argument(
        "--sample-rate", type=int, default=44100, help="Sample rate (default: 44100)."
    )
    synth_parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0).")

    return parser


def _load_config(path: str | None):
    from gutsound.config import DEFAULT_CONFIG, load_config

    if path is None:
        return DEFAULT_CONFIG
    return load_config(Path(path))


def _check_input(input_path: Path) -> str | None:
    if not input_path.exists():
        return f"Input file not found: {input_path}"
    if not input_path.is_file():
        return f"Input path is not a file: {input_path}"
    return None


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' subcommand. Returns exit code."""
    from gutsound.config import ConfigError
    from gutsound.context import JobContext, RunOptions
    from gutsound.jobs import (
        WorkspaceExistsError,
        create_full_workspace,
        resolve_job_id,
        stage_dirs,
        workspace_layout,
    )
    from gutsound.pipeline import run_pipeline
    from gutsound.readiness import InterventionNoTiming, InterventionWithStart, NoIntervention
    from gutsound.status_init import build_initial_status, validate_status
    from gutsound.utils import now_iso, serialize_json

    input_path = Path(args.input)
    problem = _check_input(input_path)
    if problem:
        print(f"Error: {problem}", file=sys.stderr)
        return 1

    try:
        config = _load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.history and not args.patient_id:
        print("Error: --history requires --patient-id", file=sys.stderr)
        return 1

    jobs_root = Path(args.jobs_root)
    job_id = resolve_job_id(args.job_id)
    layout = workspace_layout(jobs_root, job_id)
    job_dir = layout["job_dir"]

    if args.dry_run:
        if job_dir.exists():
            print(f"Warning: Job workspace already exists: {job_dir}", file=sys.stderr)
        print(f"Job ID: {job_id}")
        print(f"Job directory: {job_dir}")
        print(f"Input file: {input_path}")
        print("Directories to create:")
        for key, path in layout.items():
            if key != "job_dir":
                print(f"  {path}/")
        return 0

    try:
        paths = create_full_workspace(jobs_root, job_id)
    except WorkspaceExistsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    original_wav_path = paths["input_dir"] / "original.wav"
    shutil.copy2(input_path, original_wav_path)

    input_json_path = paths["input_dir"] / "input.json"
    input_json_path.write_text(serialize_json({
        "original_filename": input_path.name,
        "copied_at": now_iso(),
    }))

    if args.intervention_start is not None:
        intervention = InterventionWithStart(args.intervention_start)
    elif args.intervention_no_timing:
        intervention = InterventionNoTiming()
    else:
        intervention = NoIntervention()

    ctx = JobContext(
        job_id=job_id,
        job_dir=paths["job_dir"],
        meta_dir=paths["meta_dir"],
        input_wav_path=original_wav_path,
        input_json_path=input_json_path,
        stage_dirs=stage_dirs(paths),
        options=RunOptions(
            patient_id=args.patient_id,
            history_path=Path(args.history) if args.history else None,
            intervention=intervention,
        ),
    )

    (paths["meta_dir"] / "run.json").write_text(serialize_json({
        "job_id": job_id,
        "started_at": now_iso(),
        "cli_args": {
            "input": str(input_path),
            "job_id": args.job_id,
            "jobs_root": str(jobs_root),
            "config": args.config,
        },
        "context": ctx.to_dict(),
    }))

    status = build_initial_status(job_id)
    schema_errors = validate_status(status)
    if schema_errors:
        print("Error: Initial status failed schema validation:", file=sys.stderr)
        for error in schema_errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    (paths["job_dir"] / "status.json").write_text(serialize_json(status))

    success = run_pipeline(ctx, config)

    if success:
        print(f"Pipeline completed successfully: {job_dir}")
        return 0
    print(f"Pipeline failed: {job_dir}", file=sys.stderr)
    return 1


def cmd_analyze(args: argparse.Namespace) -> int:
    """Handle the 'analyze' subcommand. Returns exit code."""
    import soundfile as sf

    from gutsound.audio import read_wav
    from gutsound.config import ConfigError
    from gutsound.debug import debug_summary
    from gutsound.engine import analyze_recording
    from gutsound.filters import FilterDesignError
    from gutsound.utils import serialize_json

    input_path = Path(args.input)
    problem = _check_input(input_path)
    if problem:
        print(f"Error: {problem}", file=sys.stderr)
        return 1

    try:
        config = _load_config(args.config)
        samples, sample_rate = read_wav(input_path)
        result = analyze_recording(samples, sample_rate, config=config)
    except (ConfigError, FilterDesignError, sf.LibsndfileError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(serialize_json({**result.to_dict(), "events": result.trace}), end="")
    elif args.debug_log:
        print(result.debug_log)
    else:
        print(debug_summary(result))
    return 0


def cmd_synth(args: argparse.Namespace) -> int:
    """Handle the 'synth' subcommand. Returns exit code."""
    from gutsound.audio import write_wav
    from gutsound.synthetic import generate

    if args.duration <= 0:
        print("Error: --duration must be positive", file=sys.stderr)
        return 1

    samples = generate(args.kind, args.duration, args.sample_rate, seed=args.seed)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    write_wav(output, samples, args.sample_rate)
    print(f"Wrote {args.kind} signal: {output}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "analyze": cmd_analyze,
    "synth": cmd_synth,
}


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    sys.exit(COMMANDS[args.command](args))
