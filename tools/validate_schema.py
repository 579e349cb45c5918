#!/usr/bin/env python3
"""
GutSound Schema Validation Tool

Standalone utility for validating job documents against the GutSound schemas
shipped in gutsound/schemas. Kept outside the runtime package (tools/).

Usage:
    python tools/validate_schema.py <schema_name> <json_file>

Where schema_name is one of: status, stage_status, events, analytics,
readiness, report, config, sessions. The pseudo-schema "job" takes a job
directory instead and checks every document the pipeline wrote there.

Examples:
    python tools/validate_schema.py report jobs/<job_id>/rollup/report.json
    python tools/validate_schema.py job jobs/<job_id>
"""

import argparse
import json
import sys
from pathlib import Path

import jsonschema


SCHEMA_DIR = Path(__file__).parent.parent / "gutsound" / "schemas"

SCHEMA_FILES = {
    "status": "status.schema.json",
    "stage_status": "stage_status.schema.json",
    "events": "events.schema.json",
    "analytics": "analytics.schema.json",
    "readiness": "readiness.schema.json",
    "report": "report.schema.json",
    "config": "config.schema.json",
    "sessions": "sessions.schema.json",
}

# Job documents by relative path. Stage status files are matched separately.
JOB_DOCUMENTS = {
    "status.json": "status",
    "events/events.json": "events",
    "scoring/analytics.json": "analytics",
    "readiness/readiness.json": "readiness",
    "rollup/report.json": "report",
}


def load_schema(schema_name: str) -> dict:
    """Load a schema by name."""
    if schema_name not in SCHEMA_FILES:
        raise ValueError(f"Unknown schema: {schema_name}. Valid: {list(SCHEMA_FILES.keys())}")

    schema_path = SCHEMA_DIR / SCHEMA_FILES[schema_name]
    with open(schema_path, "r") as f:
        return json.load(f)


def validate_document(document: dict, schema: dict) -> list[str]:
    """
    Validate a document against a schema.

    Returns:
        List of "path: message" strings (empty if valid), ordered by path.
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(
        validator.iter_errors(document),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    return [
        f"{'.'.join(str(p) for p in e.absolute_path) or '(root)'}: {e.message}"
        for e in errors
    ]


def validate_job(job_dir: Path) -> dict[str, list[str]]:
    """
    Validate every known document present in a job directory.

    Returns:
        Mapping of relative path to its error list. Documents that do not
        exist (a skipped readiness stage, a failed run) are left out.
    """
    results: dict[str, list[str]] = {}
    targets = dict(JOB_DOCUMENTS)
    for stage_status in sorted(job_dir.glob("*/status.json")):
        targets[stage_status.relative_to(job_dir).as_posix()] = "stage_status"

    for rel_path, schema_name in sorted(targets.items()):
        path = job_dir / rel_path
        if not path.exists():
            continue
        with open(path, "r") as f:
            document = json.load(f)
        results[rel_path] = validate_document(document, load_schema(schema_name))
    return results


def _report_job(job_dir: Path) -> int:
    if not job_dir.is_dir():
        sys.exit(f"Error: Not a job directory: {job_dir}")
    failed = 0
    for rel_path, errors in validate_job(job_dir).items():
        if errors:
            failed += 1
            print(f"INVALID {rel_path}:")
            for error in errors:
                print(f"  - {error}")
        else:
            print(f"VALID {rel_path}")
    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(
        description="Validate JSON against GutSound schemas"
    )
    parser.add_argument(
        "schema",
        choices=[*SCHEMA_FILES.keys(), "job"],
        help="Schema to validate against, or \"job\" for a whole job directory",
    )
    parser.add_argument(
        "json_file",
        type=Path,
        help="Path to JSON file (or job directory) to validate",
    )

    args = parser.parse_args()

    if args.schema == "job":
        sys.exit(_report_job(args.json_file))

    try:
        schema = load_schema(args.schema)
    except FileNotFoundError:
        sys.exit(f"Error: Schema file not found: {SCHEMA_DIR / SCHEMA_FILES[args.schema]}")

    try:
        with open(args.json_file, "r") as f:
            document = json.load(f)
    except FileNotFoundError:
        sys.exit(f"Error: File not found: {args.json_file}")
    except json.JSONDecodeError as e:
        sys.exit(f"Error: Invalid JSON: {e}")

    errors = validate_document(document, schema)

    if errors:
        print(f"INVALID: {len(errors)} error(s) found:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)
    else:
        print(f"VALID: Document conforms to {args.schema} schema.")
        sys.exit(0)


if __name__ == "__main__":
    main()
