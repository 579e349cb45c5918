"""
GutSound Determinism Tests

Verifies deterministic output guarantees:
- Same input -> byte-identical analysis JSON across runs
- Same input -> identical report apart from the job id
- In-memory engine results are repeatable with a shared filter cache
"""

import json

import numpy as np

from gutsound import audio
from gutsound.engine import analyze_recording
from gutsound.filters import FilterCache
from gutsound.utils import serialize_json
from tests.conftest import run_cli


ANALYSIS_FILES = [
    "ingest/recording.json",
    "contact/contact.json",
    "events/events.json",
    "heart/heart.json",
    "scoring/analytics.json",
]


def _run_twice(input_wav, jobs_root):
    for job_id in ("run1", "run2"):
        result = run_cli(
            "run",
            "--input", str(input_wav),
            "--jobs-root", str(jobs_root),
            "--job-id", job_id,
        )
        assert result.returncode == 0, result.stderr
    return jobs_root / "run1", jobs_root / "run2"


class TestDeterminism:
    """Test that the pipeline produces identical outputs on repeated runs."""

    def test_json_outputs_byte_identical(self, tmp_path, gut_wav_path):
        """Running the pipeline twice produces byte-identical analysis files."""
        run1, run2 = _run_twice(gut_wav_path, tmp_path / "jobs")

        for rel_path in ANALYSIS_FILES:
            content1 = (run1 / rel_path).read_text()
            content2 = (run2 / rel_path).read_text()
            assert content1 == content2, f"{rel_path} not identical"

    def test_report_identical_except_job_id(self, tmp_path, test_wav_path):
        run1, run2 = _run_twice(test_wav_path, tmp_path / "jobs")

        report1 = json.loads((run1 / "rollup" / "report.json").read_text())
        report2 = json.loads((run2 / "rollup" / "report.json").read_text())
        assert report1.pop("job_id") == "run1"
        assert report2.pop("job_id") == "run2"
        assert report1 == report2

    def test_input_copy_is_byte_identical(self, tmp_path, test_wav_path):
        run1, _ = _run_twice(test_wav_path, tmp_path / "jobs")
        assert (run1 / "input" / "original.wav").read_bytes() == test_wav_path.read_bytes()


class TestEngineRepeatability:
    """Test the in-memory engine on repeated calls."""

    def test_repeated_analysis_identical(self, gut_wav_path):
        samples, sr = audio.read_wav(gut_wav_path)
        cache = FilterCache()

        first = analyze_recording(samples, sr, cache=cache)
        second = analyze_recording(samples, sr, cache=cache)

        assert serialize_json(first.to_dict()) == serialize_json(second.to_dict())
        assert first.trace == second.trace
        np.testing.assert_array_equal(first.detection.energy, second.detection.energy)

    def test_private_and_shared_caches_agree(self, gut_wav_path):
        samples, sr = audio.read_wav(gut_wav_path)
        shared = analyze_recording(samples, sr, cache=FilterCache())
        private = analyze_recording(samples, sr)
        assert shared.to_dict() == private.to_dict()
