"""
GutSound Test Configuration

Provides WAV fixtures and a subprocess CLI runner.
"""

import subprocess
import sys
from pathlib import Path

import numpy as np
import pytest

from gutsound import audio, synthetic


SAMPLE_RATE = 44100


def run_cli(*args: str, cwd: str | None = None) -> subprocess.CompletedProcess:
    """Run gutsound CLI as subprocess."""
    return subprocess.run(
        [sys.executable, "-m", "gutsound", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
    )


def tone_bursts(
    duration_s: float = 10.0,
    onsets_s: tuple[float, ...] = (2.0, 5.0, 8.0),
    burst_ms: float = 300.0,
    frequency_hz: float = 200.0,
    amplitude: float = 0.6,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    """
    Silence with constant-amplitude sine bursts.

    Onsets on 100 ms boundaries line the bursts up with energy windows.
    """
    samples = np.zeros(int(duration_s * sample_rate))
    n = int(burst_ms / 1000 * sample_rate)
    t = np.arange(n) / sample_rate
    burst = amplitude * np.sin(2 * np.pi * frequency_hz * t)
    for onset in onsets_s:
        start = int(round(onset * sample_rate))
        samples[start:start + n] = burst
    return samples


def create_test_wav(path: Path, kind: str = "table", duration_sec: float = 10.0) -> None:
    """
    Write a synthetic recording.

    Args:
        path: Output path for WAV file
        kind: One of synthetic.SIGNAL_KINDS
        duration_sec: Duration in seconds
    """
    samples = synthetic.generate(kind, duration_sec, SAMPLE_RATE, seed=0)
    audio.write_wav(path, samples, SAMPLE_RATE)


@pytest.fixture
def test_wav_path(tmp_path) -> Path:
    """A 10 s table-hum recording (always rejected as in-air)."""
    wav_path = tmp_path / "table.wav"
    create_test_wav(wav_path, kind="table")
    return wav_path


@pytest.fixture
def gut_wav_path(tmp_path) -> Path:
    """A 30 s synthetic abdominal recording."""
    wav_path = tmp_path / "gut.wav"
    create_test_wav(wav_path, kind="gut", duration_sec=30.0)
    return wav_path


@pytest.fixture
def pipeline_result(tmp_path, test_wav_path):
    """
    Run the pipeline on the table-hum WAV and return paths.

    Use for integration tests that need pipeline output.
    """
    job_id = "test-job"
    jobs_root = tmp_path / "jobs"

    result = run_cli(
        "run",
        "--input", str(test_wav_path),
        "--jobs-root", str(jobs_root),
        "--job-id", job_id,
    )

    assert result.returncode == 0, f"Pipeline failed: {result.stderr}"

    return {
        "job_dir": jobs_root / job_id,
        "input_path": test_wav_path,
        "result": result,
    }
