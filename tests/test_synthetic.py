"""
GutSound Synthetic Signal Tests

Coverage:
- Lengths and ranges of each generator
- Seed determinism
- Unknown kinds
"""

import numpy as np
import pytest

from gutsound.synthetic import (
    SIGNAL_KINDS,
    breath_noise,
    generate,
    gut_recording,
    gut_sound,
    heartbeat_train,
    table_hum,
)


SR = 44100


class TestGenerators:
    """Test individual signal generators."""

    def test_gut_sound_length(self):
        assert len(gut_sound(300, SR)) == int(0.3 * SR)

    def test_gut_sound_empty(self):
        assert len(gut_sound(0, SR)) == 0

    def test_breath_is_symmetric_swell(self):
        samples = breath_noise(800, SR)
        n = len(samples)
        edge = np.max(np.abs(samples[: n // 20]))
        middle = np.max(np.abs(samples[n // 2 - n // 20: n // 2 + n // 20]))
        assert edge < middle

    def test_heartbeat_starts_after_half_second(self):
        samples = heartbeat_train(5.0, 60, SR)
        assert np.all(samples[: int(0.5 * SR)] == 0.0)
        assert np.any(samples[int(0.5 * SR):] != 0.0)

    def test_table_hum_constant_amplitude(self):
        samples = table_hum(1.0, SR)
        assert np.max(np.abs(samples)) == pytest.approx(0.3, rel=1e-3)

    def test_gut_recording_bounded(self):
        samples = gut_recording(30.0, SR)
        assert len(samples) == 30 * SR
        assert np.max(np.abs(samples)) < 1.0


class TestGenerate:
    """Test the dispatching generator used by `synth`."""

    @pytest.mark.parametrize("kind", SIGNAL_KINDS)
    def test_length(self, kind):
        assert len(generate(kind, 2.0, SR)) == 2 * SR

    @pytest.mark.parametrize("kind", SIGNAL_KINDS)
    def test_same_seed_same_samples(self, kind):
        np.testing.assert_array_equal(generate(kind, 2.0, SR, seed=7), generate(kind, 2.0, SR, seed=7))

    def test_seed_changes_noise(self):
        assert not np.array_equal(generate("gut", 2.0, SR, seed=1), generate("gut", 2.0, SR, seed=2))

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown signal kind"):
            generate("speech", 1.0, SR)
