"""
Pytest configuration and fixtures for np-detector tests.
"""

import pytest
import sys
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def sample_rate():
    """Detection sample rate for tests."""
    return 2000


@pytest.fixture
def small_snr_levels():
    """Coarse SNR catalog that keeps performance tests fast."""
    return tuple(float(s) for s in range(-20, 45, 5))


@pytest.fixture
def white_scores(rng, sample_rate):
    """400 white-noise training observations of 0.1 s."""
    from np_detector.detection.interfaces.data_models import RawScoreData

    matrix = rng.standard_normal((400, 200))
    return RawScoreData(kernel_duration=0.1, sample_rate=sample_rate,
                        raw_score_matrix=matrix)


@pytest.fixture
def burst_recording(rng, sample_rate):
    """20 s of unit white noise with a loud 0.3 s burst starting at 5 s."""
    x = rng.standard_normal(20 * sample_rate)
    start = 5 * sample_rate
    x[start:start + 600] += 10 * rng.standard_normal(600)
    return x
