"""
Unit tests for TestStatisticComputer and the noise variance estimate.
"""

import pytest
import numpy as np


def _white_eigen(n=8):
    from np_detector.detection.interfaces.data_models import EigenData

    return EigenData(kernel_duration=n / 2000, sample_rate=2000, noise_type='wgn',
                     signal_eigenvectors=np.eye(n), signal_eigenvalues_norm=np.ones(n))


def _coloured_eigen(n=8):
    from np_detector.detection.interfaces.data_models import EigenData

    return EigenData(kernel_duration=n / 2000, sample_rate=2000, noise_type='cgn',
                     signal_eigenvectors=np.eye(n), signal_eigenvalues_norm=np.ones(n),
                     noise_eigenvectors=np.eye(n), noise_eigenvalues_norm=np.ones(n))


class TestEnergyDetectorStatistic:
    """Test the energy detector."""

    def test_sum_of_squares(self):
        """T is the energy of each column."""
        from np_detector.detection.statistics import TestStatisticComputer

        x = np.array([[1.0, 0.0], [2.0, 3.0]])
        stats = TestStatisticComputer('ed').compute(x)
        assert np.allclose(stats, [5.0, 9.0])


class TestEstimatorCorrelatorStatistic:
    """Test the estimator-correlator statistics."""

    def test_white_noise_weights(self, rng):
        """Identity eigenvectors: T = sum x^2 * L/(L + n), L = var - n."""
        from np_detector.detection.statistics import TestStatisticComputer

        x = rng.standard_normal((8, 5)) * 3
        noise_var = 2.0
        stats = TestStatisticComputer('ecw', _white_eigen()).compute(x, noise_var)

        signal_var = np.var(x, axis=0, ddof=1) - noise_var
        expected = np.sum(x ** 2, axis=0) * signal_var / (signal_var + noise_var)
        assert np.allclose(stats, expected)

    def test_coloured_identity_noise(self, rng):
        """With identity noise covariance the coloured statistic is the white one over n."""
        from np_detector.detection.statistics import TestStatisticComputer

        x = rng.standard_normal((8, 5)) * 3
        white = TestStatisticComputer('ecw', _white_eigen()).compute(x, 2.0)
        coloured = TestStatisticComputer('ecc', _coloured_eigen()).compute(x, 2.0)
        assert np.allclose(coloured, white / 2.0)

    def test_per_observation_noise(self, rng):
        """Noise variance may differ per observation."""
        from np_detector.detection.statistics import TestStatisticComputer

        x = rng.standard_normal((8, 3)) * 3
        computer = TestStatisticComputer('ecw', _white_eigen())
        together = computer.compute(x, [1.0, 2.0, 3.0])
        single = [computer.compute(x[:, i], nv)[0] for i, nv in enumerate([1.0, 2.0, 3.0])]
        assert np.allclose(together, single)

    def test_missing_eigen_data(self):
        """Estimator-correlators require eigen data."""
        from np_detector.detection.statistics import TestStatisticComputer
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            TestStatisticComputer('ecw')

    def test_noise_type_mismatch(self):
        """White-noise eigen data cannot drive the coloured detector."""
        from np_detector.detection.statistics import TestStatisticComputer
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            TestStatisticComputer('ecc', _white_eigen())

    def test_length_mismatch(self, rng):
        """Segments must match the eigenvector length."""
        from np_detector.detection.statistics import TestStatisticComputer
        from np_detector.errors import ConfigError

        computer = TestStatisticComputer('ecw', _white_eigen())
        with pytest.raises(ConfigError):
            computer.compute(rng.standard_normal((6, 2)), 1.0)
        with pytest.raises(ConfigError):
            computer.compute(rng.standard_normal((8, 3)), [1.0, 2.0])


class TestNoiseVariance:
    """Test the histogram noise estimate."""

    def test_white_noise(self, rng):
        """The estimate sits just above the true variance."""
        from np_detector.detection.statistics import estimate_noise_variance

        segments = rng.standard_normal((200, 300)) * 2
        estimate = estimate_noise_variance(segments)
        assert 3.5 < estimate < 6.0

    def test_robust_to_loud_kernels(self, rng):
        """A few loud kernels barely move the estimate."""
        from np_detector.detection.statistics import estimate_noise_variance

        segments = rng.standard_normal((200, 300))
        quiet = estimate_noise_variance(segments)
        segments[:, :5] *= 20
        loud = estimate_noise_variance(segments)
        assert loud < 2 * quiet

    def test_silence(self):
        """Silent recordings give zero."""
        from np_detector.detection.statistics import estimate_noise_variance

        assert estimate_noise_variance(np.zeros((100, 10))) == 0.0
