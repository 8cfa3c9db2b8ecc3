#!/usr/bin/env python3
"""
Test Statistic Computer

Per-kernel decision statistics. Segments are given as a samples x
observations matrix (one kernel per column).

    ed   T = sum_n x_n^2
    ecw  y = Vs^T x
         T = sum_k y_k^2 * L_k/(L_k + n),   L_k = lambda_k * s
    ecc  y = (Vn diag(lambda_n * n)^(-1/2) Vs)^T x
         T = sum_k y_k^2 * L_k/(L_k + n)

with s = var(x) - n the per-observation signal variance estimate and n the
noise variance. The signal variance is used as computed; clamping to zero
is the caller's business.

The background noise variance of a recording is estimated from the
distribution of per-kernel standard deviations: quiet kernels pile up at the
noise level, so the upper edge of the histogram's main peak (where the bin
count falls to 10 % of the maximum) is taken as the noise standard
deviation.
"""

import logging
from typing import Optional

import numpy as np

from ..errors import ConfigError
from .interfaces.data_models import DetectorType, EigenData, NoiseType
from .np_constants import NOISE_HISTOGRAM_BINS, NOISE_HISTOGRAM_LEVEL

logger = logging.getLogger(__name__)


def estimate_noise_variance(segments: np.ndarray) -> float:
    """
    Background noise variance from a samples x observations matrix.

    Args:
        segments: One kernel per column

    Returns:
        Estimated noise variance (0 when every kernel is silent)
    """
    xstd = np.std(np.asarray(segments, dtype=float), axis=0, ddof=1)
    std_max = np.max(xstd)
    if not np.isfinite(std_max) or std_max <= 0:
        return 0.0

    factor = 10 ** np.floor(np.log10(std_max))
    upper = np.ceil(std_max / factor) * factor
    counts, edges = np.histogram(xstd, bins=NOISE_HISTOGRAM_BINS, range=(0.0, upper))

    level = NOISE_HISTOGRAM_LEVEL * counts.max()
    i = int(np.nonzero(counts > level)[0][-1])
    if i == len(counts) - 1:
        noise_std = edges[-1]
    else:
        noise_std = edges[i] + (level - counts[i]) * (edges[i + 1] - edges[i]) \
            / (counts[i + 1] - counts[i])
    return float(noise_std ** 2)


class TestStatisticComputer:
    """
    Compute decision statistics for a batch of kernels.

    Usage:
        computer = TestStatisticComputer(DetectorType.ECW, eigen_data)
        stats = computer.compute(segments, noise_variances)
    """

    __test__ = False  # not a pytest test class

    def __init__(self, detector_type: DetectorType, eigen_data: Optional[EigenData] = None):
        try:
            self.detector_type = DetectorType(detector_type)
        except ValueError:
            raise ConfigError(f"Unsupported detector type: {detector_type!r}")
        self.eigen_data = eigen_data

        if self.detector_type.is_estimator_correlator:
            if eigen_data is None:
                raise ConfigError(f"Detector '{self.detector_type.value}' requires eigen data")
            if eigen_data.noise_type is not self.detector_type.noise_type:
                raise ConfigError(
                    f"Eigen data computed for {eigen_data.noise_type.value} noise cannot be "
                    f"used by detector '{self.detector_type.value}'")
            if eigen_data.noise_type is NoiseType.COLORED and eigen_data.noise_eigenvectors is None:
                raise ConfigError("Coloured-noise eigen data lacks noise eigenvectors")

    def compute(self, segments: np.ndarray, noise_variances=None) -> np.ndarray:
        """
        Decision statistic of each column of segments.

        Args:
            segments: Samples x observations
            noise_variances: Scalar or one value per observation
                (ignored by the energy detector)

        Returns:
            Statistics, one per observation
        """
        x = np.asarray(segments, dtype=float)
        if x.ndim == 1:
            x = x[:, np.newaxis]

        if self.detector_type is DetectorType.ED:
            return np.sum(x ** 2, axis=0)

        n_obs = x.shape[1]
        if noise_variances is None:
            raise ConfigError("Estimator-correlator statistics require noise variances")
        nv = np.atleast_1d(np.asarray(noise_variances, dtype=float)).ravel()
        if len(nv) == 1:
            nv = np.full(n_obs, nv[0])
        elif len(nv) != n_obs:
            raise ConfigError(f"noise_variances has {len(nv)} entries for {n_obs} observations")

        eig = self.eigen_data
        if x.shape[0] != len(eig.signal_eigenvalues_norm):
            raise ConfigError(f"Segments have {x.shape[0]} samples, eigen data expects "
                              f"{len(eig.signal_eigenvalues_norm)}")

        signal_vars = np.var(x, axis=0, ddof=1) - nv

        if self.detector_type is DetectorType.ECW:
            y = eig.signal_eigenvectors.T @ x
        else:
            whitening = eig.noise_eigenvectors / np.sqrt(eig.noise_eigenvalues_norm)[np.newaxis, :]
            decorrelation = whitening @ eig.signal_eigenvectors
            y = (decorrelation.T @ x) / np.sqrt(nv)[np.newaxis, :]

        signal_eigenvalues = np.outer(eig.signal_eigenvalues_norm, signal_vars)
        weights = signal_eigenvalues / (signal_eigenvalues + nv[np.newaxis, :])
        return np.sum(y ** 2 * weights, axis=0)
