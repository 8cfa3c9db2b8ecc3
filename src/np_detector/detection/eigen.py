#!/usr/bin/env python3
"""
Eigen Decomposer - Decorrelating Basis for the Estimator-Correlator

================================================================================
THEORY
================================================================================
White noise (noise covariance = sigma_n^2 I):

    Cs = Vs Ls Vs^T

Coloured noise: the noise is whitened first,

    Cn = Vn Ln Vn^T,   A = Vn Ln^(-1/2)
    B  = A^T Cs A      (compound matrix)
    B  = Vs Ls Vs^T

so that y = Vs^T A^T x has independent components under both hypotheses.
B is symmetrised as (B + B^T)/2 before its decomposition; the product of
floating-point matrices is otherwise only symmetric to rounding error.

Eigenvalues below 1e-10 are clamped to 1e-10. Downstream code takes their
reciprocal and logarithm.

No ordering or sign convention is imposed on the eigenvectors beyond what
numpy.linalg.eigh returns.
"""

import logging
from typing import Optional

import numpy as np

from ..errors import ConfigError, Diagnostics, ProgressCallback, report_progress
from .interfaces.data_models import CovarianceData, EigenData, NoiseType
from .np_constants import EIGENVALUE_FLOOR

logger = logging.getLogger(__name__)


def clamp_eigenvalues(values: np.ndarray) -> np.ndarray:
    """Clamp eigenvalues to the positive-definiteness floor."""
    return np.maximum(np.asarray(values, dtype=float), EIGENVALUE_FLOOR)


def compound_matrix(cov_signal: np.ndarray, noise_eigenvectors: np.ndarray,
                    noise_eigenvalues: np.ndarray) -> np.ndarray:
    """
    Signal covariance in the whitened-noise basis.

    Args:
        cov_signal: Signal covariance (N x N)
        noise_eigenvectors: Noise eigenvectors (columns)
        noise_eigenvalues: Clamped noise eigenvalues

    Returns:
        Exactly symmetric compound matrix (B == B.T bit for bit)
    """
    whitening = noise_eigenvectors / np.sqrt(noise_eigenvalues)[np.newaxis, :]
    b = whitening.T @ cov_signal @ whitening
    return (b + b.T) / 2


class EigenDecomposer:
    """Eigendecomposition of normalised covariance matrices."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None,
                 progress: Optional[ProgressCallback] = None):
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.progress = progress

    def decompose(self, cov_signal: CovarianceData,
                  cov_noise: Optional[CovarianceData] = None) -> EigenData:
        """
        Decompose a signal covariance, optionally against coloured noise.

        Args:
            cov_signal: Signal covariance
            cov_noise: Noise covariance (None = white-noise mode)

        Returns:
            EigenData in white or coloured mode

        Raises:
            ConfigError: Kernel duration, sample rate or size mismatch
        """
        if cov_noise is None:
            report_progress(self.progress, 0.0, "Decomposing signal covariance")
            values, vectors = np.linalg.eigh(cov_signal.covariance_matrix)
            n_clamped = int(np.sum(values < EIGENVALUE_FLOOR))
            logger.info(f"White-noise eigendecomposition: N={cov_signal.size}, "
                        f"{n_clamped} eigenvalues clamped")
            report_progress(self.progress, 1.0, "Eigendecomposition complete")
            return EigenData(
                kernel_duration=cov_signal.kernel_duration,
                sample_rate=cov_signal.sample_rate,
                noise_type=NoiseType.WHITE,
                signal_eigenvectors=vectors,
                signal_eigenvalues_norm=clamp_eigenvalues(values),
            )

        self._check_compatible(cov_signal, cov_noise)

        report_progress(self.progress, 0.0, "Decomposing noise covariance")
        noise_values, noise_vectors = np.linalg.eigh(cov_noise.covariance_matrix)
        noise_values = clamp_eigenvalues(noise_values)

        report_progress(self.progress, 0.5, "Decomposing compound matrix")
        b = compound_matrix(cov_signal.covariance_matrix, noise_vectors, noise_values)
        values, vectors = np.linalg.eigh(b)

        logger.info(f"Coloured-noise eigendecomposition: N={cov_signal.size}")
        report_progress(self.progress, 1.0, "Eigendecomposition complete")
        return EigenData(
            kernel_duration=cov_signal.kernel_duration,
            sample_rate=cov_signal.sample_rate,
            noise_type=NoiseType.COLORED,
            signal_eigenvectors=vectors,
            signal_eigenvalues_norm=clamp_eigenvalues(values),
            noise_eigenvectors=noise_vectors,
            noise_eigenvalues_norm=noise_values,
        )

    @staticmethod
    def _check_compatible(cov_signal: CovarianceData, cov_noise: CovarianceData):
        if not np.isclose(cov_signal.kernel_duration, cov_noise.kernel_duration):
            raise ConfigError(
                f"Kernel duration mismatch: signal {cov_signal.kernel_duration} s, "
                f"noise {cov_noise.kernel_duration} s")
        if not np.isclose(cov_signal.sample_rate, cov_noise.sample_rate):
            raise ConfigError(
                f"Sample rate mismatch: signal {cov_signal.sample_rate} Hz, "
                f"noise {cov_noise.sample_rate} Hz")
        if cov_signal.size != cov_noise.size:
            raise ConfigError(
                f"Covariance size mismatch: signal {cov_signal.size}, noise {cov_noise.size}")
