#!/usr/bin/env python3
"""
Covariance Estimator - Normalised Kernel Covariance from Training Observations

================================================================================
PURPOSE
================================================================================
Estimate the N x N covariance matrix of a signal (or noise) class from a
matrix of normalised training observations. The result feeds the
eigendecomposition that defines the estimator-correlator.

Processing per observation:
    1. Polyphase resampling to the detection sample rate
    2. Truncation to N = round(kernel_duration * sample_rate) samples
    3. Normalisation to unit standard deviation
    4. Optional band filtering (causal or zero-phase), then re-normalisation

The observations are then combined by the configured estimator (sample
covariance or one of the shrinkage estimators in shrinkage.py) and the
result is divided by the mean of its diagonal so that it carries shape
only, not power.

================================================================================
LIMITS
================================================================================
    N > 10,000                    -> ConfigError
    no observations               -> ConfigError
    < 2 observations              -> ConfigError
    < 3 observations + shrinkage  -> sample covariance, DataQualityWarning
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import linalg

from ..errors import (
    ConfigError,
    DataQualityWarning,
    Diagnostics,
    ProgressCallback,
    report_progress,
)
from .interfaces.data_models import CovarianceData, EstimatorKind, RawScoreData
from .np_constants import MAX_KERNEL_LENGTH, MIN_OBSERVATIONS, MIN_SHRINKAGE_OBSERVATIONS
from .shrinkage import make_estimator
from .signal_conditioning import apply_sos, impulse_response, normalize_rows, resample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CovarianceConfig:
    """
    Options for CovarianceEstimator.

    Attributes:
        kernel_duration: Target kernel duration [s] (None = raw-score duration)
        sample_rate: Target sample rate [Hz] (None = raw-score rate)
        filter_sos: Digital filter as second-order sections (None = no filter)
        filter_mode: 'filter' (causal) or 'filtfilt' (zero phase)
        estimator: Covariance estimator
        shrink_target: Explicit target for the leave-one-out estimator
    """
    kernel_duration: Optional[float] = None
    sample_rate: Optional[float] = None
    filter_sos: Optional[np.ndarray] = None
    filter_mode: str = 'filter'
    estimator: EstimatorKind = EstimatorKind.SAMPLE
    shrink_target: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.filter_mode not in ('filter', 'filtfilt'):
            raise ConfigError(f"filter_mode must be 'filter' or 'filtfilt', got {self.filter_mode!r}")
        try:
            object.__setattr__(self, 'estimator', EstimatorKind(self.estimator))
        except ValueError:
            raise ConfigError(f"Unsupported covariance estimator: {self.estimator!r}")
        if self.kernel_duration is not None and self.kernel_duration <= 0:
            raise ConfigError("kernel_duration must be positive")
        if self.sample_rate is not None and self.sample_rate <= 0:
            raise ConfigError("sample_rate must be positive")


def filtered_noise_target(sos: np.ndarray, size: int, mode: str = 'filter') -> np.ndarray:
    """
    Covariance of unit-variance white noise passed through a filter.

    Built as a Toeplitz matrix from the autocorrelation of the filter's
    impulse response (squared-magnitude response for zero-phase filtering).
    """
    response = impulse_response(sos, 4 * size)
    if mode == 'filtfilt':
        response = np.convolve(response, response[::-1])
    autocorr = np.correlate(response, response, mode='full')[len(response) - 1:]
    if autocorr[0] <= 0:
        return np.eye(size)
    autocorr = autocorr / autocorr[0]
    column = np.zeros(size)
    n = min(size, len(autocorr))
    column[:n] = autocorr[:n]
    return linalg.toeplitz(column)


class CovarianceEstimator:
    """
    Estimate normalised kernel covariance matrices.

    Usage:
        estimator = CovarianceEstimator(CovarianceConfig(sample_rate=2000,
                                                         estimator='oas'))
        cov = estimator.estimate(raw_scores)
    """

    def __init__(self, config: Optional[CovarianceConfig] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config or CovarianceConfig()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.progress = progress

    def estimate(self, raw_scores: RawScoreData) -> CovarianceData:
        """
        Estimate the covariance of a set of training observations.

        Args:
            raw_scores: Normalised training observations

        Returns:
            CovarianceData with mean diagonal equal to 1

        Raises:
            ConfigError: Matrix too large or too few observations
        """
        cfg = self.config
        if raw_scores.raw_score_matrix.size == 0:
            raise ConfigError("Raw score matrix is empty; covariance cannot be computed")

        kernel_duration = cfg.kernel_duration or raw_scores.kernel_duration
        if kernel_duration > raw_scores.kernel_duration:
            self.diagnostics.warn(
                DataQualityWarning, 'CovarianceEstimator',
                f"Kernel duration {kernel_duration} s exceeds observation duration; "
                f"using {raw_scores.kernel_duration} s")
            kernel_duration = raw_scores.kernel_duration

        sample_rate = cfg.sample_rate or raw_scores.sample_rate
        if sample_rate > raw_scores.sample_rate:
            self.diagnostics.warn(
                DataQualityWarning, 'CovarianceEstimator',
                f"Target sample rate {sample_rate} Hz is above the raw-score rate "
                f"{raw_scores.sample_rate} Hz (upsampling adds no information)")

        kernel_length = int(round(kernel_duration * sample_rate))
        if kernel_length > MAX_KERNEL_LENGTH:
            raise ConfigError(
                f"Covariance size {kernel_length} exceeds {MAX_KERNEL_LENGTH}; "
                f"reduce kernel duration and/or sample rate")
        if kernel_length < 2:
            raise ConfigError(f"Kernel length {kernel_length} is too short")

        logger.info(f"Estimating {cfg.estimator.value} covariance: "
                    f"{raw_scores.n_observations} observations, N={kernel_length}, "
                    f"fs={sample_rate}Hz")

        report_progress(self.progress, 0.0, "Resampling raw scores")
        x = self._prepare_observations(raw_scores, sample_rate, kernel_length)

        n_obs = x.shape[0]
        if n_obs < MIN_OBSERVATIONS:
            raise ConfigError(f"At least {MIN_OBSERVATIONS} observations are required, got {n_obs}")

        if cfg.filter_sos is not None and len(cfg.filter_sos) > 0:
            report_progress(self.progress, 0.4, "Filtering raw scores")
            x = normalize_rows(apply_sos(x, cfg.filter_sos, cfg.filter_mode, axis=1))

        kind = cfg.estimator
        if kind is not EstimatorKind.SAMPLE and n_obs < MIN_SHRINKAGE_OBSERVATIONS:
            self.diagnostics.warn(
                DataQualityWarning, 'CovarianceEstimator',
                f"{n_obs} observations are too few for {kind.value} shrinkage; "
                f"using sample covariance")
            kind = EstimatorKind.SAMPLE

        target = cfg.shrink_target
        if kind is EstimatorKind.LOOC and target is None and cfg.filter_sos is not None \
                and len(cfg.filter_sos) > 0:
            target = filtered_noise_target(cfg.filter_sos, kernel_length, cfg.filter_mode)

        report_progress(self.progress, 0.6, f"Computing {kind.value} covariance")
        strategy = make_estimator(kind, target=target)
        try:
            matrix = strategy.estimate(x)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        mean_var = np.mean(np.diag(matrix))
        matrix = matrix / mean_var
        report_progress(self.progress, 1.0, "Covariance complete")

        return CovarianceData(
            kernel_duration=kernel_duration,
            sample_rate=sample_rate,
            covariance_matrix=matrix,
        )

    def _prepare_observations(self, raw_scores: RawScoreData, sample_rate: float,
                              kernel_length: int) -> np.ndarray:
        """Resample, trim and normalise each observation (new array)."""
        resampled = resample(raw_scores.raw_score_matrix, raw_scores.sample_rate,
                             sample_rate, axis=1)
        if resampled.shape[1] < kernel_length:
            self.diagnostics.warn(
                DataQualityWarning, 'CovarianceEstimator',
                f"{resampled.shape[0]} observations have {resampled.shape[1]} samples after "
                f"resampling, fewer than the kernel length {kernel_length}; they are discarded")
            return np.empty((0, kernel_length))
        return normalize_rows(resampled[:, :kernel_length])
