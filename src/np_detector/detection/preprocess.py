#!/usr/bin/env python3
"""
Detector Preparation - Covariance, Eigen and Performance Artifacts

Before a recording can be processed, the detector needs:

    ed   the performance catalog of the energy detector
    ecw  the signal covariance, its white-noise eigendecomposition and the
         estimator-correlator performance catalog
    ecc  the signal and noise covariances, their coloured-noise
         eigendecomposition and the performance catalog

Each artifact has a deterministic name built from the detector settings:

    <Kind>_<source>_<TYPE>_fa<f1>_fb<f2>_fs<rate>_t<ms>_<estimator>

e.g. PerformanceData_airgun_ECW_fa10_fb1000_fs2000_t100_sample. When an
ArtifactStore is given, artifacts found there are reused; the ones built
here are returned in PreparedDetector.new_artifacts so the caller can
persist them. Nothing is written to disk by this module.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..config import DetectorConfig
from ..errors import ConfigError, Diagnostics, ProgressCallback
from .covariance import CovarianceConfig, CovarianceEstimator
from .eigen import EigenDecomposer
from .interfaces.artifact_store import ArtifactStore
from .interfaces.data_models import (
    CovarianceData, DetectorType, EigenData, NoiseType, PerformanceCurveSet, RawScoreData,
)
from .performance import PerformanceCurveEngine
from .signal_conditioning import design_band_filter

logger = logging.getLogger(__name__)

COVARIANCE_SIGNAL = 'CovarianceSignal'
COVARIANCE_NOISE = 'CovarianceNoise'
EIGEN_DATA = 'EigenData'
PERFORMANCE_DATA = 'PerformanceData'


def artifact_key(kind: str, config: DetectorConfig) -> str:
    """Deterministic artifact name for the given detector settings."""
    return (f"{kind}_{config.source_name}_{config.detector_type.value.upper()}"
            f"_fa{config.cutoff_freqs[0]:.0f}_fb{config.cutoff_freqs[1]:.0f}"
            f"_fs{config.resample_rate:.0f}_t{config.kernel_duration * 1000:.0f}"
            f"_{config.estimator.value}")


@dataclass
class PreparedDetector:
    """Artifacts required by NeymanPearsonDetector."""
    curve_set: PerformanceCurveSet
    eigen_data: Optional[EigenData] = None
    cov_signal: Optional[CovarianceData] = None
    cov_noise: Optional[CovarianceData] = None
    new_artifacts: Dict[str, Any] = field(default_factory=dict)


class _Lookup:
    """Reuse stored artifacts; remember the ones built here."""

    def __init__(self, config: DetectorConfig, store: Optional[ArtifactStore]):
        self.config = config
        self.store = store
        self.built: Dict[str, Any] = {}

    def get(self, kind: str, build):
        key = artifact_key(kind, self.config)
        if self.store is not None and key in self.store:
            logger.info(f"Using stored artifact {key}")
            return self.store.get(key)
        artifact = build()
        self.built[key] = artifact
        return artifact


def prepare_detector(config: DetectorConfig,
                     signal_scores: Optional[RawScoreData] = None,
                     noise_scores: Optional[RawScoreData] = None,
                     store: Optional[ArtifactStore] = None,
                     diagnostics: Optional[Diagnostics] = None,
                     progress: Optional[ProgressCallback] = None) -> PreparedDetector:
    """
    Build (or look up) everything the configured detector needs.

    Args:
        config: Detector configuration
        signal_scores: Signal training observations (ecw, ecc)
        noise_scores: Noise training observations (ecc)
        store: Existing artifacts, looked up by artifact_key
        diagnostics: Collector for non-fatal warnings
        progress: Progress callback

    Returns:
        PreparedDetector

    Raises:
        ConfigError: Required training data is missing or invalid
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    lookup = _Lookup(config, store)
    engine = PerformanceCurveEngine(config.performance, diagnostics, progress)
    cutoffs = config.cutoff_freqs_normalized
    detector_type = config.detector_type

    logger.info(f"Preparing {detector_type.value.upper()} detector for '{config.source_name}'")

    if detector_type is DetectorType.ED:
        curve_set = lookup.get(PERFORMANCE_DATA, lambda: engine.characterise(
            DetectorType.ED, cutoffs, n_variables=config.kernel_length))
        return PreparedDetector(curve_set=curve_set, new_artifacts=lookup.built)

    cov_config = CovarianceConfig(
        kernel_duration=config.kernel_duration,
        sample_rate=config.resample_rate,
        filter_sos=design_band_filter(config.resample_rate, config.cutoff_freqs),
        filter_mode='filter',
        estimator=config.estimator,
    )
    estimator = CovarianceEstimator(cov_config, diagnostics, progress)

    def covariance(scores: Optional[RawScoreData], label: str) -> CovarianceData:
        if scores is None:
            raise ConfigError(f"Detector '{detector_type.value}' requires {label} raw scores")
        return estimator.estimate(scores)

    cov_signal = lookup.get(COVARIANCE_SIGNAL, lambda: covariance(signal_scores, 'signal'))
    cov_noise = None
    if detector_type.noise_type is NoiseType.COLORED:
        cov_noise = lookup.get(COVARIANCE_NOISE, lambda: covariance(noise_scores, 'noise'))

    decomposer = EigenDecomposer(diagnostics, progress)
    eigen_data = lookup.get(EIGEN_DATA, lambda: decomposer.decompose(cov_signal, cov_noise))

    curve_set = lookup.get(PERFORMANCE_DATA, lambda: engine.characterise(
        detector_type, cutoffs, eigenvalues=eigen_data.signal_eigenvalues_norm))

    if lookup.built:
        logger.info(f"Built {len(lookup.built)} artifacts: {', '.join(lookup.built)}")
    return PreparedDetector(
        curve_set=curve_set,
        eigen_data=eigen_data,
        cov_signal=cov_signal,
        cov_noise=cov_noise,
        new_artifacts=lookup.built,
    )
