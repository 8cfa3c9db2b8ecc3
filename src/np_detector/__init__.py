"""
np-detector: Neyman-Pearson Detector for Passive Acoustic Monitoring

Detects transient sound events (airgun pulses, pile strikes, ...) in long
hydrophone recordings. For a target false-alarm probability per kernel the
detector derives a threshold for every kernel from a catalog of
performance curves, and flags kernels whose test statistic exceeds it.

Detector types:
    ed   Energy Detector (white signal in white noise)
    ecw  Estimator-Correlator in white Gaussian noise
    ecc  Estimator-Correlator in coloured Gaussian noise

Pipeline:
    raw scores → covariance → eigendecomposition → performance catalog
    recording → kernels → test statistics + thresholds → grouped events

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import DetectorConfig, load_config
from .errors import (
    NPDetectorError,
    ConfigError,
    PrecisionWarning,
    DataQualityWarning,
    Diagnostics,
)
from .interfaces.detection_result import DetectionEvent, DetectionResult
from .detection.preprocess import PreparedDetector, prepare_detector, artifact_key
from .detection.detector import NeymanPearsonDetector

__all__ = [
    "DetectorConfig",
    "load_config",
    "NPDetectorError",
    "ConfigError",
    "PrecisionWarning",
    "DataQualityWarning",
    "Diagnostics",
    "DetectionEvent",
    "DetectionResult",
    "PreparedDetector",
    "prepare_detector",
    "artifact_key",
    "NeymanPearsonDetector",
    "__version__",
]
