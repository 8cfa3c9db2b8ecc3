"""Interface definitions for detector components."""

from .data_models import (
    DetectorType,
    NoiseType,
    EstimatorKind,
    Hypothesis,
    RawScoreData,
    CovarianceData,
    EigenData,
    LimitSearchResult,
    PerformanceRecord,
    PerformanceCurveSet,
    ThresholdResult,
    KernelGroups,
)
from .performance_model import TestStatisticDistribution
from .artifact_store import ArtifactStore, InMemoryArtifactStore

__all__ = [
    'DetectorType', 'NoiseType', 'EstimatorKind', 'Hypothesis',
    'RawScoreData', 'CovarianceData', 'EigenData', 'LimitSearchResult',
    'PerformanceRecord', 'PerformanceCurveSet', 'ThresholdResult',
    'KernelGroups', 'TestStatisticDistribution', 'ArtifactStore',
    'InMemoryArtifactStore',
]
