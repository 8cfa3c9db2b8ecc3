"""
Detection components for np-detector.

Covariance estimation, eigendecomposition, performance characterisation,
threshold solving, test statistics and kernel grouping.
"""

from .covariance import CovarianceConfig, CovarianceEstimator
from .eigen import EigenDecomposer
from .performance import PerformanceConfig, PerformanceCurveEngine
from .thresholds import ThresholdSolver
from .statistics import TestStatisticComputer, estimate_noise_variance
from .grouping import EventGrouper
from .raw_scores import build_raw_scores

__all__ = [
    'CovarianceConfig', 'CovarianceEstimator', 'EigenDecomposer',
    'PerformanceConfig', 'PerformanceCurveEngine', 'ThresholdSolver',
    'TestStatisticComputer', 'estimate_noise_variance', 'EventGrouper',
    'build_raw_scores',
]
