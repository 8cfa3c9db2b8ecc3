"""
Test Statistic Distribution Interface

Defines the contract between PerformanceCurveEngine and the two detector
families. Each family provides the PDF and right-tail probability of its
test statistic under one hypothesis, plus the truncation point of the
statistic axis.
"""

from abc import ABC, abstractmethod
import numpy as np

from .data_models import LimitSearchResult


class TestStatisticDistribution(ABC):
    """
    Distribution of a detector test statistic under one hypothesis.

    Implementations:
        WeightedChiSquared      energy detector
        GaussianQuadraticForm   estimator-correlator (white or coloured)
    """

    __test__ = False  # not a pytest test class

    @abstractmethod
    def upper_limit(self) -> LimitSearchResult:
        """
        Test-statistic value beyond which the distribution is negligible.

        Returns:
            LimitSearchResult with the best estimate and convergence flag
        """
        pass

    @abstractmethod
    def curves(self, precision_factor: float) -> tuple:
        """
        Sample the distribution on a uniform axis.

        Args:
            precision_factor: Accuracy/cost knob (1, 1.5 or 2)

        Returns:
            (axis, pdf, rtp) arrays of equal length
        """
        pass

    @abstractmethod
    def density(self, t: np.ndarray) -> np.ndarray:
        """PDF at the given test-statistic values."""
        pass

    @abstractmethod
    def right_tail(self, t: np.ndarray) -> np.ndarray:
        """
        Right-tail probability P(T > t) at the given values.

        Sampled implementations evaluate on the curve of their configured
        precision factor.
        """
        pass
