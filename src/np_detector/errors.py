"""
Error and Diagnostic Types for the Neyman-Pearson Detector

Three failure classes are distinguished:

    ConfigError         Invalid parameter combination. Fatal to the single
                        covariance/eigen/curve computation in progress and
                        surfaced to the caller as a typed exception.
    PrecisionWarning    A numeric limit search exhausted its iteration
                        budget. The best-effort value is used.
    DataQualityWarning  Insufficient or malformed training observations.
                        The estimator proceeds with best-effort defaults.

Warnings are never raised. They are recorded in a Diagnostics collector
that the caller passes in and inspects after the operation, and each one
is also written to the module logger.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Type

logger = logging.getLogger(__name__)

# progress(fraction in [0, 1], message)
ProgressCallback = Callable[[float, str], None]


def report_progress(progress: Optional[ProgressCallback], fraction: float, message: str) -> None:
    """Forward a progress update to the callback, if one was given."""
    if progress is not None:
        progress(min(max(fraction, 0.0), 1.0), message)


class NPDetectorError(Exception):
    """Base class for detector errors."""


class ConfigError(NPDetectorError, ValueError):
    """Invalid configuration or mismatched inputs."""


class PrecisionWarning(UserWarning):
    """Numeric search did not converge; result is best effort."""


class DataQualityWarning(UserWarning):
    """Training or audio data is insufficient or inconsistent."""


@dataclass(frozen=True)
class Diagnostic:
    """
    A single non-fatal condition raised during processing.

    Attributes:
        category: PrecisionWarning or DataQualityWarning
        source: Component that emitted it (e.g. 'CovarianceEstimator')
        message: Human-readable description
    """
    category: Type[UserWarning]
    source: str
    message: str

    def to_dict(self) -> dict:
        return {
            'category': self.category.__name__,
            'source': self.source,
            'message': self.message,
        }


@dataclass
class Diagnostics:
    """
    Collector for non-fatal warnings.

    One instance is usually shared by every component taking part in a
    single preparation or detection run.
    """
    records: List[Diagnostic] = field(default_factory=list)

    def warn(self, category: Type[UserWarning], source: str, message: str) -> None:
        self.records.append(Diagnostic(category, source, message))
        logger.warning(f"{source}: {category.__name__}: {message}")

    def of_category(self, category: Type[UserWarning]) -> List[Diagnostic]:
        return [d for d in self.records if d.category is category]

    @property
    def has_precision_warnings(self) -> bool:
        return bool(self.of_category(PrecisionWarning))

    @property
    def has_data_quality_warnings(self) -> bool:
        return bool(self.of_category(DataQualityWarning))

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)
