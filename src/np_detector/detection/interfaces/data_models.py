"""
Data Models for the Neyman-Pearson Detector

These data structures define the contracts between the detector stages:

    RawScoreData -> CovarianceData -> EigenData -> PerformanceCurveSet
                                                        |
    audio kernels -> test statistics -------------> thresholds -> KernelGroups

Design principles:
- Immutable (frozen dataclasses, read-only NumPy arrays)
- Arrays are copied on construction, never shared with the caller
- Self-documenting field names
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
import numpy as np

from ...errors import ConfigError


def _frozen(values, dtype=float) -> np.ndarray:
    """Return a read-only copy of values."""
    array = np.array(values, dtype=dtype, copy=True)
    array.setflags(write=False)
    return array


# ============================================================================
# ENUMERATIONS
# ============================================================================

class DetectorType(str, Enum):
    """Detector families."""
    ED = "ed"      # Energy detector
    ECW = "ecw"    # Estimator-correlator, white Gaussian noise
    ECC = "ecc"    # Estimator-correlator, coloured Gaussian noise

    @property
    def is_estimator_correlator(self) -> bool:
        return self is not DetectorType.ED

    @property
    def noise_type(self) -> Optional['NoiseType']:
        if self is DetectorType.ECW:
            return NoiseType.WHITE
        if self is DetectorType.ECC:
            return NoiseType.COLORED
        return None


class NoiseType(str, Enum):
    """Background noise model used by the estimator-correlator."""
    WHITE = "wgn"
    COLORED = "cgn"


class EstimatorKind(str, Enum):
    """Covariance estimators."""
    SAMPLE = "sample"
    OAS = "oas"
    RBLW = "rblw"
    PARAM1 = "param1"
    PARAM2 = "param2"
    CORR = "corr"
    DIAG = "diag"
    STOCK = "stock"
    LOOC = "looc"


class Hypothesis(str, Enum):
    """Which PDF is being evaluated."""
    FALSE_ALARM = "fa"
    DETECTION = "d"


# ============================================================================
# TRAINING DATA
# ============================================================================

@dataclass(frozen=True)
class RawScoreData:
    """
    Normalised training observations for one signal or noise class.

    Attributes:
        kernel_duration: Duration of each observation [s]
        sample_rate: Sample rate of the observations [Hz]
        raw_score_matrix: Observations x samples, each row unit variance
        snr_levels: SNR of each observation [dB] (inf when unknown)
        min_snr_level: Minimum SNR used when selecting observations [dB]
    """
    kernel_duration: float
    sample_rate: float
    raw_score_matrix: np.ndarray
    snr_levels: np.ndarray = field(default_factory=lambda: _frozen([]))
    min_snr_level: float = -np.inf

    def __post_init__(self):
        matrix = _frozen(self.raw_score_matrix)
        if matrix.ndim == 1:
            matrix = _frozen(matrix.reshape(1, -1))
        object.__setattr__(self, 'raw_score_matrix', matrix)
        object.__setattr__(self, 'snr_levels', _frozen(self.snr_levels))

    @property
    def n_observations(self) -> int:
        return self.raw_score_matrix.shape[0]

    @property
    def n_samples(self) -> int:
        return self.raw_score_matrix.shape[1]


# ============================================================================
# COVARIANCE / EIGEN
# ============================================================================

@dataclass(frozen=True)
class CovarianceData:
    """
    Normalised covariance matrix of one signal or noise class.

    The mean of the diagonal is 1.

    Attributes:
        kernel_duration: Duration of the kernel [s]
        sample_rate: Sample rate of the kernel [Hz]
        covariance_matrix: N x N matrix, N = round(kernel_duration * sample_rate)
    """
    kernel_duration: float
    sample_rate: float
    covariance_matrix: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'covariance_matrix', _frozen(self.covariance_matrix))

    @property
    def size(self) -> int:
        return self.covariance_matrix.shape[0]


@dataclass(frozen=True)
class EigenData:
    """
    Eigendecomposition feeding the estimator-correlator.

    In white-noise mode only the signal fields are populated. In
    coloured-noise mode the signal fields hold the decomposition of the
    compound (whitened) matrix.

    Attributes:
        kernel_duration: Duration of the kernel [s]
        sample_rate: Sample rate of the kernel [Hz]
        noise_type: NoiseType.WHITE or NoiseType.COLORED
        signal_eigenvectors: Columns are eigenvectors
        signal_eigenvalues_norm: Normalised eigenvalues (>= 1e-10)
        noise_eigenvectors: Noise eigenvectors (coloured mode only)
        noise_eigenvalues_norm: Noise eigenvalues (coloured mode only)
    """
    kernel_duration: float
    sample_rate: float
    noise_type: NoiseType
    signal_eigenvectors: np.ndarray
    signal_eigenvalues_norm: np.ndarray
    noise_eigenvectors: Optional[np.ndarray] = None
    noise_eigenvalues_norm: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, 'noise_type', NoiseType(self.noise_type))
        object.__setattr__(self, 'signal_eigenvectors', _frozen(self.signal_eigenvectors))
        object.__setattr__(self, 'signal_eigenvalues_norm', _frozen(self.signal_eigenvalues_norm))
        if self.noise_eigenvectors is not None:
            object.__setattr__(self, 'noise_eigenvectors', _frozen(self.noise_eigenvectors))
        if self.noise_eigenvalues_norm is not None:
            object.__setattr__(self, 'noise_eigenvalues_norm', _frozen(self.noise_eigenvalues_norm))


# ============================================================================
# PERFORMANCE
# ============================================================================

@dataclass(frozen=True)
class LimitSearchResult:
    """Outcome of a bounded numeric search."""
    value: float
    converged: bool
    iterations: int


@dataclass(frozen=True)
class PerformanceRecord:
    """
    PDF and right-tail probability curves for one SNR level.

    Attributes:
        detector_type: Detector family
        signal_variance: Signal variance the curves were computed for
        noise_variance: Noise variance the curves were computed for
        snr_level: 10*log10(signal_variance/noise_variance) [dB]
        n_variables: Number of degrees of freedom / eigenvalues
        cutoff_freqs_normalized: Band edges normalised to Nyquist
        axis_false_alarm: Test-statistic axis of the false-alarm curves
        axis_detection: Test-statistic axis of the detection curves
        pdf_false_alarm: PDF under the noise-only hypothesis
        pdf_detection: PDF under the signal-present hypothesis
        rtp_false_alarm: Right-tail probability under noise only
        rtp_detection: Right-tail probability with signal present
    """
    detector_type: 'DetectorType'
    signal_variance: float
    noise_variance: float
    snr_level: float
    n_variables: int
    cutoff_freqs_normalized: Tuple[float, float]
    axis_false_alarm: np.ndarray
    axis_detection: np.ndarray
    pdf_false_alarm: np.ndarray
    pdf_detection: np.ndarray
    rtp_false_alarm: np.ndarray
    rtp_detection: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'detector_type', DetectorType(self.detector_type))
        object.__setattr__(self, 'cutoff_freqs_normalized',
                           tuple(float(f) for f in self.cutoff_freqs_normalized))
        for name in ('axis_false_alarm', 'axis_detection', 'pdf_false_alarm',
                     'pdf_detection', 'rtp_false_alarm', 'rtp_detection'):
            object.__setattr__(self, name, _frozen(getattr(self, name)))


@dataclass(frozen=True)
class PerformanceCurveSet:
    """
    Catalog of performance records ordered by strictly ascending SNR.
    """
    records: Tuple[PerformanceRecord, ...]

    def __post_init__(self):
        records = tuple(self.records)
        if not records:
            raise ConfigError("PerformanceCurveSet requires at least one record")
        snr = np.array([r.snr_level for r in records])
        if np.any(np.diff(snr) <= 0):
            raise ConfigError("Performance records must be in strictly ascending SNR order")
        types = {r.detector_type for r in records}
        if len(types) > 1:
            raise ConfigError(f"Mixed detector types in curve set: {sorted(t.value for t in types)}")
        object.__setattr__(self, 'records', records)

    @property
    def detector_type(self) -> DetectorType:
        return self.records[0].detector_type

    @property
    def snr_levels(self) -> np.ndarray:
        return np.array([r.snr_level for r in self.records])

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __getitem__(self, index: int) -> PerformanceRecord:
        return self.records[index]


@dataclass(frozen=True)
class ThresholdResult:
    """Thresholds and associated probabilities per observation."""
    thresholds: np.ndarray
    rtp_false_alarm: np.ndarray
    rtp_detection: np.ndarray


# ============================================================================
# GROUPING
# ============================================================================

@dataclass(frozen=True)
class KernelGroups:
    """
    Parallel arrays of 0-based kernel indices describing signal windows and
    the background-noise window chosen for each. Noise bounds are NaN when
    no non-overlapping slot exists.
    """
    signal_start: np.ndarray
    signal_end: np.ndarray
    noise_start: np.ndarray
    noise_end: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'signal_start', _frozen(self.signal_start, dtype=np.int64))
        object.__setattr__(self, 'signal_end', _frozen(self.signal_end, dtype=np.int64))
        object.__setattr__(self, 'noise_start', _frozen(self.noise_start))
        object.__setattr__(self, 'noise_end', _frozen(self.noise_end))

    def __len__(self) -> int:
        return len(self.signal_start)

    def to_dict(self) -> Dict[str, List[Any]]:
        return {
            'signal_start': self.signal_start.tolist(),
            'signal_end': self.signal_end.tolist(),
            'noise_start': self.noise_start.tolist(),
            'noise_end': self.noise_end.tolist(),
        }
