"""
Detector Configuration

Configuration is read from a TOML file:

    [detector]
    source_name = "airgun"
    detector_type = "ecw"          # ed | ecw | ecc
    kernel_duration = 0.1          # [s]
    window_duration = 1.0          # [s], rounded up to whole kernels
    window_offset = 0.2            # [s], optional
    rtp_false_alarm = 0.001
    sensitivity = 1.0              # 0..1
    min_snr_level = 0.0            # [dB]
    cutoff_freqs = [10.0, 1000.0]  # [Hz]
    resample_rate = 2000           # [Hz]
    estimator = "sample"

    [performance]
    precision_factor = 1.5         # 1 | 1.5 | 2
    amplitude_ratio = 1e4
    interpolate = true
    snr_min = -50
    snr_max = 50
    snr_step = 1

Missing keys take the defaults below. Invalid values raise ConfigError.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
import toml

from .errors import ConfigError
from .detection.interfaces.data_models import DetectorType, EstimatorKind
from .detection.performance import PerformanceConfig

logger = logging.getLogger(__name__)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            return toml.load(f)

    if config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")

    # Default configuration
    return {
        'detector': {
            'source_name': 'default',
            'detector_type': 'ed',
            'kernel_duration': 0.1,
            'window_duration': 1.0,
            'rtp_false_alarm': 1e-3,
            'sensitivity': 1.0,
            'min_snr_level': 0.0,
            'cutoff_freqs': [0.0, 1000.0],
            'resample_rate': 2000.0,
            'estimator': 'sample',
        },
        'performance': {
            'precision_factor': 1.5,
            'amplitude_ratio': 1e4,
            'interpolate': True,
            'snr_min': -50,
            'snr_max': 50,
            'snr_step': 1,
        },
    }


def performance_config_from_dict(section: Dict[str, Any]) -> PerformanceConfig:
    """Build a PerformanceConfig from the [performance] section."""
    snr_min = float(section.get('snr_min', -50))
    snr_max = float(section.get('snr_max', 50))
    snr_step = float(section.get('snr_step', 1))
    if snr_step <= 0 or snr_max < snr_min:
        raise ConfigError("SNR catalog requires snr_step > 0 and snr_max >= snr_min")
    n_levels = int(round((snr_max - snr_min) / snr_step)) + 1
    levels = tuple(float(s) for s in snr_min + np.arange(n_levels) * snr_step)
    return PerformanceConfig(
        precision_factor=section.get('precision_factor', 1.5),
        amplitude_ratio=float(section.get('amplitude_ratio', 1e4)),
        interpolate=bool(section.get('interpolate', True)),
        snr_levels=levels,
    )


@dataclass(frozen=True)
class DetectorConfig:
    """
    Detection parameters of one source.

    Attributes:
        source_name: Name of the sound source (used in artifact keys)
        detector_type: 'ed', 'ecw' or 'ecc'
        kernel_duration: Kernel duration [s]
        window_duration: Minimum signal window duration [s]
        window_offset: Start of the window before the event peak [s] (None = keep)
        rtp_false_alarm: Target false-alarm probability per kernel
        sensitivity: Threshold blend factor (1 = false-alarm driven only)
        min_snr_level: Kernels below this SNR are never detections [dB]
        cutoff_freqs: Band edges [Hz]
        resample_rate: Sample rate used for detection [Hz]
        estimator: Covariance estimator
        performance: Performance curve options
    """
    source_name: str = 'default'
    detector_type: DetectorType = DetectorType.ED
    kernel_duration: float = 0.1
    window_duration: float = 1.0
    window_offset: Optional[float] = None
    rtp_false_alarm: float = 1e-3
    sensitivity: float = 1.0
    min_snr_level: float = 0.0
    cutoff_freqs: Tuple[float, float] = (0.0, 1000.0)
    resample_rate: float = 2000.0
    estimator: EstimatorKind = EstimatorKind.SAMPLE
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    def __post_init__(self):
        try:
            object.__setattr__(self, 'detector_type', DetectorType(self.detector_type))
        except ValueError:
            raise ConfigError(f"Unsupported detector type: {self.detector_type!r}")
        try:
            object.__setattr__(self, 'estimator', EstimatorKind(self.estimator))
        except ValueError:
            raise ConfigError(f"Unsupported covariance estimator: {self.estimator!r}")

        if self.kernel_duration <= 0:
            raise ConfigError("kernel_duration must be positive")
        if self.window_duration <= 0:
            raise ConfigError("window_duration must be positive")
        if self.window_offset is not None and self.window_offset < 0:
            raise ConfigError("window_offset must be non-negative")
        if not 0 < self.rtp_false_alarm <= 1:
            raise ConfigError("rtp_false_alarm must be in (0, 1]")
        if not 0 <= self.sensitivity <= 1:
            raise ConfigError("sensitivity must be in [0, 1]")
        if self.resample_rate <= 0:
            raise ConfigError("resample_rate must be positive")

        cutoff = tuple(float(f) for f in self.cutoff_freqs)
        if len(cutoff) != 2:
            raise ConfigError("cutoff_freqs must have two elements")
        if not 0 <= cutoff[0] < cutoff[1] <= self.resample_rate / 2:
            raise ConfigError(f"cutoff_freqs {cutoff} must satisfy 0 <= low < high <= "
                              f"{self.resample_rate / 2} Hz")
        object.__setattr__(self, 'cutoff_freqs', cutoff)

    @property
    def cutoff_freqs_normalized(self) -> Tuple[float, float]:
        """Band edges normalised to the Nyquist frequency."""
        return tuple(2 * f / self.resample_rate for f in self.cutoff_freqs)

    @property
    def kernel_length(self) -> int:
        """Kernel length at the detection sample rate [samples]."""
        return int(round(self.kernel_duration * self.resample_rate))

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'DetectorConfig':
        """Build from a loaded TOML dictionary."""
        det = dict(config.get('detector', {}))
        performance = performance_config_from_dict(config.get('performance', {}))
        known = {f for f in cls.__dataclass_fields__ if f != 'performance'}
        unknown = set(det) - known
        if unknown:
            raise ConfigError(f"Unrecognised detector options: {sorted(unknown)}")
        if 'cutoff_freqs' in det:
            det['cutoff_freqs'] = tuple(det['cutoff_freqs'])
        return cls(performance=performance, **det)
