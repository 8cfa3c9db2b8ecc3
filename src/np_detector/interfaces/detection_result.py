"""
Detection Result Data Models

These dataclasses define the contract between the detector and its callers.
A DetectionResult carries the detected events plus the per-kernel internal
data (statistics, thresholds, variances) so that callers can audit how each
decision was reached.

Contract Version: 1.0.0
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional
import json
import math

import numpy as np

from ..errors import Diagnostics


@dataclass(frozen=True)
class DetectionEvent:
    """
    One detected sound event, in seconds from the start of the recording.

    Noise bounds are NaN when no background window could be placed.
    """
    signal_time: float                   # Peak of the event
    signal_time1: float                  # Start of the signal window
    signal_time2: float                  # End of the signal window
    noise_time1: float = math.nan        # Start of the background-noise window
    noise_time2: float = math.nan        # End of the background-noise window

    @property
    def has_noise_window(self) -> bool:
        return not (math.isnan(self.noise_time1) or math.isnan(self.noise_time2))

    def to_dict(self) -> dict:
        return {k: (None if isinstance(v, float) and math.isnan(v) else v)
                for k, v in asdict(self).items()}


@dataclass
class DetectionResult:
    """
    Output of a detection run over one recording.

    Per-kernel arrays have one entry per kernel of the recording.
    """
    events: List[DetectionEvent] = field(default_factory=list)

    # Per-kernel internal data
    is_detection: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))
    thresholds: np.ndarray = field(default_factory=lambda: np.zeros(0))
    test_statistics: np.ndarray = field(default_factory=lambda: np.zeros(0))
    signal_variances: np.ndarray = field(default_factory=lambda: np.zeros(0))
    noise_variances: np.ndarray = field(default_factory=lambda: np.zeros(0))
    snr_levels: np.ndarray = field(default_factory=lambda: np.zeros(0))
    rtp_false_alarm: np.ndarray = field(default_factory=lambda: np.zeros(0))
    rtp_detection: np.ndarray = field(default_factory=lambda: np.zeros(0))

    diagnostics: Optional[Diagnostics] = None

    @property
    def n_kernels(self) -> int:
        return len(self.is_detection)

    @property
    def n_detections(self) -> int:
        return int(np.sum(self.is_detection))

    def to_dict(self) -> Dict:
        return {
            'events': [e.to_dict() for e in self.events],
            'n_kernels': self.n_kernels,
            'n_detections': self.n_detections,
            'diagnostics': [d.to_dict() for d in self.diagnostics] if self.diagnostics else [],
        }

    def to_json(self) -> str:
        """Serialize events and summary to JSON."""
        return json.dumps(self.to_dict(), indent=2)
