#!/usr/bin/env python3
"""
Neyman-Pearson Detector - Detection Run over a Recording

Processing chain for one mono recording:

1. Slice the recording into kernels of kernel_duration.
2. Remove the DC offset of each kernel (mean of the 10 s window whose
   centre is nearest to the kernel centre).
3. Resample each kernel to the detection rate, trim it to the kernel
   length and apply the band filter with zero phase.
4. Estimate the background noise variance of the recording, then the
   signal variance (clamped at 0) and SNR of every kernel.
5. Compute the test statistic and threshold of every kernel. A kernel is
   a detection when its statistic exceeds the threshold and its SNR is at
   least min_snr_level.
6. Group detected kernels into signal windows of at least window_duration,
   each paired with a background-noise window.
7. Locate the pulse peak in each signal window: the mean of the absolute
   peak and the moving-RMS peak, or the absolute peak alone when the mean
   falls beyond the first kernel.
8. With window_offset set, re-centre each window to start window_offset
   before the peak.
9. Drop windows that fall outside the recording and convert to seconds.

Sample positions refer to the original recording and its sample rate.
"""

import logging
from typing import Optional

import numpy as np

from ..config import DetectorConfig
from ..errors import ConfigError, DataQualityWarning, Diagnostics, ProgressCallback, report_progress
from ..interfaces.detection_result import DetectionEvent, DetectionResult
from .grouping import EventGrouper
from .interfaces.data_models import EigenData, PerformanceCurveSet
from .np_constants import DC_WINDOW_DURATION, PEAK_SMOOTHING_DIVISOR
from .signal_conditioning import (
    apply_sos, dc_offsets, design_band_filter, moving_rms, nearest_offset, resample,
)
from .statistics import TestStatisticComputer, estimate_noise_variance
from .thresholds import ThresholdSolver

logger = logging.getLogger(__name__)


class NeymanPearsonDetector:
    """
    Detect transient sound events in a recording.

    Usage:
        prepared = prepare_detector(config, signal_scores)
        detector = NeymanPearsonDetector(config, prepared.curve_set, prepared.eigen_data)
        result = detector.detect(audio, sample_rate=48000)
        for event in result.events:
            print(event.signal_time)
    """

    def __init__(self, config: DetectorConfig, curve_set: PerformanceCurveSet,
                 eigen_data: Optional[EigenData] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 progress: Optional[ProgressCallback] = None):
        if curve_set.detector_type is not config.detector_type:
            raise ConfigError(f"Performance data for '{curve_set.detector_type.value}' cannot be "
                              f"used by detector '{config.detector_type.value}'")
        self.config = config
        self.curve_set = curve_set
        self.eigen_data = eigen_data
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.progress = progress

        self.computer = TestStatisticComputer(config.detector_type, eigen_data)
        self.solver = ThresholdSolver(curve_set, self.diagnostics)
        self.filter_sos = design_band_filter(config.resample_rate, config.cutoff_freqs)

    # =========================================================================
    # Detection run
    # =========================================================================

    def detect(self, audio: np.ndarray, sample_rate: float) -> DetectionResult:
        """
        Run the detector over one recording.

        Args:
            audio: Mono recording (multi-channel input uses the first channel)
            sample_rate: Sample rate of the recording [Hz]

        Returns:
            DetectionResult with events and per-kernel internal data

        Raises:
            ConfigError: Recording shorter than one kernel or kernel too short to filter
        """
        cfg = self.config
        x = np.asarray(audio, dtype=float)
        if x.ndim > 1:
            self.diagnostics.warn(DataQualityWarning, 'NeymanPearsonDetector',
                                  f"Recording has {x.shape[1]} channels; using the first")
            x = x[:, 0]
        audio_length = len(x)

        window_duration = np.ceil(round(cfg.window_duration / cfg.kernel_duration, 9)) \
            * cfg.kernel_duration
        kernel_length_aud = int(round(cfg.kernel_duration * sample_rate))
        kernel_length_det = cfg.kernel_length
        window_length_aud = int(round(window_duration * sample_rate))
        kernels_per_window = max(int(round(window_length_aud / kernel_length_aud)), 1)
        n_kernels = audio_length // kernel_length_aud if kernel_length_aud > 0 else 0
        if n_kernels == 0:
            raise ConfigError(f"Recording of {audio_length} samples is shorter than one kernel "
                              f"({cfg.kernel_duration} s)")

        logger.info(f"Detecting with {cfg.detector_type.value.upper()}: {n_kernels} kernels of "
                    f"{kernel_length_aud} samples at {sample_rate} Hz")

        # 1-3. Kernels
        report_progress(self.progress, 0.0, "Processing audio segments for detection")
        segments = self._condition_kernels(x, sample_rate, n_kernels, kernel_length_aud,
                                           kernel_length_det)

        # 4. Variances
        report_progress(self.progress, 0.4, "Computing background noise variance")
        noise_var = estimate_noise_variance(segments)
        if noise_var <= 0:
            self.diagnostics.warn(DataQualityWarning, 'NeymanPearsonDetector',
                                  "Recording is silent; no detections possible")
            return self._silent_result(n_kernels)

        signal_vars = np.maximum(np.var(segments, axis=0, ddof=1) - noise_var, 0.0)
        noise_vars = np.full(n_kernels, noise_var)
        with np.errstate(divide='ignore'):
            snr_levels = 10 * np.log10(signal_vars / noise_var)

        # 5. Decisions
        report_progress(self.progress, 0.6, "Processing decision statistic")
        test_stats = self.computer.compute(segments, noise_var)
        thresholds = self.solver.solve(cfg.rtp_false_alarm, cfg.sensitivity,
                                       signal_vars, noise_vars)
        is_detection = (test_stats > thresholds.thresholds) & (snr_levels >= cfg.min_snr_level)

        # 6-9. Events
        report_progress(self.progress, 0.8, "Grouping kernels into windows")
        groups = EventGrouper(kernels_per_window).group(is_detection)
        events = self._locate_events(x, sample_rate, groups, kernel_length_aud)
        report_progress(self.progress, 1.0, "Detection complete")

        logger.info(f"{int(np.sum(is_detection))} of {n_kernels} kernels detected, "
                    f"{len(events)} events")
        return DetectionResult(
            events=events,
            is_detection=is_detection,
            thresholds=thresholds.thresholds,
            test_statistics=test_stats,
            signal_variances=signal_vars,
            noise_variances=noise_vars,
            snr_levels=snr_levels,
            rtp_false_alarm=thresholds.rtp_false_alarm,
            rtp_detection=thresholds.rtp_detection,
            diagnostics=self.diagnostics,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _condition_kernels(self, x: np.ndarray, sample_rate: float, n_kernels: int,
                           kernel_length_aud: int, kernel_length_det: int) -> np.ndarray:
        """Samples x kernels matrix of DC-corrected, resampled, filtered kernels."""
        dc_window = min(int(round(DC_WINDOW_DURATION * sample_rate)), len(x))
        offsets, centres = dc_offsets(x, dc_window)

        kernels = x[:n_kernels * kernel_length_aud].reshape(n_kernels, kernel_length_aud)
        kernel_centres = np.arange(n_kernels) * kernel_length_aud + (kernel_length_aud - 1) / 2
        kernel_offsets = np.array([nearest_offset(offsets, centres, c) for c in kernel_centres])
        kernels = kernels - kernel_offsets[:, np.newaxis]

        kernels = resample(kernels, sample_rate, self.config.resample_rate, axis=1)
        if kernels.shape[1] < kernel_length_det:
            raise ConfigError(f"Resampled kernels have {kernels.shape[1]} samples, "
                              f"fewer than {kernel_length_det}")
        kernels = kernels[:, :kernel_length_det]

        n_sections = len(self.filter_sos)
        if n_sections and kernel_length_det <= 3 * (2 * n_sections + 1):
            raise ConfigError(f"Kernel of {kernel_length_det} samples is too short for "
                              f"zero-phase filtering; increase the kernel duration")
        kernels = apply_sos(kernels, self.filter_sos, mode='filtfilt', axis=1)
        return kernels.T

    def _locate_events(self, x: np.ndarray, sample_rate: float, groups,
                       kernel_length: int) -> list:
        """Peak-centred events in seconds, out-of-bounds windows removed."""
        audio_length = len(x)
        offset_length = None
        if self.config.window_offset is not None:
            offset_length = int(round(self.config.window_offset * sample_rate))

        events = []
        n_oob = 0
        for i in range(len(groups)):
            start = int(groups.signal_start[i]) * kernel_length
            end = (int(groups.signal_end[i]) + 1) * kernel_length - 1
            noise_start = groups.noise_start[i] * kernel_length
            noise_end = (groups.noise_end[i] + 1) * kernel_length - 1

            peak = start + self._peak_index(x[start:end + 1], kernel_length)

            if offset_length is not None:
                n_samples = end - start + 1
                start = peak - offset_length
                end = start + n_samples - 1

            # NaN noise bounds compare False and are kept
            if start < 0 or noise_start < 0 or end > audio_length - 1 \
                    or noise_end > audio_length - 1:
                n_oob += 1
                continue

            events.append(DetectionEvent(
                signal_time=peak / sample_rate,
                signal_time1=start / sample_rate,
                signal_time2=end / sample_rate,
                noise_time1=float(noise_start) / sample_rate,
                noise_time2=float(noise_end) / sample_rate,
            ))

        if n_oob:
            logger.debug(f"Removed {n_oob} out-of-bounds windows")
        return events

    @staticmethod
    def _peak_index(window: np.ndarray, kernel_length: int) -> int:
        """Index of the pulse peak within a signal window."""
        window = window - np.mean(window)
        smooth_length = int(np.ceil(len(window) / PEAK_SMOOTHING_DIVISOR))
        peak_abs = int(np.argmax(np.abs(window)))
        peak_rms = int(np.argmax(moving_rms(window, smooth_length)))
        peak = int(np.floor((peak_abs + peak_rms) / 2 + 0.5))
        return peak if peak < kernel_length else peak_abs

    def _silent_result(self, n_kernels: int) -> DetectionResult:
        nan = np.full(n_kernels, np.nan)
        return DetectionResult(
            events=[],
            is_detection=np.zeros(n_kernels, dtype=bool),
            thresholds=nan.copy(),
            test_statistics=np.zeros(n_kernels),
            signal_variances=np.zeros(n_kernels),
            noise_variances=np.zeros(n_kernels),
            snr_levels=nan.copy(),
            rtp_false_alarm=nan.copy(),
            rtp_detection=nan.copy(),
            diagnostics=self.diagnostics,
        )
