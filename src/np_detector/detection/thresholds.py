#!/usr/bin/env python3
"""
Threshold Solver - Neyman-Pearson Thresholds from Performance Curves

For every catalog SNR level two candidate thresholds are found by inverse
interpolation of the right-tail probability curves:

    t1: false-alarm RTP equals the target false-alarm probability
    t2: detection RTP equals 0.99999

and blended as

    threshold = max(t1, t1*sensitivity + t2*(1 - sensitivity))

so sensitivity can only raise the threshold above the false-alarm value.

The per-level thresholds are interpolated to the SNR of each observation
with a monotone cubic (PCHIP, extrapolating). The matching probabilities
are interpolated linearly without extrapolation; values outside the catalog
are filled from the nearest catalog level.

Energy-detector and white-noise estimator-correlator curves are computed at
unit noise variance, so their thresholds are multiplied by the observed
noise variance. Coloured-noise estimator-correlator curves are invariant to
noise variance and are left unscaled.
"""

import logging
from typing import Optional, Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

from ..errors import ConfigError, Diagnostics
from .interfaces.data_models import (
    DetectorType,
    PerformanceCurveSet,
    PerformanceRecord,
    ThresholdResult,
)
from .np_constants import DETECTION_RTP_TARGET

logger = logging.getLogger(__name__)


def inverse_rtp(rtp: np.ndarray, axis: np.ndarray, target: float) -> float:
    """
    Statistic value at which a right-tail probability curve equals target.

    Repeated RTP values are reduced to their first occurrence before the
    curve is inverted. Returns NaN when target is outside the curve's range.
    """
    values, first = np.unique(np.asarray(rtp), return_index=True)
    positions = np.asarray(axis)[first]
    if len(values) == 1:
        return float(positions[0]) if values[0] == target else np.nan
    return float(np.interp(target, values, positions, left=np.nan, right=np.nan))


def curve_value(axis: np.ndarray, rtp: np.ndarray, t: float) -> float:
    """RTP at statistic value t (NaN outside the axis)."""
    return float(np.interp(t, axis, rtp, left=np.nan, right=np.nan))


def _nearest_fill(values: np.ndarray, snr_catalog: np.ndarray, catalog: np.ndarray,
                  snr_targets: np.ndarray) -> np.ndarray:
    values = values.copy()
    missing = np.isnan(values)
    if np.any(missing):
        valid = ~np.isnan(catalog)
        if np.any(valid):
            snr_valid = snr_catalog[valid]
            nearest = np.abs(snr_targets[missing][:, None] - snr_valid[None, :]).argmin(axis=1)
            values[missing] = catalog[valid][nearest]
    return values


class ThresholdSolver:
    """
    Compute detection thresholds for arbitrary signal/noise variance pairs.

    Usage:
        solver = ThresholdSolver(curve_set)
        result = solver.solve(0.01, sensitivity=1.0,
                              signal_variances=sv, noise_variances=nv)
    """

    def __init__(self, curve_set: PerformanceCurveSet,
                 diagnostics: Optional[Diagnostics] = None):
        self.curve_set = curve_set
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    @staticmethod
    def record_threshold(record: PerformanceRecord, rtp_false_alarm: float,
                         sensitivity: float) -> Tuple[float, float, float]:
        """
        Blended threshold and its probabilities for one catalog record.

        Returns:
            (threshold, rtp_false_alarm, rtp_detection) at the threshold
        """
        t1 = inverse_rtp(record.rtp_false_alarm, record.axis_false_alarm, rtp_false_alarm)
        t2 = inverse_rtp(record.rtp_detection, record.axis_detection, DETECTION_RTP_TARGET)
        threshold = float(np.fmax(t1 * sensitivity + t2 * (1 - sensitivity), t1))
        return (threshold,
                curve_value(record.axis_false_alarm, record.rtp_false_alarm, threshold),
                curve_value(record.axis_detection, record.rtp_detection, threshold))

    def catalog_thresholds(self, rtp_false_alarm: float,
                           sensitivity: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Per-level thresholds and probabilities over the whole catalog."""
        self._validate_targets(rtp_false_alarm, sensitivity)
        rows = [self.record_threshold(r, rtp_false_alarm, sensitivity) for r in self.curve_set]
        thresholds, pfa, pd = (np.array(col) for col in zip(*rows))
        return thresholds, pfa, pd

    def solve(self, rtp_false_alarm: float, sensitivity: float,
              signal_variances, noise_variances) -> ThresholdResult:
        """
        Thresholds for each (signal variance, noise variance) pair.

        Args:
            rtp_false_alarm: Target false-alarm probability, in (0, 1]
            sensitivity: Blend factor in [0, 1] (1 = false-alarm driven only)
            signal_variances: Signal variance per observation (or scalar)
            noise_variances: Noise variance per observation (or scalar)

        Returns:
            ThresholdResult with one entry per observation

        Raises:
            ConfigError: Invalid targets or mismatched input lengths
        """
        signal_variances, noise_variances = self._broadcast(signal_variances, noise_variances)

        thr_cat, pfa_cat, pd_cat = self.catalog_thresholds(rtp_false_alarm, sensitivity)
        snr_cat = self.curve_set.snr_levels

        with np.errstate(divide='ignore', invalid='ignore'):
            snr_targets = 10 * np.log10(signal_variances / noise_variances)
        # Non-finite SNR (zero signal variance) evaluates at the nearest catalog end
        snr_eval = np.nan_to_num(snr_targets, nan=snr_cat[0], posinf=snr_cat[-1],
                                 neginf=snr_cat[0])

        thresholds = self._interpolate_thresholds(snr_cat, thr_cat, snr_eval)

        pfa = np.interp(snr_eval, snr_cat, pfa_cat, left=np.nan, right=np.nan)
        pd = np.interp(snr_eval, snr_cat, pd_cat, left=np.nan, right=np.nan)
        pfa = _nearest_fill(pfa, snr_cat, pfa_cat, snr_eval)
        pd = _nearest_fill(pd, snr_cat, pd_cat, snr_eval)

        if self.curve_set.detector_type in (DetectorType.ED, DetectorType.ECW):
            thresholds = thresholds * noise_variances
        thresholds[np.isinf(thresholds)] = 0.0

        n_outside = int(np.sum((snr_eval < snr_cat[0]) | (snr_eval > snr_cat[-1])))
        if n_outside:
            logger.debug(f"{n_outside} of {len(snr_eval)} SNR targets outside the catalog "
                         f"[{snr_cat[0]:.0f}, {snr_cat[-1]:.0f}] dB; thresholds extrapolated")

        return ThresholdResult(thresholds=thresholds, rtp_false_alarm=pfa, rtp_detection=pd)

    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_targets(rtp_false_alarm: float, sensitivity: float):
        if not 0 < rtp_false_alarm <= 1:
            raise ConfigError(f"Target false-alarm probability must be in (0, 1], "
                              f"got {rtp_false_alarm}")
        if not 0 <= sensitivity <= 1:
            raise ConfigError(f"Sensitivity must be in [0, 1], got {sensitivity}")

    @staticmethod
    def _broadcast(signal_variances, noise_variances):
        sv = np.atleast_1d(np.asarray(signal_variances, dtype=float)).ravel()
        nv = np.atleast_1d(np.asarray(noise_variances, dtype=float)).ravel()
        if len(sv) != len(nv):
            if len(sv) == 1:
                sv = np.full(len(nv), sv[0])
            elif len(nv) == 1:
                nv = np.full(len(sv), nv[0])
            else:
                raise ConfigError(f"signal_variances ({len(sv)}) and noise_variances "
                                  f"({len(nv)}) have different lengths")
        if np.any(nv <= 0):
            raise ConfigError("noise_variances must be positive")
        return sv, nv

    @staticmethod
    def _interpolate_thresholds(snr_cat: np.ndarray, thr_cat: np.ndarray,
                                snr_targets: np.ndarray) -> np.ndarray:
        valid = np.isfinite(thr_cat)
        if np.sum(valid) >= 2:
            return PchipInterpolator(snr_cat[valid], thr_cat[valid], extrapolate=True)(snr_targets)
        if np.sum(valid) == 1:
            return np.full(len(snr_targets), thr_cat[valid][0])
        return np.full(len(snr_targets), np.nan)
