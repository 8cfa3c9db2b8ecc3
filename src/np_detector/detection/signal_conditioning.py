#!/usr/bin/env python3
"""
Signal Conditioning Helpers

Resampling, band filtering, DC-offset estimation and moving-RMS smoothing
shared by the covariance estimator and the detection run. Every helper
returns a new array; inputs are never modified in place.
"""

import logging
from math import gcd
from typing import Optional, Tuple

import numpy as np
from scipy import signal as scipy_signal

from .np_constants import BUTTERWORTH_ORDER

logger = logging.getLogger(__name__)


def resample_ratio(from_rate: float, to_rate: float) -> Tuple[int, int]:
    """
    Integer (up, down) factors for polyphase resampling.

    Args:
        from_rate: Original sample rate [Hz]
        to_rate: Target sample rate [Hz]

    Returns:
        (up, down) reduced by their greatest common divisor
    """
    from_rate = int(round(from_rate))
    to_rate = int(round(to_rate))
    k = gcd(from_rate, to_rate)
    return to_rate // k, from_rate // k


def resample(x: np.ndarray, from_rate: float, to_rate: float, axis: int = -1) -> np.ndarray:
    """Polyphase resampling along axis (no-op copy when rates match)."""
    up, down = resample_ratio(from_rate, to_rate)
    if up == down:
        return np.array(x, dtype=float, copy=True)
    return scipy_signal.resample_poly(np.asarray(x, dtype=float), up, down, axis=axis)


def normalize_rows(x: np.ndarray) -> np.ndarray:
    """Divide each row by its standard deviation (ddof=1)."""
    x = np.asarray(x, dtype=float)
    std = np.std(x, axis=1, ddof=1, keepdims=True)
    std[std == 0] = 1.0
    return x / std


def design_band_filter(sample_rate: float, cutoff_freqs) -> np.ndarray:
    """
    Butterworth filter in second-order sections.

    A lower cutoff of 0 gives a lowpass, an upper cutoff at or above Nyquist
    gives a highpass, anything else a bandpass.

    Args:
        sample_rate: Sample rate [Hz]
        cutoff_freqs: (low, high) band edges [Hz]

    Returns:
        SOS array, or an empty array when the band covers the whole spectrum
    """
    nyquist = sample_rate / 2
    low, high = float(cutoff_freqs[0]), float(cutoff_freqs[1])
    has_low = low > 0
    has_high = 0 < high < nyquist

    if has_low and has_high:
        return scipy_signal.butter(BUTTERWORTH_ORDER, [low, high], btype='bandpass',
                                   fs=sample_rate, output='sos')
    if has_low:
        return scipy_signal.butter(BUTTERWORTH_ORDER, low, btype='highpass',
                                   fs=sample_rate, output='sos')
    if has_high:
        return scipy_signal.butter(BUTTERWORTH_ORDER, high, btype='lowpass',
                                   fs=sample_rate, output='sos')
    return np.empty((0, 6))


def apply_sos(x: np.ndarray, sos: Optional[np.ndarray], mode: str = 'filtfilt',
              axis: int = -1) -> np.ndarray:
    """
    Apply second-order sections along axis.

    Args:
        x: Input data
        sos: Filter sections (None or empty means no filtering)
        mode: 'filter' (causal) or 'filtfilt' (zero phase)
        axis: Time axis

    Returns:
        Filtered copy of x
    """
    x = np.asarray(x, dtype=float)
    if sos is None or len(sos) == 0:
        return x.copy()
    if mode == 'filter':
        return scipy_signal.sosfilt(sos, x, axis=axis)
    if mode == 'filtfilt':
        return scipy_signal.sosfiltfilt(sos, x, axis=axis)
    raise ValueError(f"Unknown filter mode: {mode}")


def impulse_response(sos: np.ndarray, length: int) -> np.ndarray:
    """Impulse response of a filter, truncated to length samples."""
    impulse = np.zeros(length)
    impulse[0] = 1.0
    return scipy_signal.sosfilt(sos, impulse)


def dc_offsets(x: np.ndarray, window_length: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean of consecutive non-overlapping windows.

    Args:
        x: 1-D signal
        window_length: Window length [samples], clipped to [1, len(x)]

    Returns:
        (offsets, centre_indices) with 0-based window centres
    """
    x = np.asarray(x, dtype=float)
    window_length = max(min(int(round(abs(window_length))), len(x)), 1)
    n_windows = len(x) // window_length
    centres = np.arange(n_windows) * window_length + int(np.floor(window_length / 2 + 0.5))
    offsets = x[:window_length * n_windows].reshape(n_windows, window_length).mean(axis=1)
    return offsets, centres


def nearest_offset(offsets: np.ndarray, centres: np.ndarray, index: int) -> float:
    """DC offset of the window whose centre is nearest to index."""
    return float(offsets[int(np.argmin(np.abs(centres - index)))])


def moving_rms(x: np.ndarray, window_length: int) -> np.ndarray:
    """
    Centred moving RMS with edge samples repeated as padding.

    The output has the same length as x.
    """
    x = np.asarray(x, dtype=float)
    window_length = max(int(window_length), 1)
    if window_length == 1:
        return np.abs(x)
    pad_before = int(np.ceil((window_length - 1) / 2))
    pad_after = window_length - 1 - pad_before
    padded = np.concatenate([np.full(pad_before, x[0]), x, np.full(pad_after, x[-1])])
    csum = np.concatenate([[0.0], np.cumsum(padded ** 2)])
    power = (csum[window_length:] - csum[:-window_length]) / window_length
    return np.sqrt(np.maximum(power, 0.0))
