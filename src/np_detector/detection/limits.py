#!/usr/bin/env python3
"""
Numeric Limit Searches and Characteristic-Function Inversion

================================================================================
PURPOSE
================================================================================
The PDF of each detector's test statistic is sampled on a finite axis. The
searches in this module find where that axis can be truncated. They are
bounded loops returning LimitSearchResult(value, converged, iterations);
running out of iterations is not an error, the caller decides what to do
with a non-converged estimate.

================================================================================
ENERGY DETECTOR: TIME LIMIT
================================================================================
The statistic is weight * X where X is non-central chi-squared with ndof
degrees of freedom and non-centrality ncp. Starting from

    tmax0 = 1.5 * (ndof + ncp) + 10 * sqrt(2*ndof + 4*ncp)

an 11-point grid on [0, tmax0 * weight] is repeatedly narrowed around the
point whose right-tail probability is closest to 1/amplitude_ratio.

================================================================================
ESTIMATOR-CORRELATOR: CHARACTERISTIC FUNCTION
================================================================================
The statistic is sum_k w_k Y_k^2 with Y_k independent standard normal.
Its characteristic function (in cycles, f) is

    K(f) = prod_k (1 - 4*pi*i*w_k*f)^(-1/2)

evaluated here as exp(-0.5 * sum_k Log(1 - 4*pi*i*w_k*f)), which equals the
product of principal square roots because every factor has positive real
part. |K(f)| decreases monotonically with |f|.

The PDF is recovered by discrete inversion over f in [-fmax, fmax]:

    p(t) = | sum_f K(f) * df * exp(-2*pi*i*f*t) |

For a uniform t grid this is a chirp-z transform of K(f)*df*exp(-2*pi*i*f*t0),
so the full sum costs O((Nf + Nt) log(Nf + Nt)) instead of O(Nf * Nt).

Frequency and time points are processed in blocks sized from a byte budget
(max_block_bytes) to bound peak memory.

================================================================================
ESTIMATOR-CORRELATOR: SEARCHES
================================================================================
FrequencyLimit:
    coarse  fmax *= 5 until |K(fmax)| < 1/amplitude_ratio
    fine    501-point grid on [0, fmax], narrowed around the point closest
            to 1/amplitude_ratio until |error| <= 1e-5
TimeLimit (given fmax):
    peak    501-point grid on [0, 1000/fmax], zoomed on the PDF maximum
            until successive maxima differ by less than 1 %
    tail    501-point grid on [t_peak, 1000/fmax], zoomed on the point where
            p(t) = p_max/amplitude_ratio. The PDF is not guaranteed to be
            monotonic beyond the peak, so the loop also stops when the grid
            no longer straddles the target (no sign crossing).
"""

import logging
from typing import Tuple

import numpy as np
from scipy import signal as scipy_signal
from scipy import stats

from .interfaces.data_models import LimitSearchResult
from .np_constants import (
    DEFAULT_AMPLITUDE_RATIO,
    DEFAULT_MAX_BLOCK_BYTES,
    DEFAULT_MAX_ITERATIONS,
    EC_FREQUENCY_GROWTH,
    EC_FREQUENCY_TOLERANCE,
    EC_INITIAL_FREQUENCY_FACTOR,
    EC_GRID_POINTS,
    EC_TIME_FREQUENCY_PRODUCT,
    EC_TIME_TOLERANCE,
    ED_GRID_POINTS,
    ED_TOLERANCE,
)

logger = logging.getLogger(__name__)

_BYTES_PER_COMPLEX = 16


# =============================================================================
# CHI-SQUARED HELPERS
# =============================================================================

def chi2_pdf(x: np.ndarray, ndof: float, ncp: float) -> np.ndarray:
    """Density of the (non-central) chi-squared distribution."""
    if ncp == 0:
        return stats.chi2.pdf(x, ndof)
    return stats.ncx2.pdf(x, ndof, ncp)


def chi2_sf(x: np.ndarray, ndof: float, ncp: float) -> np.ndarray:
    """Right-tail probability of the (non-central) chi-squared distribution."""
    if ncp == 0:
        return stats.chi2.sf(x, ndof)
    return stats.ncx2.sf(x, ndof, ncp)


def _narrow(grid: np.ndarray, index: int) -> Tuple[float, float]:
    """Bounds of the neighbours of grid[index]."""
    return grid[max(index - 1, 0)], grid[min(index + 1, len(grid) - 1)]


def energy_detector_time_limit(ndof: float, ncp: float, weight: float,
                               amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO,
                               max_iterations: int = DEFAULT_MAX_ITERATIONS) -> LimitSearchResult:
    """
    Statistic value where the right-tail probability falls to 1/amplitude_ratio.

    Args:
        ndof: Degrees of freedom
        ncp: Non-centrality parameter
        weight: Scale factor of the statistic
        amplitude_ratio: Ratio between the RTP maximum (1) and the target
        max_iterations: Iteration cap

    Returns:
        LimitSearchResult
    """
    rtp_target = 1.0 / amplitude_ratio
    pdf_mean = ndof + ncp
    pdf_std = np.sqrt(2 * ndof + 4 * ncp)
    t1, t2 = 0.0, (1.5 * pdf_mean + 10 * pdf_std) * weight

    err = np.inf
    iterations = 0
    value = t2
    while err > ED_TOLERANCE and iterations < max_iterations:
        t = np.linspace(t1, t2, ED_GRID_POINTS)
        rtp = chi2_sf(t / weight, ndof, ncp)
        i_min = int(np.argmin(np.abs(rtp - rtp_target)))
        value = t[i_min]
        err = abs(rtp_target - rtp[i_min])
        t1, t2 = _narrow(t, i_min)
        iterations += 1

    converged = err <= ED_TOLERANCE
    logger.debug(f"ED time limit: t={value:.6g} after {iterations} iterations "
                 f"(converged={converged})")
    return LimitSearchResult(value=float(value), converged=converged, iterations=iterations)


# =============================================================================
# CHARACTERISTIC FUNCTION
# =============================================================================

def _block_size(other_dim: int, max_block_bytes: int) -> int:
    return max(1, int(round(max_block_bytes / (_BYTES_PER_COMPLEX * max(other_dim, 1)))))


def characteristic_function(weights: np.ndarray, freqs: np.ndarray,
                            max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES) -> np.ndarray:
    """
    K(f) = prod_k (1 - 4*pi*i*w_k*f)^(-1/2), evaluated in frequency blocks.
    """
    weights = np.asarray(weights, dtype=float).ravel()
    freqs = np.asarray(freqs, dtype=float).ravel()
    out = np.empty(len(freqs), dtype=complex)
    step = _block_size(len(weights), max_block_bytes)
    for start in range(0, len(freqs), step):
        f = freqs[start:start + step]
        z = 1 - 4j * np.pi * np.outer(weights, f)
        out[start:start + step] = np.exp(-0.5 * np.sum(np.log(z), axis=0))
    return out


def characteristic_magnitude(weights: np.ndarray, freqs: np.ndarray,
                             max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES) -> np.ndarray:
    """|K(f)|, computed from log-magnitudes (no complex arithmetic)."""
    weights = np.asarray(weights, dtype=float).ravel()
    freqs = np.asarray(freqs, dtype=float).ravel()
    out = np.empty(len(freqs))
    step = _block_size(len(weights), max_block_bytes)
    for start in range(0, len(freqs), step):
        f = freqs[start:start + step]
        out[start:start + step] = np.exp(
            -0.25 * np.sum(np.log1p((4 * np.pi * np.outer(weights, f)) ** 2), axis=0))
    return out


def invert_characteristic(k: np.ndarray, f0: float, df: float, t0: float, dt: float,
                          n_time: int,
                          max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES) -> np.ndarray:
    """
    p(t_m) = |sum_n K_n * df * exp(-2*pi*i*f_n*t_m)| on a uniform grid.

    Args:
        k: Characteristic function at f_n = f0 + n*df
        f0: First frequency
        df: Frequency step
        t0: First statistic value
        dt: Statistic step
        n_time: Number of statistic values
        max_block_bytes: Memory budget per transform

    Returns:
        PDF samples (length n_time)
    """
    k = np.asarray(k, dtype=complex)
    n_freq = len(k)
    freqs = f0 + np.arange(n_freq) * df
    w = np.exp(-2j * np.pi * df * dt)
    step = _block_size(n_freq, max_block_bytes)
    pdf = np.empty(n_time)
    for start in range(0, n_time, step):
        m = min(step, n_time - start)
        t_start = t0 + start * dt
        x = k * df * np.exp(-2j * np.pi * freqs * t_start)
        pdf[start:start + m] = np.abs(scipy_signal.czt(x, m=m, w=w, a=1.0))
    return pdf


# =============================================================================
# ESTIMATOR-CORRELATOR SEARCHES
# =============================================================================

def frequency_limit_search(weights: np.ndarray, tmean: float,
                           amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO,
                           max_iterations: int = DEFAULT_MAX_ITERATIONS,
                           max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES) -> LimitSearchResult:
    """
    Frequency where |K(f)| has decayed to 1/amplitude_ratio of its peak.

    Args:
        weights: Weights of the quadratic form
        tmean: Mean of the statistic (sets the initial frequency 20/tmean)
        amplitude_ratio: Peak-to-limit ratio
        max_iterations: Cap applied to each phase
        max_block_bytes: Memory budget

    Returns:
        LimitSearchResult (iterations counts both phases)
    """
    k_target = 1.0 / amplitude_ratio
    f2 = EC_INITIAL_FREQUENCY_FACTOR / tmean
    coarse = 0
    while characteristic_magnitude(weights, [f2], max_block_bytes)[0] >= k_target \
            and coarse < max_iterations:
        f2 *= EC_FREQUENCY_GROWTH
        coarse += 1
    coarse_converged = coarse < max_iterations

    f1 = 0.0
    err = np.inf
    fine = 0
    value = f2
    while err > EC_FREQUENCY_TOLERANCE and fine < max_iterations:
        f = np.linspace(f1, f2, EC_GRID_POINTS)
        k = characteristic_magnitude(weights, f, max_block_bytes)
        i_min = int(np.argmin(np.abs(k - k_target)))
        value = f[i_min]
        err = abs(k_target - k[i_min])
        f1, f2 = _narrow(f, i_min)
        fine += 1

    converged = coarse_converged and err <= EC_FREQUENCY_TOLERANCE
    logger.debug(f"EC frequency limit: f={value:.6g} after {coarse}+{fine} iterations "
                 f"(converged={converged})")
    return LimitSearchResult(value=float(value), converged=converged,
                             iterations=coarse + fine)


def time_limit_search(weights: np.ndarray, fmax: float,
                      amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO,
                      max_iterations: int = DEFAULT_MAX_ITERATIONS,
                      max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES) -> LimitSearchResult:
    """
    Statistic value where the PDF has decayed to 1/amplitude_ratio of its peak.

    Args:
        weights: Weights of the quadratic form
        fmax: Upper frequency of the inversion
        amplitude_ratio: Peak-to-limit ratio
        max_iterations: Cap applied to each phase
        max_block_bytes: Memory budget

    Returns:
        LimitSearchResult (iterations counts both phases)
    """
    tmax = EC_TIME_FREQUENCY_PRODUCT / fmax
    fres = 1.0 / tmax
    n_freq = int(round(2 * fmax / fres)) + 1
    f0 = -fmax
    df = 2 * fmax / (n_freq - 1)
    k = characteristic_function(weights, f0 + np.arange(n_freq) * df, max_block_bytes)

    def pdf_on(t1: float, t2: float) -> Tuple[np.ndarray, np.ndarray]:
        t = np.linspace(t1, t2, EC_GRID_POINTS)
        p = invert_characteristic(k, f0, df, t1, t[1] - t[0], EC_GRID_POINTS,
                                  max_block_bytes)
        return t, p

    # Peak of the PDF
    t1, t2 = 0.0, tmax
    p_max0 = 0.0
    err = np.inf
    peak_iterations = 0
    t_peak, p_max = 0.0, 0.0
    while err > EC_TIME_TOLERANCE and peak_iterations < max_iterations:
        t, p = pdf_on(t1, t2)
        i_max = int(np.argmax(p))
        t_peak, p_max = t[i_max], p[i_max]
        t1, t2 = _narrow(t, i_max)
        err = np.inf if p_max0 == 0 or p_max == 0 else max(p_max / p_max0, p_max0 / p_max)
        p_max0 = p_max
        peak_iterations += 1
    peak_converged = err <= EC_TIME_TOLERANCE

    # Tail beyond the peak
    p_target = p_max / amplitude_ratio
    t1, t2 = t_peak, tmax
    err = np.inf
    sign_crossing = True
    tail_iterations = 0
    value = tmax
    while err > EC_TIME_TOLERANCE and sign_crossing and tail_iterations < max_iterations:
        t, p = pdf_on(t1, t2)
        vec = p - p_target
        i_min = int(np.argmin(np.abs(vec)))
        value = t[i_min]
        p_min = p[i_min]
        t1, t2 = _narrow(t, i_min)
        err = np.inf if p_min == 0 else max(p_target / p_min, p_min / p_target)
        sign_crossing = len(np.unique(np.sign(vec))) > 1
        tail_iterations += 1

    converged = peak_converged and tail_iterations < max_iterations
    logger.debug(f"EC time limit: t={value:.6g} (peak at {t_peak:.6g}) after "
                 f"{peak_iterations}+{tail_iterations} iterations (converged={converged})")
    return LimitSearchResult(value=float(value), converged=converged,
                             iterations=peak_iterations + tail_iterations)
