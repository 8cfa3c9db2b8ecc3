#!/usr/bin/env python3
"""
Neyman-Pearson Detector Shared Constants

================================================================================
PURPOSE
================================================================================
Single source of truth for the numeric limits, search tolerances and default
catalog settings used by the covariance, eigen, performance and threshold
modules.

================================================================================
PRECISION FACTOR
================================================================================
The precision factor scales both the truncation point of the test-statistic
axis and the number of samples within the main lobe of the PDF. Empirically
documented right-tail probability errors:

    precision 1.0  ->  ~1e-5
    precision 1.5  ->  ~1e-8   (default)
    precision 2.0  ->  ~1e-12

================================================================================
MEMORY LIMITS
================================================================================
Covariance matrices are capped at 10,000 x 10,000 entries. Characteristic
function evaluation and its inverse transform are processed in blocks whose
size is derived from a fixed byte budget (50 MiB).
"""

from typing import Tuple

# =============================================================================
# COVARIANCE / EIGEN
# =============================================================================

MAX_KERNEL_LENGTH = 10000          # Max covariance dimension [samples]
EIGENVALUE_FLOOR = 1e-10           # Minimum normalised eigenvalue
MIN_SHRINKAGE_OBSERVATIONS = 3     # Below this, shrinkage falls back to sample covariance
MIN_OBSERVATIONS = 2

# Leave-one-out shrinkage intensity grid
LOOC_ALPHA_GRID_SIZE = 21

# =============================================================================
# PERFORMANCE CURVES
# =============================================================================

VALID_PRECISION_FACTORS: Tuple[float, ...] = (1.0, 1.5, 2.0)
DEFAULT_PRECISION_FACTOR = 1.5
DEFAULT_AMPLITUDE_RATIO = 1e4
DEFAULT_POINTS_IN_LOBE = 250
DEFAULT_MAX_BLOCK_BYTES = 50 * 1024 ** 2
DEFAULT_MAX_ITERATIONS = 100

# Default catalog of SNR levels [dB]
DEFAULT_SNR_LEVELS: Tuple[float, ...] = tuple(float(s) for s in range(-50, 51))
REFERENCE_NOISE_VARIANCE = 1.0

# Energy detector time-limit search
ED_GRID_POINTS = 11
ED_TOLERANCE = 1e-5

# Estimator-correlator limit searches
EC_GRID_POINTS = 501
EC_FREQUENCY_TOLERANCE = 1e-5
EC_TIME_TOLERANCE = 1 + 1e-2
EC_FREQUENCY_GROWTH = 5
EC_INITIAL_FREQUENCY_FACTOR = 20   # fmax ~ 20/tmean
EC_TIME_FREQUENCY_PRODUCT = 1000   # tmax ~ 1000/fmax

# =============================================================================
# THRESHOLDS
# =============================================================================

DETECTION_RTP_TARGET = 0.99999

# =============================================================================
# DETECTION RUN
# =============================================================================

DC_WINDOW_DURATION = 10.0          # [s]
BUTTERWORTH_ORDER = 4
PEAK_SMOOTHING_DIVISOR = 30
NOISE_HISTOGRAM_BINS = 100
NOISE_HISTOGRAM_LEVEL = 0.1        # Fraction of peak count defining the noise edge

# Raw score matrix cap [MB] at single precision
MAX_RAW_SCORE_MB = 1024
RAW_SCORE_BYTES_PER_SAMPLE = 4
