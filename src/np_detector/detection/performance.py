#!/usr/bin/env python3
"""
Performance Curve Engine - Detector PDFs and Right-Tail Probabilities

================================================================================
PURPOSE
================================================================================
For every SNR level of a catalog, compute the PDF and right-tail probability
(RTP) of the detector's test statistic under both hypotheses:

    false alarm  H0: noise only
    detection    H1: signal + noise

ThresholdSolver later inverts these curves to obtain Neyman-Pearson
thresholds. Curves are computed at a reference noise variance of 1 and a
signal variance of 10^(SNR/10).

================================================================================
ENERGY DETECTOR (WeightedChiSquared)
================================================================================
    T = sum_n x_n^2 ~ weight * chi2(ndof, ncp)
    weight_d  = signal_var + noise_var
    weight_fa = noise_var

Band filtering reduces the number of independent samples. With q the
normalised passband width, variances are divided by q and ndof = round(N*q).

The axis is sampled with round(precision*250) points across ten standard
deviations of the chi-squared lobe and truncated at precision * tmax, where
tmax comes from energy_detector_time_limit.

================================================================================
ESTIMATOR-CORRELATOR (GaussianQuadraticForm)
================================================================================
    T = sum_k w_k Y_k^2,  Y_k ~ N(0, 1) independent

    white noise     w_d = lambda*s          w_fa = lambda*s*n/(lambda*s + n)
    coloured noise  w_d = lambda*s/n        w_fa = (lambda*s/n)/(lambda*s/n + 1)

with lambda the normalised eigenvalues, s the signal variance and n the
noise variance. The PDF is obtained by inverting the characteristic function
(see limits.py):

    fmax = precision * frequency_limit
    tmax = precision * time_limit(fmax)
    df   = 1/tmax,  dt = 1/(10*fmax)

================================================================================
COMMON AXIS
================================================================================
Optionally both hypotheses are resampled onto one axis: the false-alarm axis,
one more step, then the detection axis beyond it. Detection curves are
extrapolated linearly; false-alarm curves are zero outside their range.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import interp1d

from ..errors import (
    ConfigError,
    Diagnostics,
    PrecisionWarning,
    ProgressCallback,
    report_progress,
)
from .interfaces.data_models import (
    DetectorType,
    Hypothesis,
    LimitSearchResult,
    NoiseType,
    PerformanceCurveSet,
    PerformanceRecord,
)
from .interfaces.performance_model import TestStatisticDistribution
from .limits import (
    characteristic_function,
    chi2_pdf,
    chi2_sf,
    energy_detector_time_limit,
    frequency_limit_search,
    invert_characteristic,
    time_limit_search,
)
from .np_constants import (
    DEFAULT_AMPLITUDE_RATIO,
    DEFAULT_MAX_BLOCK_BYTES,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_POINTS_IN_LOBE,
    DEFAULT_PRECISION_FACTOR,
    DEFAULT_SNR_LEVELS,
    REFERENCE_NOISE_VARIANCE,
    VALID_PRECISION_FACTORS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceConfig:
    """
    Options for PerformanceCurveEngine.

    Attributes:
        precision_factor: 1, 1.5 or 2 (RTP error ~1e-5, 1e-8, 1e-12)
        amplitude_ratio: Peak-to-truncation ratio of the searched limits
        points_in_lobe: Energy-detector samples across the main lobe (before scaling)
        max_block_bytes: Memory budget of one characteristic-function block
        max_iterations: Iteration cap of each limit search phase
        interpolate: Resample both hypotheses onto a common axis
        snr_levels: Catalog SNR levels [dB], strictly ascending
    """
    precision_factor: float = DEFAULT_PRECISION_FACTOR
    amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO
    points_in_lobe: int = DEFAULT_POINTS_IN_LOBE
    max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    interpolate: bool = True
    snr_levels: Tuple[float, ...] = field(default=DEFAULT_SNR_LEVELS)

    def __post_init__(self):
        if float(self.precision_factor) not in VALID_PRECISION_FACTORS:
            raise ConfigError(f"precision_factor must be one of {VALID_PRECISION_FACTORS}, "
                              f"got {self.precision_factor}")
        if self.amplitude_ratio <= 1:
            raise ConfigError("amplitude_ratio must be greater than 1")
        if self.points_in_lobe < 1 or self.max_iterations < 1 or self.max_block_bytes < 1:
            raise ConfigError("points_in_lobe, max_iterations and max_block_bytes must be positive")
        levels = tuple(float(s) for s in self.snr_levels)
        if not levels or np.any(np.diff(levels) <= 0):
            raise ConfigError("snr_levels must be non-empty and strictly ascending")
        object.__setattr__(self, 'snr_levels', levels)
        object.__setattr__(self, 'precision_factor', float(self.precision_factor))


def passband_fraction(cutoff_freqs_normalized: Sequence[float]) -> float:
    """Width of the passband as a fraction of the Nyquist band."""
    if len(cutoff_freqs_normalized) != 2:
        raise ConfigError("cutoff_freqs_normalized must have two elements")
    f1, f2 = (float(f) for f in cutoff_freqs_normalized)
    if not (0 <= f1 <= 1 and 0 <= f2 <= 1):
        raise ConfigError(f"Normalised cutoff frequencies must lie in [0, 1], got {(f1, f2)}")
    q = abs(f2 - f1)
    if q == 0:
        raise ConfigError("Cutoff frequencies define an empty passband")
    return q


def estimator_correlator_weights(eigenvalues: np.ndarray, signal_var: float, noise_var: float,
                                 noise_type: NoiseType, hypothesis: Hypothesis) -> np.ndarray:
    """Weights of the quadratic form for one hypothesis."""
    eigenvalues = np.asarray(eigenvalues, dtype=float).ravel()
    if NoiseType(noise_type) is NoiseType.WHITE:
        lam = eigenvalues * signal_var
        alpha = lam * noise_var / (lam + noise_var)
    else:
        lam = eigenvalues * signal_var / noise_var
        alpha = lam / (lam + 1)
    return lam if Hypothesis(hypothesis) is Hypothesis.DETECTION else alpha


def estimator_correlator_mean(n_weights: int, signal_var: float, noise_var: float,
                              noise_type: NoiseType, hypothesis: Hypothesis) -> float:
    """Approximate mean of the statistic (unit eigenvalues)."""
    detection = Hypothesis(hypothesis) is Hypothesis.DETECTION
    if NoiseType(noise_type) is NoiseType.WHITE:
        per_dof = signal_var if detection else signal_var * noise_var / (signal_var + noise_var)
    else:
        per_dof = signal_var / noise_var if detection else signal_var / (signal_var + noise_var)
    return n_weights * per_dof


class WeightedChiSquared(TestStatisticDistribution):
    """weight * (non-central) chi-squared(ndof, ncp)."""

    def __init__(self, ndof: int, ncp: float, weight: float,
                 amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 points_in_lobe: int = DEFAULT_POINTS_IN_LOBE):
        self.ndof = ndof
        self.ncp = ncp
        self.weight = weight
        self.amplitude_ratio = amplitude_ratio
        self.max_iterations = max_iterations
        self.points_in_lobe = points_in_lobe
        self.searches: Dict[str, LimitSearchResult] = {}

    def upper_limit(self) -> LimitSearchResult:
        if 'time' not in self.searches:
            self.searches['time'] = energy_detector_time_limit(
                self.ndof, self.ncp, self.weight, self.amplitude_ratio, self.max_iterations)
        return self.searches['time']

    def curves(self, precision_factor: float):
        tmax = precision_factor * self.upper_limit().value
        n_points = int(round(precision_factor * self.points_in_lobe))
        pdf_std = np.sqrt(2 * self.ndof + 4 * self.ncp)
        tres = self.weight * 10 * pdf_std / n_points
        n_time = int(round(tmax / tres)) + 1
        axis = np.arange(n_time) * tres
        pdf = self.density(axis)
        rtp = np.cumsum((pdf * tres)[::-1])[::-1]
        return axis, pdf, rtp

    def density(self, t):
        return chi2_pdf(np.asarray(t, dtype=float) / self.weight, self.ndof, self.ncp) / self.weight

    def right_tail(self, t):
        return chi2_sf(np.asarray(t, dtype=float) / self.weight, self.ndof, self.ncp)


class GaussianQuadraticForm(TestStatisticDistribution):
    """
    sum_k w_k Y_k^2 with independent standard normal Y_k.

    The sampled grid for each precision factor is computed once;
    density() and right_tail() evaluate on the grid of the configured
    precision.
    """

    def __init__(self, weights: np.ndarray, tmean: float,
                 amplitude_ratio: float = DEFAULT_AMPLITUDE_RATIO,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 max_block_bytes: int = DEFAULT_MAX_BLOCK_BYTES,
                 precision_factor: float = DEFAULT_PRECISION_FACTOR):
        self.weights = np.asarray(weights, dtype=float).ravel()
        self.tmean = tmean
        self.amplitude_ratio = amplitude_ratio
        self.max_iterations = max_iterations
        self.max_block_bytes = max_block_bytes
        self.precision_factor = float(precision_factor)
        self.searches: Dict[str, LimitSearchResult] = {}
        # precision_factor -> (k, f0, fres, axis, pdf, rtp)
        self._grids: Dict[float, tuple] = {}

    def frequency_limit(self) -> LimitSearchResult:
        if 'frequency' not in self.searches:
            self.searches['frequency'] = frequency_limit_search(
                self.weights, self.tmean, self.amplitude_ratio,
                self.max_iterations, self.max_block_bytes)
        return self.searches['frequency']

    def time_limit(self, fmax: float) -> LimitSearchResult:
        result = time_limit_search(self.weights, fmax, self.amplitude_ratio,
                                   self.max_iterations, self.max_block_bytes)
        self.searches['time'] = result
        return result

    def upper_limit(self) -> LimitSearchResult:
        return self.time_limit(self.frequency_limit().value)

    def _grid(self, precision_factor: float) -> tuple:
        precision_factor = float(precision_factor)
        if precision_factor in self._grids:
            return self._grids[precision_factor]

        fmax = precision_factor * self.frequency_limit().value
        tmax = precision_factor * self.time_limit(fmax).value
        fres = 1.0 / tmax
        tres = 1.0 / (10 * fmax)
        n_freq = int(round(2 * fmax / fres)) + 1
        n_time = int(round(tmax / tres)) + 1
        freqs = np.arange(n_freq) * fres - fmax
        k = characteristic_function(self.weights, freqs, self.max_block_bytes)

        axis = np.arange(n_time) * tres
        pdf = invert_characteristic(k, -fmax, fres, 0.0, tres, n_time, self.max_block_bytes)
        rtp = np.cumsum((pdf * tres)[::-1])[::-1]
        self._grids[precision_factor] = (k, -fmax, fres, axis, pdf, rtp)
        return self._grids[precision_factor]

    def curves(self, precision_factor: float):
        _, _, _, axis, pdf, rtp = self._grid(precision_factor)
        return axis, pdf, rtp

    def density(self, t):
        k, f0, df, _, _, _ = self._grid(self.precision_factor)
        t = np.atleast_1d(np.asarray(t, dtype=float))
        freqs = f0 + np.arange(len(k)) * df
        return np.array([abs(np.sum(k * df * np.exp(-2j * np.pi * freqs * ti))) for ti in t])

    def right_tail(self, t):
        axis, _, rtp = self.curves(self.precision_factor)
        return np.interp(np.asarray(t, dtype=float), axis, rtp, left=1.0, right=0.0)


class PerformanceCurveEngine:
    """
    Build performance records and catalogs.

    Usage:
        engine = PerformanceCurveEngine(PerformanceConfig(precision_factor=1))
        curves = engine.characterise(DetectorType.ED, (0.0, 1.0), n_variables=200)
    """

    def __init__(self, config: Optional[PerformanceConfig] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config or PerformanceConfig()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.progress = progress

    # -------------------------------------------------------------------------
    # Single records
    # -------------------------------------------------------------------------

    def energy_detector(self, n_variables: int, ncp: float, signal_var: float,
                        noise_var: float, cutoff_freqs_normalized) -> PerformanceRecord:
        """
        Energy-detector record for one signal/noise variance pair.

        Args:
            n_variables: Number of samples in the kernel
            ncp: Non-centrality parameter
            signal_var: Signal variance
            noise_var: Noise variance
            cutoff_freqs_normalized: Band edges normalised to Nyquist

        Returns:
            PerformanceRecord
        """
        cfg = self.config
        if n_variables < 1:
            raise ConfigError("n_variables must be positive")
        if signal_var < 0 or noise_var <= 0:
            raise ConfigError("Variances must be non-negative (noise variance positive)")
        q = passband_fraction(cutoff_freqs_normalized)
        ndof = int(round(n_variables * q))
        if ndof < 1:
            raise ConfigError(f"Passband {q:.3g} leaves no degrees of freedom for N={n_variables}")
        s, n = signal_var / q, noise_var / q

        hypotheses = {}
        for hypothesis, weight in ((Hypothesis.FALSE_ALARM, n), (Hypothesis.DETECTION, s + n)):
            dist = WeightedChiSquared(ndof, ncp, weight, cfg.amplitude_ratio,
                                      cfg.max_iterations, cfg.points_in_lobe)
            hypotheses[hypothesis] = dist.curves(cfg.precision_factor)
            self._check_searches(dist.searches, hypothesis, signal_var, noise_var)

        return self._record(DetectorType.ED, signal_var, noise_var, n_variables,
                            cutoff_freqs_normalized, hypotheses)

    def estimator_correlator(self, eigenvalues: np.ndarray, signal_var: float,
                             noise_var: float, noise_type: NoiseType,
                             cutoff_freqs_normalized) -> PerformanceRecord:
        """
        Estimator-correlator record for one signal/noise variance pair.

        Args:
            eigenvalues: Normalised signal eigenvalues
            signal_var: Signal variance
            noise_var: Noise variance
            noise_type: NoiseType.WHITE (ecw) or NoiseType.COLORED (ecc)
            cutoff_freqs_normalized: Band edges normalised to Nyquist

        Returns:
            PerformanceRecord
        """
        cfg = self.config
        try:
            noise_type = NoiseType(noise_type)
        except ValueError:
            raise ConfigError(f"Unsupported noise type: {noise_type!r}")
        eigenvalues = np.asarray(eigenvalues, dtype=float).ravel()
        if eigenvalues.size == 0:
            raise ConfigError("eigenvalues must not be empty")
        if np.any(eigenvalues < 0):
            raise ConfigError("eigenvalues must be non-negative")
        if signal_var <= 0 or noise_var <= 0:
            raise ConfigError("Variances must be positive")
        passband_fraction(cutoff_freqs_normalized)

        hypotheses = {}
        for hypothesis in (Hypothesis.FALSE_ALARM, Hypothesis.DETECTION):
            weights = estimator_correlator_weights(eigenvalues, signal_var, noise_var,
                                                   noise_type, hypothesis)
            tmean = estimator_correlator_mean(len(weights), signal_var, noise_var,
                                              noise_type, hypothesis)
            dist = GaussianQuadraticForm(weights, tmean, cfg.amplitude_ratio,
                                         cfg.max_iterations, cfg.max_block_bytes,
                                         cfg.precision_factor)
            hypotheses[hypothesis] = dist.curves(cfg.precision_factor)
            self._check_searches(dist.searches, hypothesis, signal_var, noise_var)

        detector_type = DetectorType.ECW if noise_type is NoiseType.WHITE else DetectorType.ECC
        return self._record(detector_type, signal_var, noise_var, len(eigenvalues),
                            cutoff_freqs_normalized, hypotheses)

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def characterise(self, detector_type: DetectorType, cutoff_freqs_normalized,
                     n_variables: Optional[int] = None,
                     eigenvalues: Optional[np.ndarray] = None,
                     ncp: float = 0.0) -> PerformanceCurveSet:
        """
        Build the performance catalog over the configured SNR levels.

        Args:
            detector_type: 'ed', 'ecw' or 'ecc'
            cutoff_freqs_normalized: Band edges normalised to Nyquist
            n_variables: Kernel length (energy detector)
            eigenvalues: Normalised signal eigenvalues (estimator-correlator)
            ncp: Non-centrality parameter (energy detector)

        Returns:
            PerformanceCurveSet ordered by ascending SNR
        """
        try:
            detector_type = DetectorType(detector_type)
        except ValueError:
            raise ConfigError(f"Unsupported detector type: {detector_type!r}")
        if detector_type is DetectorType.ED and n_variables is None:
            raise ConfigError("The energy detector requires n_variables")
        if detector_type.is_estimator_correlator and eigenvalues is None:
            raise ConfigError(f"Detector '{detector_type.value}' requires eigenvalues")

        levels = self.config.snr_levels
        logger.info(f"Characterising {detector_type.value.upper()} performance over "
                    f"{len(levels)} SNR levels ({levels[0]:.0f} to {levels[-1]:.0f} dB)")
        noise_var = REFERENCE_NOISE_VARIANCE
        records = []
        for i, snr in enumerate(levels):
            report_progress(self.progress, i / len(levels),
                            f"Computing {detector_type.value.upper()} performance (SNR = {snr:.1f} dB)")
            signal_var = noise_var * 10 ** (snr / 10)
            if detector_type is DetectorType.ED:
                record = self.energy_detector(n_variables, ncp, signal_var, noise_var,
                                              cutoff_freqs_normalized)
            else:
                record = self.estimator_correlator(eigenvalues, signal_var, noise_var,
                                                   detector_type.noise_type,
                                                   cutoff_freqs_normalized)
            records.append(record)
        report_progress(self.progress, 1.0, "Performance characterisation complete")
        return PerformanceCurveSet(tuple(records))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_searches(self, searches: Dict[str, LimitSearchResult], hypothesis: Hypothesis,
                        signal_var: float, noise_var: float):
        for name, result in searches.items():
            if not result.converged:
                self.diagnostics.warn(
                    PrecisionWarning, 'PerformanceCurveEngine',
                    f"{name} limit search ({hypothesis.value}, signal_var={signal_var:.3g}, "
                    f"noise_var={noise_var:.3g}) did not converge after "
                    f"{result.iterations} iterations; using {result.value:.6g}")

    def _record(self, detector_type: DetectorType, signal_var: float, noise_var: float,
                n_variables: int, cutoff_freqs_normalized, hypotheses) -> PerformanceRecord:
        t_fa, p_fa, rtp_fa = hypotheses[Hypothesis.FALSE_ALARM]
        t_d, p_d, rtp_d = hypotheses[Hypothesis.DETECTION]
        if self.config.interpolate:
            t_fa, p_fa, rtp_fa, t_d, p_d, rtp_d = common_axis(t_fa, p_fa, rtp_fa, t_d, p_d, rtp_d)
        snr_level = 10 * np.log10(signal_var / noise_var) if signal_var > 0 else -np.inf
        return PerformanceRecord(
            detector_type=detector_type,
            signal_variance=signal_var,
            noise_variance=noise_var,
            snr_level=snr_level,
            n_variables=int(n_variables),
            cutoff_freqs_normalized=tuple(cutoff_freqs_normalized),
            axis_false_alarm=t_fa,
            axis_detection=t_d,
            pdf_false_alarm=p_fa,
            pdf_detection=p_d,
            rtp_false_alarm=rtp_fa,
            rtp_detection=rtp_d,
        )


def common_axis(t_fa, p_fa, rtp_fa, t_d, p_d, rtp_d):
    """
    Resample false-alarm and detection curves onto one shared axis.

    Returns:
        (axis, pdf_fa, rtp_fa, axis, pdf_d, rtp_d)
    """
    step = t_fa[1] - t_fa[0] if len(t_fa) > 1 else 0.0
    edge = t_fa[-1] + step
    axis = np.concatenate([t_fa, [edge], t_d[t_d > edge]])

    def detection(values):
        extrapolated = interp1d(t_d, values, kind='linear', fill_value='extrapolate')(axis)
        return np.maximum(extrapolated, 0.0)

    def false_alarm(values):
        return interp1d(t_fa, values, kind='linear', bounds_error=False, fill_value=0.0)(axis)

    return (axis, false_alarm(p_fa), false_alarm(rtp_fa),
            axis, detection(p_d), detection(rtp_d))
