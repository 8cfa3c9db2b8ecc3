"""
Unit tests for ThresholdSolver.

Tests curve inversion, catalog thresholds, SNR interpolation and the
noise-variance scaling rules.
"""

import pytest
import numpy as np
from scipy import stats


def _ed_catalog(snr_levels):
    from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

    engine = PerformanceCurveEngine(PerformanceConfig(snr_levels=snr_levels))
    return engine.characterise('ed', (0.0, 1.0), n_variables=100)


class TestInverseRtp:
    """Test inverse interpolation of RTP curves."""

    def test_linear_inverse(self):
        """The axis value is interpolated between bracketing points."""
        from np_detector.detection.thresholds import inverse_rtp

        rtp = np.array([1.0, 0.5, 0.1, 0.0])
        axis = np.array([0.0, 1.0, 2.0, 3.0])
        assert inverse_rtp(rtp, axis, 0.3) == pytest.approx(1.5)

    def test_repeated_values_use_first_occurrence(self):
        """A flat tail maps to where it starts."""
        from np_detector.detection.thresholds import inverse_rtp

        rtp = np.array([1.0, 0.5, 0.0, 0.0, 0.0])
        axis = np.arange(5.0)
        assert inverse_rtp(rtp, axis, 0.0) == pytest.approx(2.0)

    def test_outside_range_is_nan(self):
        """Targets the curve never reaches give NaN."""
        from np_detector.detection.thresholds import inverse_rtp

        rtp = np.array([0.9, 0.5, 0.1])
        assert np.isnan(inverse_rtp(rtp, np.arange(3.0), 0.95))


class TestCatalogThresholds:
    """Test per-level thresholds."""

    def test_false_alarm_round_trip(self, small_snr_levels):
        """With sensitivity 1 the false-alarm probability equals the target."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        thresholds, pfa, pd = solver.catalog_thresholds(0.01, 1.0)

        assert np.allclose(pfa, 0.01, rtol=1e-6)
        # Energy-detector noise curves do not depend on SNR
        assert np.allclose(thresholds, thresholds[0], rtol=1e-6)
        assert thresholds[0] == pytest.approx(stats.chi2.isf(0.01, 100), rel=0.02)

    def test_full_sensitivity_is_false_alarm_inverse(self, small_snr_levels):
        """With sensitivity 1 each threshold is the inverse of that record's noise curve."""
        from np_detector.detection.thresholds import ThresholdSolver, inverse_rtp

        curve_set = _ed_catalog(small_snr_levels)
        solver = ThresholdSolver(curve_set)
        thresholds, _, _ = solver.catalog_thresholds(0.01, 1.0)

        for record, threshold in zip(curve_set, thresholds):
            assert threshold == inverse_rtp(record.rtp_false_alarm, record.axis_false_alarm, 0.01)

        # At catalog SNR levels with unit noise the solver returns the same values
        signal_vars = 10 ** (np.asarray(curve_set.snr_levels) / 10)
        result = solver.solve(0.01, 1.0, signal_vars, 1.0)
        assert np.allclose(result.thresholds, thresholds, rtol=1e-12)

    def test_detection_probability_grows_with_snr(self, small_snr_levels):
        """Louder signals are detected more often at the same threshold."""
        from np_detector.detection.thresholds import ThresholdSolver

        _, _, pd = ThresholdSolver(_ed_catalog(small_snr_levels)).catalog_thresholds(0.01, 1.0)
        assert np.all(np.diff(pd) >= -1e-3)
        assert pd[-1] > 0.99

    def test_lower_sensitivity_never_lowers_threshold(self, small_snr_levels):
        """The blend can only raise the threshold above the false-alarm value."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        t_fa, _, _ = solver.catalog_thresholds(0.01, 1.0)
        t_blend, _, _ = solver.catalog_thresholds(0.01, 0.5)
        assert np.all(t_blend >= t_fa - 1e-9)

    @pytest.mark.parametrize('rtp, sensitivity', [(0.0, 1.0), (1.5, 1.0), (0.01, -0.1)])
    def test_invalid_targets(self, small_snr_levels, rtp, sensitivity):
        """Targets outside their ranges raise ConfigError."""
        from np_detector.detection.thresholds import ThresholdSolver
        from np_detector.errors import ConfigError

        solver = ThresholdSolver(_ed_catalog((0.0, 10.0)))
        with pytest.raises(ConfigError):
            solver.catalog_thresholds(rtp, sensitivity)


class TestSolve:
    """Test thresholds for arbitrary observations."""

    def test_scaled_by_noise_variance(self, small_snr_levels):
        """Energy-detector thresholds scale with the noise variance."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        unit = solver.solve(0.01, 1.0, [1.0, 10.0], 1.0)
        double = solver.solve(0.01, 1.0, [2.0, 20.0], 2.0)

        assert len(unit.thresholds) == 2
        assert np.allclose(double.thresholds, 2 * unit.thresholds)
        assert np.allclose(unit.rtp_false_alarm, 0.01, rtol=1e-3)

    def test_zero_signal_variance(self, small_snr_levels):
        """Zero signal variance evaluates at the lowest catalog level."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        result = solver.solve(0.01, 1.0, 0.0, 1.0)

        thresholds, pfa, pd = solver.catalog_thresholds(0.01, 1.0)
        assert result.thresholds[0] == pytest.approx(thresholds[0])
        assert result.rtp_detection[0] == pytest.approx(pd[0])

    def test_snr_outside_catalog(self, small_snr_levels):
        """Targets beyond the catalog get finite thresholds and nearest probabilities."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        result = solver.solve(0.01, 1.0, [1e-4, 1e6], 1.0)   # -40 dB, 60 dB

        _, pfa, pd = solver.catalog_thresholds(0.01, 1.0)
        assert np.all(np.isfinite(result.thresholds))
        assert result.rtp_detection[0] == pytest.approx(pd[0])
        assert result.rtp_detection[1] == pytest.approx(pd[-1])

    def test_interpolated_probability_between_levels(self, small_snr_levels):
        """Probabilities between catalog levels lie between their neighbours."""
        from np_detector.detection.thresholds import ThresholdSolver

        solver = ThresholdSolver(_ed_catalog(small_snr_levels))
        _, _, pd = solver.catalog_thresholds(0.01, 1.0)
        levels = np.asarray(small_snr_levels)
        i = int(np.argmin(np.abs(levels - 0.0)))

        result = solver.solve(0.01, 1.0, 10 ** (2.5 / 10), 1.0)   # 2.5 dB
        assert min(pd[i], pd[i + 1]) - 1e-12 <= result.rtp_detection[0] <= max(pd[i], pd[i + 1]) + 1e-12

    def test_mismatched_lengths(self, small_snr_levels):
        """Signal and noise arrays of different lengths raise ConfigError."""
        from np_detector.detection.thresholds import ThresholdSolver
        from np_detector.errors import ConfigError

        solver = ThresholdSolver(_ed_catalog((0.0, 10.0)))
        with pytest.raises(ConfigError):
            solver.solve(0.01, 1.0, [1.0, 2.0, 3.0], [1.0, 2.0])

    def test_non_positive_noise(self):
        """A zero noise variance raises ConfigError."""
        from np_detector.detection.thresholds import ThresholdSolver
        from np_detector.errors import ConfigError

        solver = ThresholdSolver(_ed_catalog((0.0, 10.0)))
        with pytest.raises(ConfigError):
            solver.solve(0.01, 1.0, 1.0, 0.0)

    def test_coloured_noise_not_scaled(self):
        """Coloured-noise thresholds do not depend on the noise variance."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig
        from np_detector.detection.thresholds import ThresholdSolver

        engine = PerformanceCurveEngine(PerformanceConfig(snr_levels=(-10.0, 0.0, 10.0)))
        curves = engine.characterise('ecc', (0.0, 1.0), eigenvalues=np.linspace(0.5, 1.5, 6))
        solver = ThresholdSolver(curves)

        a = solver.solve(0.01, 1.0, 1.0, 1.0)
        b = solver.solve(0.01, 1.0, 3.0, 3.0)
        assert a.thresholds[0] == pytest.approx(b.thresholds[0])
