"""
Unit tests for the performance curve engine.

Tests the energy-detector and estimator-correlator distributions against
closed-form chi-squared results, catalog ordering and the limit searches.
"""

import pytest
import numpy as np
from scipy import stats


class TestPerformanceConfig:
    """Test PerformanceConfig validation."""

    @pytest.mark.parametrize('options', [
        {'precision_factor': 3},
        {'amplitude_ratio': 1.0},
        {'max_iterations': 0},
        {'snr_levels': (0.0, 0.0, 5.0)},
        {'snr_levels': ()},
    ])
    def test_invalid_options(self, options):
        """Invalid options raise ConfigError."""
        from np_detector.detection.performance import PerformanceConfig
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            PerformanceConfig(**options)

    def test_default_catalog(self):
        """The default catalog spans -50..50 dB in 1 dB steps."""
        from np_detector.detection.performance import PerformanceConfig

        levels = PerformanceConfig().snr_levels
        assert len(levels) == 101
        assert levels[0] == -50.0 and levels[-1] == 50.0


class TestPassbandFraction:
    """Test the filter correction factor."""

    def test_fraction(self):
        """q is the normalised passband width."""
        from np_detector.detection.performance import passband_fraction

        assert passband_fraction((0.0, 1.0)) == 1.0
        assert passband_fraction((0.1, 0.5)) == pytest.approx(0.4)

    @pytest.mark.parametrize('cutoffs', [(0.2, 0.2), (0.0, 1.5), (0.1,)])
    def test_invalid(self, cutoffs):
        """Empty or out-of-range passbands raise ConfigError."""
        from np_detector.detection.performance import passband_fraction
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            passband_fraction(cutoffs)


class TestLimitSearches:
    """Test the bounded numeric searches."""

    def test_energy_detector_time_limit(self):
        """The limit sits where the chi-squared tail equals 1/ratio."""
        from np_detector.detection.limits import energy_detector_time_limit

        result = energy_detector_time_limit(50, 0.0, 2.0, amplitude_ratio=1e4)
        assert result.converged
        assert stats.chi2.sf(result.value / 2.0, 50) == pytest.approx(1e-4, abs=1e-5)

    def test_iteration_cap_reports_non_convergence(self):
        """Exhausting the iteration budget is reported, not raised."""
        from np_detector.detection.limits import energy_detector_time_limit

        result = energy_detector_time_limit(50, 0.0, 1.0, max_iterations=1)
        assert not result.converged
        assert result.iterations == 1

    def test_frequency_limit(self):
        """|K(f)| at the frequency limit equals 1/ratio."""
        from np_detector.detection.limits import characteristic_magnitude, frequency_limit_search

        weights = np.ones(6)
        result = frequency_limit_search(weights, tmean=6.0, amplitude_ratio=1e4)
        assert result.converged
        assert characteristic_magnitude(weights, [result.value])[0] == pytest.approx(1e-4, abs=1e-5)

    def test_characteristic_magnitude_matches_complex_form(self):
        """The log-magnitude form agrees with |K(f)|."""
        from np_detector.detection.limits import characteristic_function, characteristic_magnitude

        weights = np.array([0.5, 1.0, 2.0])
        freqs = np.linspace(-1, 1, 11)
        assert np.allclose(np.abs(characteristic_function(weights, freqs)),
                           characteristic_magnitude(weights, freqs))

    def test_block_size_does_not_change_result(self):
        """Blocked evaluation equals single-block evaluation."""
        from np_detector.detection.limits import characteristic_function

        weights = np.linspace(0.1, 2, 20)
        freqs = np.linspace(-2, 2, 101)
        assert np.allclose(characteristic_function(weights, freqs, max_block_bytes=1000),
                           characteristic_function(weights, freqs))


class TestEnergyDetectorCurves:
    """Test WeightedChiSquared."""

    def test_rtp_matches_chi_squared(self):
        """The integrated RTP follows the closed-form survival function."""
        from np_detector.detection.performance import WeightedChiSquared

        dist = WeightedChiSquared(100, 0.0, 2.0)
        axis, pdf, rtp = dist.curves(1.5)
        assert np.allclose(rtp, stats.chi2.sf(axis / 2.0, 100), atol=0.02)
        assert np.allclose(dist.right_tail(axis), stats.chi2.sf(axis / 2.0, 100))

    def test_rtp_monotonic(self):
        """RTP never increases along the axis."""
        from np_detector.detection.performance import WeightedChiSquared

        _, _, rtp = WeightedChiSquared(40, 5.0, 1.0).curves(1.0)
        assert np.all(np.diff(rtp) <= 1e-12)

    def test_filter_reduces_degrees_of_freedom(self):
        """Half the band halves ndof and doubles the variances."""
        from np_detector.detection.performance import PerformanceCurveEngine

        engine = PerformanceCurveEngine()
        full = engine.energy_detector(100, 0.0, 1.0, 1.0, (0.0, 1.0))
        half = engine.energy_detector(100, 0.0, 1.0, 1.0, (0.0, 0.5))

        # Mean of the false-alarm statistic: ndof * noise_var/q = N * noise_var
        def mean(record):
            step = record.axis_false_alarm[1] - record.axis_false_alarm[0]
            return np.sum(record.axis_false_alarm * record.pdf_false_alarm) * step

        assert mean(full) == pytest.approx(100, rel=0.05)
        assert mean(half) == pytest.approx(100, rel=0.05)

    def test_invalid_variances(self):
        """A non-positive noise variance is rejected."""
        from np_detector.detection.performance import PerformanceCurveEngine
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            PerformanceCurveEngine().energy_detector(100, 0.0, 1.0, 0.0, (0.0, 1.0))


class TestEstimatorCorrelatorCurves:
    """Test GaussianQuadraticForm and estimator-correlator records."""

    def test_equal_weights_match_chi_squared(self):
        """Equal unit weights give a chi-squared distribution."""
        from np_detector.detection.performance import GaussianQuadraticForm

        axis, pdf, rtp = GaussianQuadraticForm(np.ones(6), tmean=6.0).curves(1.5)
        assert np.allclose(pdf, stats.chi2.pdf(axis, 6), atol=2e-3)
        assert np.allclose(rtp, stats.chi2.sf(axis, 6), atol=0.02)

    def test_density_on_arbitrary_points(self):
        """Direct evaluation agrees with the chi-squared density."""
        from np_detector.detection.performance import GaussianQuadraticForm

        dist = GaussianQuadraticForm(np.ones(6), tmean=6.0)
        t = np.array([1.0, 2.0, 5.0])
        assert np.allclose(dist.density(t), stats.chi2.pdf(t, 6), atol=2e-3)

    def test_right_tail_reuses_configured_grid(self):
        """right_tail uses the grid of the configured precision and samples it once."""
        from np_detector.detection.performance import GaussianQuadraticForm

        dist = GaussianQuadraticForm(np.ones(6), tmean=6.0, precision_factor=1.5)
        t = np.array([2.0, 6.0, 12.0])
        assert np.allclose(dist.right_tail(t), stats.chi2.sf(t, 6), atol=0.02)

        search = dist.searches['time']
        axis, _, _ = dist.curves(1.5)
        dist.right_tail(t)
        dist.density(t)
        assert dist.searches['time'] is search
        assert dist.curves(1.5)[0] is axis

    def test_white_noise_record(self):
        """Unit eigenvalues at 0 dB: false alarm ~ 0.5 * chi2(6), detection ~ chi2(6)."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

        engine = PerformanceCurveEngine(PerformanceConfig(interpolate=False))
        record = engine.estimator_correlator(np.ones(6), 1.0, 1.0, 'wgn', (0.0, 1.0))

        assert record.detector_type.value == 'ecw'
        assert record.snr_level == pytest.approx(0.0)
        assert np.allclose(record.rtp_false_alarm,
                           stats.chi2.sf(record.axis_false_alarm / 0.5, 6), atol=0.02)
        assert np.allclose(record.rtp_detection,
                           stats.chi2.sf(record.axis_detection, 6), atol=0.02)

    def test_detection_dominates_false_alarm(self):
        """With signal present the statistic is stochastically larger."""
        from np_detector.detection.performance import PerformanceCurveEngine

        engine = PerformanceCurveEngine()
        record = engine.estimator_correlator(np.linspace(0.2, 1.8, 8), 4.0, 1.0, 'cgn',
                                             (0.0, 1.0))
        assert np.array_equal(record.axis_false_alarm, record.axis_detection)
        assert np.all(record.rtp_detection >= record.rtp_false_alarm - 0.02)

    def test_invalid_noise_type(self):
        """Unknown noise types raise ConfigError."""
        from np_detector.detection.performance import PerformanceCurveEngine
        from np_detector.errors import ConfigError

        with pytest.raises(ConfigError):
            PerformanceCurveEngine().estimator_correlator(np.ones(3), 1.0, 1.0, 'pink',
                                                          (0.0, 1.0))


class TestCharacterise:
    """Test catalog construction."""

    def test_energy_detector_catalog(self, small_snr_levels):
        """Records come out in ascending SNR with the configured levels."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

        engine = PerformanceCurveEngine(PerformanceConfig(snr_levels=small_snr_levels))
        curves = engine.characterise('ed', (0.0, 1.0), n_variables=100)

        assert len(curves) == len(small_snr_levels)
        assert np.allclose(curves.snr_levels, small_snr_levels)
        assert curves.detector_type.value == 'ed'
        for record in curves:
            assert np.all(np.diff(record.rtp_false_alarm) <= 1e-12)

    @pytest.mark.parametrize('detector_type', ['ecw', 'ecc'])
    def test_estimator_correlator_catalog_monotonic(self, detector_type):
        """ECW and ECC right-tail curves never increase and start at 1."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

        config = PerformanceConfig(snr_levels=(-10.0, -5.0, 0.0, 5.0, 10.0))
        curves = PerformanceCurveEngine(config).characterise(
            detector_type, (0.0, 1.0), eigenvalues=np.linspace(0.5, 1.5, 5))

        assert curves.detector_type.value == detector_type
        for record in curves:
            for rtp in (record.rtp_false_alarm, record.rtp_detection):
                assert np.all(np.diff(rtp) <= 1e-9)
                assert rtp[0] == pytest.approx(1.0, abs=1e-3)
                assert rtp[0] <= 1.0 + 1e-3

    def test_idempotent(self):
        """Identical inputs give identical curves."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

        config = PerformanceConfig(snr_levels=(-5.0, 5.0))
        eigenvalues = np.linspace(0.5, 1.5, 5)
        first = PerformanceCurveEngine(config).characterise('ecw', (0.0, 1.0),
                                                            eigenvalues=eigenvalues)
        second = PerformanceCurveEngine(config).characterise('ecw', (0.0, 1.0),
                                                             eigenvalues=eigenvalues)
        for a, b in zip(first, second):
            assert np.array_equal(a.rtp_detection, b.rtp_detection)
            assert np.array_equal(a.axis_false_alarm, b.axis_false_alarm)

    def test_missing_inputs(self):
        """Each detector family needs its own inputs."""
        from np_detector.detection.performance import PerformanceCurveEngine
        from np_detector.errors import ConfigError

        engine = PerformanceCurveEngine()
        with pytest.raises(ConfigError):
            engine.characterise('ed', (0.0, 1.0))
        with pytest.raises(ConfigError):
            engine.characterise('ecc', (0.0, 1.0))

    def test_progress_reported(self):
        """The callback receives per-level updates ending at 1."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig

        updates = []
        engine = PerformanceCurveEngine(PerformanceConfig(snr_levels=(0.0, 10.0)),
                                        progress=lambda f, m: updates.append((f, m)))
        engine.characterise('ed', (0.0, 1.0), n_variables=50)
        assert updates[-1][0] == 1.0
        assert len(updates) == 3

    def test_non_convergence_recorded(self):
        """A search that runs out of iterations leaves a PrecisionWarning."""
        from np_detector.detection.performance import PerformanceCurveEngine, PerformanceConfig
        from np_detector.errors import Diagnostics

        diagnostics = Diagnostics()
        engine = PerformanceCurveEngine(PerformanceConfig(max_iterations=1,
                                                          snr_levels=(0.0,)), diagnostics)
        engine.characterise('ed', (0.0, 1.0), n_variables=50)
        assert diagnostics.has_precision_warnings


class TestCurveSet:
    """Test PerformanceCurveSet validation."""

    def test_unordered_records_rejected(self):
        """Records must be in strictly ascending SNR."""
        from np_detector.detection.interfaces.data_models import PerformanceCurveSet
        from np_detector.detection.performance import PerformanceCurveEngine
        from np_detector.errors import ConfigError

        engine = PerformanceCurveEngine()
        low = engine.energy_detector(20, 0.0, 0.1, 1.0, (0.0, 1.0))
        high = engine.energy_detector(20, 0.0, 10.0, 1.0, (0.0, 1.0))

        assert len(PerformanceCurveSet((low, high))) == 2
        with pytest.raises(ConfigError):
            PerformanceCurveSet((high, low))
        with pytest.raises(ConfigError):
            PerformanceCurveSet(())

    def test_mixed_detector_types_rejected(self):
        """Energy-detector and estimator-correlator records cannot share a catalog."""
        from np_detector.detection.interfaces.data_models import PerformanceCurveSet
        from np_detector.detection.performance import PerformanceCurveEngine
        from np_detector.errors import ConfigError

        engine = PerformanceCurveEngine()
        ed = engine.energy_detector(20, 0.0, 0.1, 1.0, (0.0, 1.0))
        ecw = engine.estimator_correlator(np.ones(3), 10.0, 1.0, 'wgn', (0.0, 1.0))

        with pytest.raises(ConfigError):
            PerformanceCurveSet((ed, ecw))
