"""
Unit tests for signal conditioning helpers.

Tests resampling ratios, filter design, DC offsets and moving RMS.
"""

import pytest
import numpy as np


class TestResampling:
    """Test polyphase resampling helpers."""

    def test_resample_ratio_is_reduced(self):
        """Up/down factors are divided by their common divisor."""
        from np_detector.detection.signal_conditioning import resample_ratio

        assert resample_ratio(48000, 2000) == (1, 24)
        assert resample_ratio(44100, 48000) == (160, 147)

    def test_resample_length(self):
        """Downsampling by 2 halves the number of samples."""
        from np_detector.detection.signal_conditioning import resample

        y = resample(np.ones(400), 4000, 2000)
        assert len(y) == 200

    def test_same_rate_returns_copy(self):
        """Equal rates return an independent copy."""
        from np_detector.detection.signal_conditioning import resample

        x = np.arange(10.0)
        y = resample(x, 1000, 1000)
        y[0] = 99
        assert x[0] == 0


class TestBandFilter:
    """Test Butterworth filter design."""

    def test_lowpass_sections(self):
        """A zero lower cutoff gives a 4th-order lowpass (2 sections)."""
        from np_detector.detection.signal_conditioning import design_band_filter

        sos = design_band_filter(2000, (0.0, 300.0))
        assert sos.shape == (2, 6)

    def test_bandpass_sections(self):
        """Two inner cutoffs give a bandpass (4 sections)."""
        from np_detector.detection.signal_conditioning import design_band_filter

        sos = design_band_filter(2000, (50.0, 300.0))
        assert sos.shape == (4, 6)

    def test_highpass_sections(self):
        """An upper cutoff at Nyquist gives a highpass."""
        from np_detector.detection.signal_conditioning import design_band_filter

        sos = design_band_filter(2000, (50.0, 1000.0))
        assert sos.shape == (2, 6)

    def test_full_band_means_no_filter(self):
        """The full band gives no filter, and applying it is a copy."""
        from np_detector.detection.signal_conditioning import apply_sos, design_band_filter

        sos = design_band_filter(2000, (0.0, 1000.0))
        assert len(sos) == 0
        x = np.arange(5.0)
        assert np.array_equal(apply_sos(x, sos), x)

    def test_unknown_mode_rejected(self):
        """Only 'filter' and 'filtfilt' are accepted."""
        from np_detector.detection.signal_conditioning import apply_sos, design_band_filter

        sos = design_band_filter(2000, (0.0, 300.0))
        with pytest.raises(ValueError):
            apply_sos(np.ones(100), sos, mode='reverse')


class TestDcOffsets:
    """Test windowed DC offsets."""

    def test_offsets_and_centres(self):
        """Means and 0-based centres of consecutive windows."""
        from np_detector.detection.signal_conditioning import dc_offsets, nearest_offset

        x = np.array([1, 1, 1, 1, 5, 5, 5, 5, 9, 9], dtype=float)
        offsets, centres = dc_offsets(x, 4)

        assert np.allclose(offsets, [1.0, 5.0])
        assert list(centres) == [2, 6]
        assert nearest_offset(offsets, centres, 0) == 1.0
        assert nearest_offset(offsets, centres, 9) == 5.0


class TestMovingRms:
    """Test centred moving RMS."""

    def test_constant_signal(self):
        """The RMS of a constant signal is its magnitude."""
        from np_detector.detection.signal_conditioning import moving_rms

        y = moving_rms(np.full(50, -2.0), 7)
        assert len(y) == 50
        assert np.allclose(y, 2.0)

    def test_peak_location(self):
        """The RMS peak sits on an isolated burst."""
        from np_detector.detection.signal_conditioning import moving_rms

        x = np.zeros(100)
        x[60:65] = 3.0
        assert 58 <= int(np.argmax(moving_rms(x, 5))) <= 66


class TestNormalizeRows:
    """Test row normalisation."""

    def test_unit_std_and_zero_rows(self):
        """Rows get unit standard deviation; all-zero rows stay zero."""
        from np_detector.detection.signal_conditioning import normalize_rows

        x = np.vstack([np.arange(10.0) * 3, np.zeros(10)])
        y = normalize_rows(x)
        assert np.std(y[0], ddof=1) == pytest.approx(1.0)
        assert np.all(y[1] == 0)
