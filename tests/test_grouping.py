"""
Unit tests for EventGrouper.

Tests merging of detected kernels into signal windows and the placement of
background-noise windows.
"""

import pytest
import numpy as np


class TestRuns:
    """Test run detection."""

    def test_runs(self):
        """Start and inclusive end of each run of detections."""
        from np_detector.detection.grouping import EventGrouper

        starts, ends = EventGrouper.runs([True, True, False, True, False, True])
        assert list(starts) == [0, 3, 5]
        assert list(ends) == [1, 3, 5]


class TestGroup:
    """Test signal and noise windows."""

    def test_reference_pattern(self):
        """Two runs with a two-kernel minimum; the second has no free noise slot."""
        from np_detector.detection.grouping import EventGrouper

        groups = EventGrouper(min_kernels=2).group([True, True, False, False, True, True, True])

        assert list(groups.signal_start) == [0, 4]
        assert list(groups.signal_end) == [1, 6]
        assert groups.noise_start[0] == 2 and groups.noise_end[0] == 3
        assert np.isnan(groups.noise_start[1]) and np.isnan(groups.noise_end[1])

    def test_no_detections(self):
        """No detections give empty groups."""
        from np_detector.detection.grouping import EventGrouper

        groups = EventGrouper(min_kernels=3).group([False] * 10)
        assert len(groups) == 0
        assert groups.to_dict() == {'signal_start': [], 'signal_end': [],
                                    'noise_start': [], 'noise_end': []}

    def test_minimum_window_length(self):
        """An isolated detection is extended to the minimum window."""
        from np_detector.detection.grouping import EventGrouper

        flags = np.zeros(10, dtype=bool)
        flags[3] = True
        groups = EventGrouper(min_kernels=3).group(flags)

        assert list(groups.signal_start) == [3]
        assert list(groups.signal_end) == [5]
        assert groups.noise_start[0] == 0 and groups.noise_end[0] == 2

    def test_window_absorbs_nearby_run(self):
        """A run starting inside the extended window is merged into it."""
        from np_detector.detection.grouping import EventGrouper

        flags = [False, True, False, False, True, True, True, True, False, False]
        groups = EventGrouper(min_kernels=4).group(flags)

        assert list(groups.signal_start) == [1]
        assert list(groups.signal_end) == [7]

    def test_window_clipped_to_recording(self):
        """A window cannot extend past the last kernel."""
        from np_detector.detection.grouping import EventGrouper

        groups = EventGrouper(min_kernels=5).group([False] * 8 + [True])
        assert list(groups.signal_end) == [8]

    def test_first_window_noise_before_recording(self):
        """Without a second window the first window's noise slot may start before kernel 0."""
        from np_detector.detection.grouping import EventGrouper

        groups = EventGrouper(min_kernels=3).group([True, False, True, False, False, False])

        assert list(groups.signal_start) == [0]
        assert list(groups.signal_end) == [2]
        assert groups.noise_start[0] == -3 and groups.noise_end[0] == -1

    def test_first_window_noise_moves_to_next_gap(self):
        """A first window at the start borrows the gap before the second window."""
        from np_detector.detection.grouping import EventGrouper

        flags = [True, False, False, False, False, True, False, False]
        groups = EventGrouper(min_kernels=1).group(flags)

        assert list(groups.signal_start) == [0, 5]
        assert groups.noise_start[0] == 4 and groups.noise_end[0] == 4
        assert groups.noise_start[1] == 4 and groups.noise_end[1] == 4

    def test_windows_do_not_overlap(self, rng):
        """Signal windows are disjoint and ordered."""
        from np_detector.detection.grouping import EventGrouper

        flags = rng.random(500) < 0.1
        groups = EventGrouper(min_kernels=3).group(flags)

        assert np.all(groups.signal_end >= groups.signal_start)
        assert np.all(groups.signal_start[1:] > groups.signal_end[:-1])
        assert np.all(groups.signal_end - groups.signal_start + 1 >= 1)

    def test_invalid_minimum(self):
        """A minimum below one kernel is rejected."""
        from np_detector.detection.grouping import EventGrouper

        with pytest.raises(ValueError):
            EventGrouper(min_kernels=0)


class TestEvents:
    """Test conversion of kernel windows to seconds."""

    def test_kernel_windows_to_seconds(self):
        """Window bounds are multiples of the kernel duration."""
        from np_detector.detection.grouping import EventGrouper

        grouper = EventGrouper(min_kernels=2)
        groups = grouper.group([True, True, False, False, True, True, True])
        events = grouper.events(groups, kernel_duration=0.1)

        assert len(events) == 2
        assert events[0].signal_time1 == pytest.approx(0.0)
        assert events[0].signal_time2 == pytest.approx(0.2)
        assert events[0].noise_time1 == pytest.approx(0.2)
        assert events[0].has_noise_window
        assert not events[1].has_noise_window
        assert events[1].to_dict()['noise_time1'] is None
