#!/usr/bin/env python3
"""
Event Grouper - Merge Detected Kernels into Signal Windows

Detection flags arrive one per kernel. Runs of consecutive detections are
merged into signal windows, and each window is paired with a same-length
background-noise window.

Windows:
    A window starts at a run's first kernel and is at least min_kernels
    long. Any later run starting inside (or immediately after) the extended
    window is absorbed, the window then ending where that run ends.

Noise windows:
    The candidate noise window has the same length as its signal window and
    ends just before it. If the candidate overlaps the previous signal
    window, the search moves past the next signal window and retries, one
    window at a time, until a free slot is found or no windows remain (noise
    bounds NaN). For the first window, a candidate starting before the
    recording moves to the gap before the second window.

All indices are 0-based kernel indices.
"""

import logging
from typing import List

import numpy as np

from ..interfaces.detection_result import DetectionEvent
from .interfaces.data_models import KernelGroups

logger = logging.getLogger(__name__)


class EventGrouper:
    """
    Group kernel detection flags into signal and noise windows.

    Usage:
        grouper = EventGrouper(min_kernels=2)
        groups = grouper.group([True, True, False, False, True, True, True])
    """

    def __init__(self, min_kernels: int = 1):
        if min_kernels < 1:
            raise ValueError("min_kernels must be at least 1")
        self.min_kernels = int(min_kernels)

    @staticmethod
    def runs(flags) -> tuple:
        """Start and end (inclusive) of each run of True values."""
        flags = np.asarray(flags, dtype=bool).ravel()
        edges = np.diff(np.concatenate([[False], flags, [False]]).astype(np.int8))
        starts = np.nonzero(edges == 1)[0]
        ends = np.nonzero(edges == -1)[0] - 1
        return starts, ends

    def group(self, flags) -> KernelGroups:
        """
        Merge detection flags into signal windows with noise windows.

        Args:
            flags: One boolean per kernel

        Returns:
            KernelGroups (empty arrays when there are no detections)
        """
        flags = np.asarray(flags, dtype=bool).ravel()
        n_total = len(flags)
        run_start, run_end = self.runs(flags)
        n_runs = len(run_start)
        if n_runs == 0:
            return KernelGroups([], [], [], [])

        win_start: List[int] = []
        win_end: List[int] = []
        ind = 0
        while ind < n_runs:
            n_kernels = max(run_end[ind] - run_start[ind] + 1, self.min_kernels)
            start = run_start[ind]
            end = min(start + n_kernels - 1, n_total - 1)
            last = int(np.nonzero(run_start <= end + 1)[0][-1])
            if last != ind and end <= run_end[last]:
                end = run_end[last]
            win_start.append(int(start))
            win_end.append(int(end))
            ind = last + 1

        noise_start, noise_end = self._noise_windows(win_start, win_end)
        logger.debug(f"Grouped {n_runs} detection runs into {len(win_start)} windows")
        return KernelGroups(win_start, win_end, noise_start, noise_end)

    @staticmethod
    def _noise_windows(win_start: List[int], win_end: List[int]):
        n_windows = len(win_start)
        noise_start = np.full(n_windows, np.nan)
        noise_end = np.full(n_windows, np.nan)

        # First window
        n_kernels = win_end[0] - win_start[0] + 1
        candidate = win_start[0] - n_kernels
        j = 0
        if candidate < 0 and j + 1 < n_windows:
            j += 1
            candidate = win_start[j] - n_kernels
            while candidate <= win_end[j - 1] and j + 1 < n_windows:
                j += 1
                candidate = win_start[j] - n_kernels
        if not (j > 0 and candidate <= win_end[j - 1]):
            noise_start[0] = candidate
            noise_end[0] = win_start[j] - 1

        # Remaining windows
        for m in range(1, n_windows):
            n_kernels = win_end[m] - win_start[m] + 1
            j = m
            candidate = win_start[j] - n_kernels
            while candidate <= win_end[j - 1] and j + 1 < n_windows:
                j += 1
                candidate = win_start[j] - n_kernels
            if candidate > win_end[j - 1]:
                noise_start[m] = candidate
                noise_end[m] = win_start[j] - 1

        return noise_start, noise_end

    @staticmethod
    def events(groups: KernelGroups, kernel_duration: float) -> List[DetectionEvent]:
        """
        Convert kernel windows to events in seconds.

        The signal time is the window start; the detector refines it to the
        peak of the waveform.
        """
        events = []
        for i in range(len(groups)):
            start = groups.signal_start[i] * kernel_duration
            events.append(DetectionEvent(
                signal_time=start,
                signal_time1=start,
                signal_time2=(groups.signal_end[i] + 1) * kernel_duration,
                noise_time1=groups.noise_start[i] * kernel_duration,
                noise_time2=(groups.noise_end[i] + 1) * kernel_duration,
            ))
        return events
