#!/usr/bin/env python3
"""
Raw Score Builder - Training Observations for Covariance Estimation

Turns a collection of in-memory training recordings of one class (signal or
noise) into a RawScoreData matrix.

Read modes:
    single  one observation per recording (its first kernel)
    multi   every whole kernel of every recording

Recordings below the minimum SNR, or shorter than the kernel duration, are
skipped. Multi-channel recordings contribute their first channel. All
recordings are resampled to a common rate (by default the most frequent
rate). The matrix is capped at 1024 MB of single-precision samples; when
the cap bites, kernels are taken round-robin across recordings so each
recording stays represented.
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np

from ..errors import ConfigError, DataQualityWarning, Diagnostics
from .interfaces.data_models import RawScoreData
from .np_constants import MAX_RAW_SCORE_MB, RAW_SCORE_BYTES_PER_SAMPLE
from .signal_conditioning import normalize_rows, resample

logger = logging.getLogger(__name__)


def build_raw_scores(observations: Sequence[np.ndarray],
                     sample_rates: Union[float, Sequence[float]],
                     kernel_duration: Optional[float] = None,
                     sample_rate: Optional[float] = None,
                     snr_levels: Optional[Sequence[float]] = None,
                     min_snr_level: float = -np.inf,
                     read_mode: str = 'multi',
                     max_matrix_mb: float = MAX_RAW_SCORE_MB,
                     diagnostics: Optional[Diagnostics] = None) -> RawScoreData:
    """
    Build normalised training observations from recordings.

    Args:
        observations: One array per recording (samples, or samples x channels)
        sample_rates: Sample rate of each recording, or one for all [Hz]
        kernel_duration: Observation duration [s] (None = shortest recording)
        sample_rate: Output sample rate [Hz] (None = most frequent rate)
        snr_levels: SNR of each recording [dB] (None = unknown)
        min_snr_level: Recordings below this SNR are skipped [dB]
        read_mode: 'single' or 'multi'
        max_matrix_mb: Cap on the matrix size [MB]
        diagnostics: Collector for data-quality warnings

    Returns:
        RawScoreData

    Raises:
        ConfigError: Invalid arguments or no usable recording
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    if read_mode not in ('single', 'multi'):
        raise ConfigError(f"read_mode must be 'single' or 'multi', got {read_mode!r}")
    n_files = len(observations)
    if n_files == 0:
        raise ConfigError("No training recordings given")

    rates = np.broadcast_to(np.asarray(sample_rates, dtype=float), (n_files,)).copy()
    snr = np.full(n_files, np.inf) if snr_levels is None else np.asarray(snr_levels, dtype=float)
    if len(snr) != n_files:
        raise ConfigError(f"snr_levels has {len(snr)} entries for {n_files} recordings")

    signals = []
    for i, x in enumerate(observations):
        x = np.asarray(x, dtype=float)
        if x.ndim > 1:
            diagnostics.warn(DataQualityWarning, 'RawScores',
                             f"Recording {i} has {x.shape[1]} channels; using the first")
            x = x[:, 0]
        signals.append(x)

    durations = np.array([len(x) / fs for x, fs in zip(signals, rates)])
    if len(np.unique(np.round(durations, 9))) > 1:
        logger.debug("Training recordings have different durations")

    if sample_rate is None:
        values, counts = np.unique(rates, return_counts=True)
        sample_rate = float(values[np.argmax(counts)])
    if kernel_duration is None:
        kernel_duration = float(durations.min())
    if kernel_duration <= 0:
        raise ConfigError("kernel_duration must be positive")

    n_short = int(np.sum(durations < kernel_duration))
    if n_short:
        diagnostics.warn(DataQualityWarning, 'RawScores',
                         f"{n_short} recordings are shorter than {kernel_duration} s and are ignored")
    n_low = int(np.sum(snr < min_snr_level))
    if n_low:
        logger.info(f"{n_low} recordings below {min_snr_level} dB SNR are ignored")

    valid = (snr >= min_snr_level) & (durations >= kernel_duration)
    kernel_length = int(round(kernel_duration * sample_rate))

    per_file = []
    for x, fs, ok in zip(signals, rates, valid):
        if not ok:
            continue
        y = resample(x, fs, sample_rate)
        n_kernels = 1 if read_mode == 'single' else len(y) // kernel_length
        n_kernels = min(n_kernels, len(y) // kernel_length)
        per_file.append(y[:n_kernels * kernel_length].reshape(n_kernels, kernel_length))

    if not per_file or sum(len(k) for k in per_file) == 0:
        raise ConfigError("No training recording satisfies the duration and SNR requirements")

    n_tests = sum(len(k) for k in per_file)
    max_tests = int(np.floor(max_matrix_mb * 1024 ** 2 / (RAW_SCORE_BYTES_PER_SAMPLE * kernel_length)))
    if n_tests > max_tests:
        diagnostics.warn(DataQualityWarning, 'RawScores',
                         f"Raw score matrix would exceed {max_matrix_mb} MB; "
                         f"observations reduced from {n_tests} to {max_tests}")
        rows = []
        depth = 0
        while len(rows) < max_tests:
            for kernels in per_file:
                if depth < len(kernels) and len(rows) < max_tests:
                    rows.append(kernels[depth])
            depth += 1
        matrix = np.array(rows)
    else:
        matrix = np.vstack(per_file)

    matrix = normalize_rows(matrix - matrix.mean(axis=1, keepdims=True))
    logger.info(f"Built raw scores: {matrix.shape[0]} observations x {kernel_length} samples "
                f"at {sample_rate} Hz ({read_mode} mode)")

    used_snr = snr[valid] if read_mode == 'single' else np.array([])
    return RawScoreData(
        kernel_duration=kernel_duration,
        sample_rate=sample_rate,
        raw_score_matrix=matrix,
        snr_levels=used_snr,
        min_snr_level=min_snr_level,
    )
