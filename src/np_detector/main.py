#!/usr/bin/env python3
"""
np-detector: Neyman-Pearson Detector for Passive Acoustic Monitoring

Command-line entry point. This tool:
1. Reads the detector configuration (TOML)
2. Prepares the detector: covariance, eigendecomposition and performance
   catalog (the energy detector only needs the catalog)
3. Prints the threshold table of the catalog, or
4. Runs the detector over a recording and prints the events as JSON

Usage:
    # Threshold table of an energy detector
    np-detector --config airgun.toml

    # Estimator-correlator detection over a recording
    np-detector --config airgun.toml --signal-scores signal.npy \\
        --audio recording.npy --sample-rate 48000

Inputs are NumPy .npy files: recordings are 1-D sample arrays, raw scores
are observations x samples matrices sampled at --scores-rate.
"""

import argparse
import json
import logging
import sys
from typing import Optional

import numpy as np

# Set up logging before imports that use it
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('np-detector')

from .config import DetectorConfig, load_config
from .errors import NPDetectorError, Diagnostics
from .detection.detector import NeymanPearsonDetector
from .detection.interfaces.data_models import RawScoreData
from .detection.preprocess import prepare_detector
from .detection.signal_conditioning import normalize_rows
from .detection.thresholds import ThresholdSolver


def load_raw_scores(path: str, sample_rate: float) -> RawScoreData:
    """Load an observations x samples matrix saved with numpy.save."""
    matrix = np.atleast_2d(np.load(path))
    matrix = normalize_rows(matrix - matrix.mean(axis=1, keepdims=True))
    return RawScoreData(
        kernel_duration=matrix.shape[1] / sample_rate,
        sample_rate=sample_rate,
        raw_score_matrix=matrix,
    )


def threshold_table(config: DetectorConfig, curve_set) -> list:
    """Threshold and probabilities at every catalog SNR level."""
    solver = ThresholdSolver(curve_set)
    thresholds, pfa, pd = solver.catalog_thresholds(config.rtp_false_alarm, config.sensitivity)
    return [
        {
            'snr_level': float(snr),
            'threshold': float(thr),
            'rtp_false_alarm': float(fa),
            'rtp_detection': float(d),
        }
        for snr, thr, fa, d in zip(curve_set.snr_levels, thresholds, pfa, pd)
    ]


def run(args) -> int:
    config = DetectorConfig.from_dict(load_config(args.config))
    scores_rate = args.scores_rate or config.resample_rate

    signal_scores: Optional[RawScoreData] = None
    noise_scores: Optional[RawScoreData] = None
    if args.signal_scores:
        signal_scores = load_raw_scores(args.signal_scores, scores_rate)
    if args.noise_scores:
        noise_scores = load_raw_scores(args.noise_scores, scores_rate)

    diagnostics = Diagnostics()
    prepared = prepare_detector(config, signal_scores, noise_scores, diagnostics=diagnostics)

    if not args.audio:
        print(json.dumps(threshold_table(config, prepared.curve_set), indent=2))
        return 0

    if not args.sample_rate:
        logger.error("--sample-rate is required with --audio")
        return 2

    audio = np.load(args.audio)
    detector = NeymanPearsonDetector(config, prepared.curve_set, prepared.eigen_data,
                                     diagnostics)
    result = detector.detect(audio, args.sample_rate)
    print(result.to_json())
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='np-detector: Neyman-Pearson detector for passive acoustic monitoring',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Threshold table from a config file
    np-detector --config /etc/np-detector/airgun.toml

    # Detection with an energy detector
    np-detector --config airgun.toml --audio recording.npy --sample-rate 48000

    # Coloured-noise estimator-correlator
    np-detector --config airgun_ecc.toml --signal-scores signal.npy \\
        --noise-scores noise.npy --audio recording.npy --sample-rate 48000
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--audio', '-a',
        help='Recording to process (.npy, 1-D)'
    )
    parser.add_argument(
        '--sample-rate', '-r',
        type=float,
        help='Sample rate of the recording [Hz]'
    )
    parser.add_argument(
        '--signal-scores',
        help='Signal training observations (.npy, observations x samples)'
    )
    parser.add_argument(
        '--noise-scores',
        help='Noise training observations (.npy, observations x samples)'
    )
    parser.add_argument(
        '--scores-rate',
        type=float,
        help='Sample rate of the training observations [Hz] (default: resample_rate)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        sys.exit(run(args))
    except NPDetectorError as e:
        logger.error(f"{e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
