"""Command-line entry point: temporal peaks, local phase and local frequency of .npy stacks.

Stacks are numpy arrays shaped (z, y, x), usually 8-bit. `peaks` turns an
intensity stack into a 0/255 peak stack. `phase` and `frequency` consume
such a peak stack.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np

from analysis.settings import FRAME_RATE, PeakSettings, PhaseSettings, default_reference
from analysis.stack_analyzer import StackAnalyzer, coherence_map, frequency_map, phase_map
from shared.models import PeakAnalysisError

logger = logging.getLogger("peakphase")


def build_parser() -> argparse.ArgumentParser:
    defaults = PeakSettings()
    parser = argparse.ArgumentParser(
        prog="peakphase",
        description="Per-pixel temporal peak detection and phase analysis of image stacks.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress and degenerate cases.")
    sub = parser.add_subparsers(dest="command", required=True)

    peaks = sub.add_parser("peaks", help="Detect temporal peaks; writes a 0/255 uint8 stack.")
    peaks.add_argument("input", type=Path)
    peaks.add_argument("output", type=Path)
    peaks.add_argument("--peak-fraction", type=float, default=defaults.peak_fraction,
                       help="Target fraction of time above threshold.")
    peaks.add_argument("--min-distance", type=float, default=defaults.min_distance,
                       help="Minimal distance between peaks (frames).")
    peaks.add_argument("--no-filtering", dest="do_filtering", action="store_false",
                       help="Skip the parabola quality filter.")
    peaks.add_argument("--min-width", type=float, default=defaults.min_width)
    peaks.add_argument("--max-width", type=float, default=defaults.max_width)
    peaks.add_argument("--min-height", type=float, default=defaults.min_height,
                       help="Minimum peak intensity above background.")
    peaks.add_argument("--workers", type=int, default=1, help="Number of parallel worker threads.")

    phase = sub.add_parser("phase", help="Local phase (or coherence) against a reference pixel.")
    phase.add_argument("input", type=Path, help="Peak stack written by 'peaks'.")
    phase.add_argument("output", type=Path)
    phase.add_argument("--ref-x", type=int, default=None, help="Reference x (default: image centre).")
    phase.add_argument("--ref-y", type=int, default=None, help="Reference y (default: image centre).")
    phase.add_argument("--mask", type=Path, default=None, help="2D .npy mask; pixels <= 0 are skipped.")
    phase.add_argument("--radians", action="store_true", help="Write radians instead of degrees.")
    phase.add_argument("--coherence", action="store_true", help="Write phase coherence instead of phase.")

    freq = sub.add_parser("frequency", help="Local beat frequency (per minute).")
    freq.add_argument("input", type=Path, help="Peak stack written by 'peaks'.")
    freq.add_argument("output", type=Path)
    freq.add_argument("--frame-rate", type=float, default=FRAME_RATE.default,
                      help="Frames per second.")
    return parser


def _run_peaks(args: argparse.Namespace) -> np.ndarray:
    settings = PeakSettings(
        peak_fraction=args.peak_fraction,
        min_distance=args.min_distance,
        do_filtering=args.do_filtering,
        min_width=args.min_width,
        max_width=args.max_width,
        min_height=args.min_height,
    ).normalized()
    analyzer = StackAnalyzer(settings, workers=args.workers)
    return analyzer.peak_stack(np.load(args.input))


def _run_phase(args: argparse.Namespace) -> np.ndarray:
    stack = np.load(args.input)
    ref_x, ref_y = default_reference(stack.shape)
    settings = PhaseSettings(
        reference_x=ref_x if args.ref_x is None else args.ref_x,
        reference_y=ref_y if args.ref_y is None else args.ref_y,
        degrees=not args.radians,
    )
    mask = np.load(args.mask) if args.mask is not None else None
    if args.coherence:
        return coherence_map(stack, settings, mask)
    return phase_map(stack, settings, mask)


def _run_frequency(args: argparse.Namespace) -> np.ndarray:
    return frequency_map(np.load(args.input), args.frame_rate)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    runners = {"peaks": _run_peaks, "phase": _run_phase, "frequency": _run_frequency}
    try:
        result = runners[args.command](args)
    except (OSError, ValueError, PeakAnalysisError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    np.save(args.output, result)
    logger.info("Wrote %s %s to %s", result.dtype, result.shape, args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
