"""
Random Art Entry Point
======================

Command-line front end for the seed-driven art generator. Renders
one image per seed, saves each as a PNG, and records the quality
gate's per-attempt and per-image statistics.

Key Components:
    - Argument Parsing: CLI configuration with the generator defaults.
    - Logging: CSV and TensorBoard event sinks (async, thread-safe).
    - Rendering: renderer.generate_image for each seed.
    - Output: PNG encoding through Pillow.
"""

import argparse
import logging
import os
import re
from datetime import datetime
from typing import List, Optional

import numpy as np
from PIL import Image
from tqdm import tqdm

from framework import GeneratorConfig, RenderResult
from genart import fnv_hash
from logger import ATTEMPT_FIELDS, IMAGE_FIELDS, CSVLogger, CompositeLogger, TensorBoardLogger
from renderer import generate_image
from timing_utils import TimingStats

logger = logging.getLogger(__name__)


def image_filename(seed: str) -> str:
    """
    Builds a filesystem-safe PNG name for `seed`.

    Unsafe characters are dropped; the seed hash keeps names unique
    for seeds that differ only in dropped characters.
    """
    slug = re.sub(r'[^A-Za-z0-9_-]+', '', seed)[:40]
    return f"{slug or 'seed'}-{fnv_hash(seed):08x}.png"


def save_png(pixels: np.ndarray, path: str):
    """Encodes an RGBA uint8 buffer as PNG."""
    Image.fromarray(pixels).save(path, format='PNG')


def build_parser() -> argparse.ArgumentParser:
    defaults = GeneratorConfig()
    parser = argparse.ArgumentParser(description="Generate random art from seed strings.")
    parser.add_argument('seeds', nargs='+',
                        help='One or more seed strings; one image per seed.')
    parser.add_argument('--size', type=int, default=512,
                        help='Image side length in pixels.')
    parser.add_argument('--output_dir', type=str, default='images',
                        help='Directory for the generated PNGs.')
    parser.add_argument('--min_depth', type=int, default=defaults.min_depth,
                        help='Depth below which trees never end in a leaf.')
    parser.add_argument('--max_depth', type=int, default=defaults.max_depth,
                        help='Maximum expression tree depth.')
    parser.add_argument('--max_attempts', type=int, default=defaults.max_attempts,
                        help='Trees built per seed before keeping a flat image.')
    parser.add_argument('--accept_threshold', type=float, default=defaults.accept_threshold,
                        help='Diversity above which an image is accepted.')
    parser.add_argument('--warn_threshold', type=float, default=defaults.warn_threshold,
                        help='Final diversity at or below which a warning is logged.')
    parser.add_argument('--workers', type=int, default=None,
                        help='Rasterizer threads. Default: all hardware threads.')
    parser.add_argument('--log_dir', type=str, default=None,
                        help='Override log output directory.')
    parser.add_argument('--time_it', action='store_true',
                        help='Print a per-function timing report after each seed.')
    parser.add_argument('--print_tree', action='store_true',
                        help='Log each accepted expression tree.')
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.size <= 0:
        parser.error('--size must be a positive integer')
    if any(seed == '' for seed in args.seeds):
        parser.error('seed must not be empty')
    if args.workers is not None and args.workers < 1:
        parser.error('--workers must be at least 1')
    if args.max_depth < 0:
        parser.error('--max_depth must be >= 0')
    if args.max_attempts < 1:
        parser.error('--max_attempts must be >= 1')
    return args


def run(argv: Optional[List[str]] = None) -> List[RenderResult]:
    """
    Renders every seed given on the command line.

    Sets up the event loggers, generates and saves one PNG per seed,
    and always closes the loggers. A failure on one seed is reported
    and the remaining seeds still run.
    """
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    config = GeneratorConfig(
        min_depth=args.min_depth,
        max_depth=args.max_depth,
        max_attempts=args.max_attempts,
        accept_threshold=args.accept_threshold,
        warn_threshold=args.warn_threshold,
        workers=args.workers,
    )

    if args.log_dir:
        log_dir = args.log_dir
    else:
        run_name = f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        log_dir = os.path.join("logs", run_name)
    os.makedirs(log_dir, exist_ok=True)
    os.makedirs(args.output_dir, exist_ok=True)

    attempt_logger = CSVLogger(
        log_file_path=os.path.join(log_dir, "attempts.csv"),
        fieldnames=ATTEMPT_FIELDS,
        allowed_event_types=['attempt']
    )
    image_logger = CSVLogger(
        log_file_path=os.path.join(log_dir, "images.csv"),
        fieldnames=IMAGE_FIELDS,
        allowed_event_types=['image']
    )
    tensorboard_logger = TensorBoardLogger(log_dir=log_dir)
    event_logger = CompositeLogger(loggers=[attempt_logger, image_logger, tensorboard_logger])

    print(f"Generating {len(args.seeds)} image(s) at {args.size}x{args.size}.")
    print(f"Images will be saved in: {args.output_dir}")
    print(f"Logs will be saved in: {log_dir}")

    if args.time_it:
        timing_stats = TimingStats()
        timing_stats.enabled = True
        print("Function timing is ENABLED.")

    results = []
    try:
        for step, seed in enumerate(tqdm(args.seeds, desc="Generating")):
            try:
                result = generate_image(seed, args.size, config=config,
                                        event_logger=event_logger, step=step)
            except Exception as e:
                print(f"An error occurred while generating seed '{seed}': {e}")
                continue

            path = os.path.join(args.output_dir, image_filename(seed))
            save_png(result.pixels, path)
            results.append(result)
            if args.print_tree:
                logger.info("Expression tree for seed '%s':\n%s", seed, result.tree.to_string())
            print(f"{seed!r}: diversity={result.diversity:.2f} attempts={result.attempts} -> {path}")

            if args.time_it:
                print(f"\n--- Function Timing Report for seed {seed!r} ---")
                timing_stats.print_report()
                timing_stats.reset()
    finally:
        event_logger.close()
        if args.time_it:
            timing_stats.enabled = False
        print("Logger closed.")
    return results


def main(argv: Optional[List[str]] = None):
    """Console entry point."""
    run(argv)


if __name__ == "__main__":
    main()
