"""
Parallel Rasterizer & Quality Gate
==================================

Turns a seed string into a square RGBA image:

    seed -> fnv_hash -> random.Random -> expression tree
         -> parallel rasterization -> diversity check -> accept / rebuild

Thread model:
    Each rasterization pass spawns a fresh thread pool with one task
    per row-band. Bands are contiguous and disjoint, so every pixel is
    written by exactly one task and no locking is needed. Band
    evaluation is vectorized with numpy, whose ufuncs release the GIL,
    so the threads genuinely run in parallel. Leaving the executor
    context joins all workers before the image is inspected.

    The random source is only touched on the calling thread, strictly
    before a pass starts.
"""

import concurrent.futures
import logging
import math
import os
import random
import threading
import time
from typing import List, Optional, Tuple

import numpy as np

from framework import GenerationCancelled, GeneratorConfig, Logger, RenderResult
from genart import ExpressionNode, Value, build_random_tree, evaluate, fnv_hash
from timing_utils import time_it

logger = logging.getLogger(__name__)

# Pixels evaluated per vectorized call inside a band. Bounds the
# temporaries held along a deep recursion and sets the cancellation
# granularity; a chunk is always at least one full row.
CHUNK_PIXELS = 16384


def available_workers() -> int:
    """Number of hardware threads this process may run on.

    Honours CPU affinity masks, so pinned processes and containers
    restricted with cpusets do not oversubscribe.
    """
    process_cpu_count = getattr(os, "process_cpu_count", None)
    if process_cpu_count is not None:
        return process_cpu_count() or 1
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0)) or 1
    return os.cpu_count() or 1


def partition_rows(size: int, workers: int) -> List[Tuple[int, int]]:
    """
    Splits `size` rows into `workers` contiguous [start, end) bands.

    Every band but the last gets size // workers rows; the last band
    absorbs the remainder. With more workers than rows most bands are
    empty and the last one covers everything.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    rows_per_worker = size // workers
    bands = []
    for worker in range(workers):
        start = worker * rows_per_worker
        end = size if worker == workers - 1 else start + rows_per_worker
        bands.append((start, end))
    return bands


def _check_size(size: int):
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 1:
        raise ValueError(f"size must be a positive integer, got {size!r}")


def _to_byte(channel: Value, shape: Tuple[int, ...]) -> np.ndarray:
    # Saturate to [-1, 1], then map onto 1..255 with 0 at 128.
    values = np.broadcast_to(np.asarray(channel, dtype=np.float64), shape)
    values = np.clip(values, -1.0, 1.0)
    return np.rint(128.0 + values * 127.0).astype(np.uint8)


def _render_band(tree: ExpressionNode, size: int, start: int, end: int,
                 pixels: np.ndarray, cancel: Optional[threading.Event]):
    """Evaluates rows [start, end) of the image and writes them into `pixels`."""
    axis = 2.0 * np.arange(size, dtype=np.float64) / size - 1.0
    chunk_rows = max(1, CHUNK_PIXELS // size)
    for chunk_start in range(start, end, chunk_rows):
        if cancel is not None and cancel.is_set():
            raise GenerationCancelled(f"render cancelled at row {chunk_start}")
        chunk_end = min(chunk_start + chunk_rows, end)
        x, y = np.meshgrid(axis, axis[chunk_start:chunk_end])
        r, g, b = evaluate(tree, x, y)
        band = pixels[chunk_start:chunk_end]
        band[..., 0] = _to_byte(r, x.shape)
        band[..., 1] = _to_byte(g, x.shape)
        band[..., 2] = _to_byte(b, x.shape)


@time_it
def rasterize(tree: ExpressionNode, size: int, workers: Optional[int] = None,
              cancel: Optional[threading.Event] = None) -> np.ndarray:
    """
    Renders `tree` into a (size, size, 4) uint8 RGBA buffer.

    Pixel (px, py) samples the tree at x = 2*px/size - 1,
    y = 2*py/size - 1. Alpha is always 255. The result does not
    depend on `workers`.

    Raises:
        GenerationCancelled: if `cancel` is set while bands are pending.
        Any exception raised by a worker is re-raised here; a failed
        band fails the whole pass.
    """
    _check_size(size)
    num_workers = workers if workers is not None else available_workers()

    pixels = np.zeros((size, size, 4), dtype=np.uint8)
    pixels[..., 3] = 255

    bands = [(start, end) for start, end in partition_rows(size, num_workers) if end > start]
    with concurrent.futures.ThreadPoolExecutor(max_workers=num_workers,
                                               thread_name_prefix='raster') as executor:
        futures = [
            executor.submit(_render_band, tree, size, start, end, pixels, cancel)
            for start, end in bands
        ]
    # The with-block has joined every worker; surface the first failure.
    for future in futures:
        future.result()
    return pixels


def color_diversity(pixels: np.ndarray) -> float:
    """
    Joint standard deviation of the R, G and B channels.

    sqrt(sum over channels of E[v^2] - E[v]^2), computed on the 8-bit
    values. A cheap proxy for "is this image visually flat".
    """
    rgb = pixels[..., :3].reshape(-1, 3).astype(np.float64)
    mean = rgb.mean(axis=0)
    mean_sq = (rgb * rgb).mean(axis=0)
    total = float(np.sum(mean_sq - mean * mean))
    # Float cancellation can leave a tiny negative on flat images
    return math.sqrt(max(total, 0.0))


def render_with_rng(rng: random.Random, size: int,
                    config: Optional[GeneratorConfig] = None,
                    event_logger: Optional[Logger] = None,
                    cancel: Optional[threading.Event] = None,
                    seed: str = '',
                    step: Optional[int] = None) -> RenderResult:
    """
    Runs the build / rasterize / quality-gate loop on an already seeded `rng`.

    Up to `config.max_attempts` trees are drawn from `rng` in sequence.
    The first image whose diversity exceeds `accept_threshold` is kept;
    otherwise the last image is kept. A final diversity at or below
    `warn_threshold` is logged as a warning and flagged on the result.

    Args:
        rng: Random source; consumed on this thread only.
        size: Side length in pixels.
        config: Generation parameters (defaults if None).
        event_logger: Optional sink for 'attempt' and 'image' events.
        cancel: Optional event that aborts rasterization when set.
        seed: Seed label carried into the result and events.
        step: Optional run-wide index attached to events.
    """
    _check_size(size)
    config = config or GeneratorConfig()

    pixels = None
    tree = None
    diversity = 0.0
    attempts = 0
    for attempt in range(config.max_attempts):
        attempts = attempt + 1
        tree = build_random_tree(config.min_depth, config.max_depth, rng)
        logger.debug("Expression tree for seed '%s' (attempt %d):\n%s", seed, attempts, tree)

        started = time.perf_counter()
        pixels = rasterize(tree, size, workers=config.workers, cancel=cancel)
        render_time = time.perf_counter() - started

        diversity = color_diversity(pixels)
        accepted = diversity > config.accept_threshold
        if event_logger is not None:
            event_logger.log_event('attempt', {
                'step': step,
                'seed': seed,
                'attempt': attempts,
                'diversity': diversity,
                'accepted': accepted,
                'node_count': tree.node_count(),
                'depth': tree.depth(),
                'render_time': render_time,
            })
        if accepted:
            break
        if attempts < config.max_attempts:
            logger.info("Low diversity (%.2f) for seed '%s'. Retrying with new expression tree...",
                        diversity, seed)

    low_diversity = diversity <= config.warn_threshold
    if low_diversity:
        logger.warning("Generated image for seed '%s' still has low diversity (%.2f after %d attempts).",
                       seed, diversity, attempts)
    logger.info("Seed '%s': size=%d attempts=%d diversity=%.2f", seed, size, attempts, diversity)

    if event_logger is not None:
        event_logger.log_event('image', {
            'step': step,
            'seed': seed,
            'size': size,
            'attempts': attempts,
            'diversity': diversity,
            'low_diversity': low_diversity,
            'expression': tree.to_string(),
        })

    return RenderResult(
        seed=seed,
        size=size,
        pixels=pixels,
        tree=tree,
        diversity=diversity,
        attempts=attempts,
        low_diversity=low_diversity,
    )


@time_it
def generate_image(seed: str, size: int,
                   config: Optional[GeneratorConfig] = None,
                   event_logger: Optional[Logger] = None,
                   cancel: Optional[threading.Event] = None,
                   step: Optional[int] = None) -> RenderResult:
    """
    Generates the artwork for `seed` at `size` x `size` pixels.

    The random source is freshly seeded from fnv_hash(seed) on every
    call, so repeated calls with the same arguments return identical
    pixels.
    """
    _check_size(size)
    rng = random.Random(fnv_hash(seed))
    return render_with_rng(rng, size, config=config, event_logger=event_logger,
                           cancel=cancel, seed=seed, step=step)


def generate(seed: str, size: int) -> np.ndarray:
    """Returns only the RGBA pixel buffer for `seed`."""
    return generate_image(seed, size).pixels
