"""
Timing Utilities
================

Lightweight profiling for the generation pipeline. A singleton
`TimingStats` aggregates wall-clock durations per function and the
`time_it` decorator feeds it.

Rasterization runs the same functions on several worker threads at
once, so recursion tracking is per thread and the aggregate store
is guarded by a lock.
"""

import functools
import threading
import time
from collections import defaultdict
from typing import Dict

import numpy as np

_local = threading.local()

class TimingStats:
    """
    Singleton aggregating execution times across the application.

    Collects durations for decorated functions and reports mean,
    median, standard deviation and totals since the last reset.
    Recording is off until `enabled` is set, so long-lived callers
    of the generator do not accumulate samples nobody reads.
    """
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(TimingStats, cls).__new__(cls)
                cls._instance.timings = defaultdict(list)
                cls._instance.call_counts = defaultdict(int)
                cls._instance.enabled = False
        return cls._instance

    def add_timing(self, func_name: str, execution_time: float):
        """
        Records one measurement.

        Args:
            func_name (str): Qualified name of the timed function.
            execution_time (float): Duration in seconds.
        """
        with self._lock:
            self.timings[func_name].append(execution_time)
            self.call_counts[func_name] += 1

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        """
        Summarises everything recorded since the last reset.

        Returns:
            Dict[str, Dict[str, float]]: function name -> mean, median,
                                         std, min, max, calls, total_time.
        """
        with self._lock:
            snapshot = {name: list(values) for name, values in self.timings.items() if values}
            counts = dict(self.call_counts)
        stats_dict = {}
        for func_name, timings in snapshot.items():
            stats_dict[func_name] = {
                'mean': float(np.mean(timings)),
                'median': float(np.median(timings)),
                'std': float(np.std(timings)),
                'min': float(np.min(timings)),
                'max': float(np.max(timings)),
                'calls': counts[func_name],
                'total_time': float(np.sum(timings)),
            }
        return stats_dict

    def print_report(self):
        """Prints a table of the current statistics, slowest first."""
        stats = self.get_stats()
        sorted_funcs = sorted(stats.items(), key=lambda x: x[1]['total_time'], reverse=True)

        print(f"{'function':<40} {'total(s)':<12} {'calls':<8} {'mean(s)':<10} {'std(s)':<10}")
        for func_name, func_stats in sorted_funcs:
            print(f"{func_name:<40} {func_stats['total_time']:<12.4f} {func_stats['calls']:<8} "
                  f"{func_stats['mean']:<10.4f} {func_stats['std']:<10.4f}")

    def reset(self):
        """Clears all recorded statistics."""
        with self._lock:
            self.timings.clear()
            self.call_counts.clear()

ENABLE_TIMING = True

def _depths() -> Dict[str, int]:
    depths = getattr(_local, 'depths', None)
    if depths is None:
        depths = _local.depths = defaultdict(int)
    return depths

def time_it(func):
    """
    Decorator recording the execution time of `func` in TimingStats.

    Only the outermost call of a recursive chain on a given thread is
    timed, so recursive builders are counted once per top-level call.
    """
    if not ENABLE_TIMING:
        return func
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        stats = TimingStats()
        if not stats.enabled:
            return func(*args, **kwargs)
        key = func.__qualname__
        depths = _depths()
        depths[key] += 1
        start = time.perf_counter() if depths[key] == 1 else None
        try:
            result = func(*args, **kwargs)
            if start is not None:
                stats.add_timing(key, time.perf_counter() - start)
            return result
        finally:
            depths[key] -= 1

    return wrapper
