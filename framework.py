"""
Core Framework Components
=========================

Shared contracts used throughout the generator: the configuration
object for a generation run, the result handed back to callers, the
abstract event-logging interface, and the error raised when a
render is cancelled.
"""

import abc
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from genart import DEFAULT_MAX_DEPTH, DEFAULT_MIN_DEPTH, ExpressionNode


class GenerationCancelled(RuntimeError):
    """Raised when a caller-supplied cancel event stops a render mid-pass."""


@dataclass
class GeneratorConfig:
    """
    Tunable parameters of a generation call.

    Attributes:
        min_depth (int): Depth below which the builder never emits a leaf.
        max_depth (int): Hard cap on root-to-leaf path length.
        max_attempts (int): Trees built before the gate gives up and keeps
            the last image.
        accept_threshold (float): Diversity above which an image is accepted
            immediately.
        warn_threshold (float): Final diversity at or below which the image
            is flagged as low diversity.
        workers (Optional[int]): Rasterizer thread count. None uses every
            available hardware thread.
    """
    min_depth: int = DEFAULT_MIN_DEPTH
    max_depth: int = DEFAULT_MAX_DEPTH
    max_attempts: int = 3
    accept_threshold: float = 30.0
    warn_threshold: float = 50.0
    workers: Optional[int] = None

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")


@dataclass
class RenderResult:
    """
    Outcome of one `generate_image` call.

    Attributes:
        seed (str): Seed string the random source was derived from.
        size (int): Side length of the square image.
        pixels (np.ndarray): (size, size, 4) uint8 RGBA buffer, indexed [y, x].
        tree (ExpressionNode): Expression tree that produced `pixels`.
        diversity (float): Joint channel standard deviation of `pixels`.
        attempts (int): Trees built, including the accepted one.
        low_diversity (bool): True when the final diversity is at or below
            the warning threshold.
    """
    seed: str
    size: int
    pixels: np.ndarray
    tree: ExpressionNode
    diversity: float
    attempts: int
    low_diversity: bool


class Logger(abc.ABC):
    """
    Abstract base class for structured event logging.

    Defines the interface for recording generation events and
    statistics to various outputs (CSV, TensorBoard, etc.).
    """
    @abc.abstractmethod
    def log_event(self, event_type: str, data: Dict[str, Any]):
        """
        Logs a specific event.

        Args:
            event_type (str): The category of the event ('attempt', 'image').
            data (Dict[str, Any]): Key-value pairs describing the event.
        """
        pass

    @abc.abstractmethod
    def close(self):
        """
        Finalizes the logging process, flushing buffers and closing files.
        """
        pass
