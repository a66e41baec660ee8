"""
Pytest fixtures for the random art tests.

Trees are built from explicitly seeded random sources so every test
sees the same structure on every run.
"""

import random
from typing import Any, Dict, List, Tuple

import pytest

from framework import GeneratorConfig, Logger
from genart import build_random_tree, constant, mix, product, sin_node, variable_x, variable_y


class RecordingLogger(Logger):
    """Event sink that keeps every event in memory."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False

    def log_event(self, event_type: str, data: Dict[str, Any]):
        self.events.append((event_type, dict(data)))

    def close(self):
        self.closed = True

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [data for kind, data in self.events if kind == event_type]


class ConstantLeafRandom(random.Random):
    """Random source whose uniform choices always pick the last option.

    Combined with max_depth=0 every tree is a single Constant leaf,
    which renders as a perfectly flat image.
    """

    def randrange(self, start, stop=None, step=1):
        upper = start if stop is None else stop
        return upper - 1


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def constant_leaf_rng() -> ConstantLeafRandom:
    return ConstantLeafRandom(7)


@pytest.fixture
def small_config() -> GeneratorConfig:
    """Shallow trees keep rendering fast while exercising every node kind."""
    return GeneratorConfig(min_depth=2, max_depth=6, workers=4)


@pytest.fixture
def sample_tree():
    """Mix(0.25, Sin(0, 1, x), Product(y, Constant(0.5, -0.5, 1)))"""
    return mix(
        0.25,
        sin_node(0.0, 1.0, variable_x()),
        product(variable_y(), constant(0.5, -0.5, 1.0)),
    )


@pytest.fixture
def random_tree():
    return build_random_tree(3, 8, random.Random(1234))
