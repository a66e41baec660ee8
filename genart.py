"""
Generative Art Module
=====================

Implements the expression trees behind seed-driven random art.
Each artwork is a mathematical expression that maps 2D pixel
coordinates in [-1, 1] to an (r, g, b) triple, which is then
clamped and quantised to 8-bit color by the renderer.

Key components:
    - NodeKind / OpType: closed set of node variants and their arity
    - ExpressionNode: immutable, strictly-owned expression tree
    - evaluate: single recursive evaluator (scalars or numpy arrays)
    - build_random_tree: depth-bounded random tree construction
    - fnv_hash: 32-bit seed hash feeding the random source

Operations are classified as terminal (leaf nodes), unary (one
child), or binary (two children).
"""

import math
import random
from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Optional, Tuple, Union

import numpy as np

from timing_utils import time_it

# Scalar float or an ndarray of coordinates/channel values
Value = Union[float, np.ndarray]
RGB = Tuple[Value, Value, Value]

# --- Node vocabulary ---
class OpType(Enum):
    TERMINAL = auto()
    UNARY = auto()
    BINARY = auto()

class NodeKind(IntEnum):
    CONSTANT = 0
    VARIABLE_X = auto()
    VARIABLE_Y = auto()
    SIN = auto()
    WELL = auto()
    FRACTAL_NOISE = auto()
    PRODUCT = auto()
    MIX = auto()

NODE_ARITY = {
    NodeKind.CONSTANT: OpType.TERMINAL,
    NodeKind.VARIABLE_X: OpType.TERMINAL,
    NodeKind.VARIABLE_Y: OpType.TERMINAL,
    NodeKind.SIN: OpType.UNARY,
    NodeKind.WELL: OpType.UNARY,
    NodeKind.FRACTAL_NOISE: OpType.UNARY,
    NodeKind.PRODUCT: OpType.BINARY,
    NodeKind.MIX: OpType.BINARY,
}

# Number of float parameters each kind carries
NODE_PARAM_COUNT = {
    NodeKind.CONSTANT: 3,
    NodeKind.VARIABLE_X: 0,
    NodeKind.VARIABLE_Y: 0,
    NodeKind.SIN: 2,
    NodeKind.WELL: 0,
    NodeKind.FRACTAL_NOISE: 1,
    NodeKind.PRODUCT: 0,
    NodeKind.MIX: 1,
}

# Choice order matters: index i is what rng.randrange(n) == i selects.
LEAF_KINDS = (NodeKind.VARIABLE_X, NodeKind.VARIABLE_Y, NodeKind.CONSTANT)
# Well is part of the grammar but never drawn by the random builder.
BRANCH_KINDS = (NodeKind.SIN, NodeKind.MIX, NodeKind.PRODUCT, NodeKind.FRACTAL_NOISE)

LEAF_PROBABILITY = 0.2
DEFAULT_MIN_DEPTH = 10
DEFAULT_MAX_DEPTH = 30


# --- Expression Tree ---
# Trees are built once per generation attempt and never mutated,
# which is what lets worker threads share one tree without locks.
@dataclass(frozen=True)
class ExpressionNode:
    kind: NodeKind
    params: Tuple[float, ...] = ()
    left: Optional['ExpressionNode'] = None
    right: Optional['ExpressionNode'] = None

    def __post_init__(self):
        op_type = NODE_ARITY[self.kind]
        if len(self.params) != NODE_PARAM_COUNT[self.kind]:
            raise ValueError(
                f"{self.kind.name} takes {NODE_PARAM_COUNT[self.kind]} parameters, got {len(self.params)}"
            )
        needs_left = op_type in (OpType.UNARY, OpType.BINARY)
        needs_right = op_type == OpType.BINARY
        if (self.left is not None) != needs_left or (self.right is not None) != needs_right:
            raise ValueError(f"{self.kind.name} has the wrong number of children")

    @property
    def op_type(self) -> OpType:
        return NODE_ARITY[self.kind]

    def children(self) -> Tuple['ExpressionNode', ...]:
        return tuple(c for c in (self.left, self.right) if c is not None)

    def depth(self) -> int:
        """Longest root-to-leaf path, counted in edges (a lone leaf is 0)."""
        kids = self.children()
        if not kids:
            return 0
        return 1 + max(child.depth() for child in kids)

    def node_count(self) -> int:
        return 1 + sum(child.node_count() for child in self.children())

    def to_string(self) -> str:
        """Human-readable rendering used for diagnostics only; never parsed."""
        kind = self.kind
        if kind == NodeKind.CONSTANT:
            r, g, b = self.params
            return f"Constant({r:.2f}, {g:.2f}, {b:.2f})"
        if kind == NodeKind.VARIABLE_X:
            return "VariableX"
        if kind == NodeKind.VARIABLE_Y:
            return "VariableY"
        if kind == NodeKind.SIN:
            phase, freq = self.params
            return f"Sin(phase={phase:.2f}, freq={freq:.2f}, sub={self.left.to_string()})"
        if kind == NodeKind.WELL:
            return f"Well(sub={self.left.to_string()})"
        if kind == NodeKind.FRACTAL_NOISE:
            return f"FractalNoise(scale={self.params[0]:.2f}, sub={self.left.to_string()})"
        if kind == NodeKind.PRODUCT:
            return f"Product(left={self.left.to_string()}, right={self.right.to_string()})"
        if kind == NodeKind.MIX:
            return (f"Mix(w={self.params[0]:.2f}, left={self.left.to_string()}, "
                    f"right={self.right.to_string()})")
        raise ValueError(f"Unknown node kind: {kind!r}")

    def __str__(self) -> str:
        return self.to_string()


# Small constructors so tests and callers don't spell out params tuples.
def constant(r: float, g: float, b: float) -> ExpressionNode:
    return ExpressionNode(NodeKind.CONSTANT, (r, g, b))

def variable_x() -> ExpressionNode:
    return ExpressionNode(NodeKind.VARIABLE_X)

def variable_y() -> ExpressionNode:
    return ExpressionNode(NodeKind.VARIABLE_Y)

def sin_node(phase: float, freq: float, sub: ExpressionNode) -> ExpressionNode:
    return ExpressionNode(NodeKind.SIN, (phase, freq), left=sub)

def well(sub: ExpressionNode) -> ExpressionNode:
    return ExpressionNode(NodeKind.WELL, left=sub)

def fractal_noise(scale: float, sub: ExpressionNode) -> ExpressionNode:
    return ExpressionNode(NodeKind.FRACTAL_NOISE, (scale,), left=sub)

def product(left: ExpressionNode, right: ExpressionNode) -> ExpressionNode:
    return ExpressionNode(NodeKind.PRODUCT, left=left, right=right)

def mix(weight: float, left: ExpressionNode, right: ExpressionNode) -> ExpressionNode:
    return ExpressionNode(NodeKind.MIX, (weight,), left=left, right=right)


# --- Evaluation ---
# One recursive function over the closed set of kinds. Works on
# plain floats (single pixel) and on equally shaped ndarrays (a
# whole band of pixels at once) since every op is a numpy ufunc.
def _well(v: Value) -> Value:
    # 1 + v^2 >= 1, so the division is always defined
    return 1.0 - 2.0 / (1.0 + v * v)

def _smooth(v: Value) -> Value:
    return 0.5 * (np.sin(5.0 * v) + np.cos(5.0 * v))

def evaluate(node: ExpressionNode, x: Value, y: Value) -> RGB:
    """Evaluate `node` at (x, y) and return an (r, g, b) triple.

    Constants come back as plain floats even when x and y are
    arrays; callers that need full arrays broadcast the result.
    """
    kind = node.kind
    if kind == NodeKind.CONSTANT:
        return node.params
    if kind == NodeKind.VARIABLE_X:
        return x, x, x
    if kind == NodeKind.VARIABLE_Y:
        return y, y, y
    if kind == NodeKind.SIN:
        phase, freq = node.params
        r, g, b = evaluate(node.left, x, y)
        return np.sin(phase + freq * r), np.sin(phase + freq * g), np.sin(phase + freq * b)
    if kind == NodeKind.WELL:
        r, g, b = evaluate(node.left, x, y)
        return _well(r), _well(g), _well(b)
    if kind == NodeKind.FRACTAL_NOISE:
        scale = node.params[0]
        r, g, b = evaluate(node.left, x * scale, y * scale)
        return _smooth(r), _smooth(g), _smooth(b)
    if kind == NodeKind.PRODUCT:
        r1, g1, b1 = evaluate(node.left, x, y)
        r2, g2, b2 = evaluate(node.right, x, y)
        return r1 * r2, g1 * g2, b1 * b2
    if kind == NodeKind.MIX:
        w = node.params[0]
        r1, g1, b1 = evaluate(node.left, x, y)
        r2, g2, b2 = evaluate(node.right, x, y)
        return w * r1 + (1 - w) * r2, w * g1 + (1 - w) * g2, w * b1 + (1 - w) * b2
    raise ValueError(f"Unknown node kind: {kind!r}")


# --- Random construction ---
def _random_leaf(rng: random.Random) -> ExpressionNode:
    kind = LEAF_KINDS[rng.randrange(len(LEAF_KINDS))]
    if kind == NodeKind.CONSTANT:
        return constant(rng.random() * 2 - 1, rng.random() * 2 - 1, rng.random() * 2 - 1)
    return ExpressionNode(kind)

def _build(min_depth: int, max_depth: int, rng: random.Random) -> ExpressionNode:
    if max_depth == 0 or (min_depth <= 0 and rng.random() < LEAF_PROBABILITY):
        return _random_leaf(rng)

    kind = BRANCH_KINDS[rng.randrange(len(BRANCH_KINDS))]
    if kind == NodeKind.SIN:
        phase = rng.random() * 2 * math.pi
        freq = 0.5 + rng.random() * 3.0
        return sin_node(phase, freq, _build(min_depth - 1, max_depth - 1, rng))
    if kind == NodeKind.MIX:
        weight = rng.random()
        left = _build(min_depth - 1, max_depth - 1, rng)
        right = _build(min_depth - 1, max_depth - 1, rng)
        return mix(weight, left, right)
    if kind == NodeKind.PRODUCT:
        left = _build(min_depth - 1, max_depth - 1, rng)
        right = _build(min_depth - 1, max_depth - 1, rng)
        return product(left, right)
    scale = 0.5 + rng.random() * 2.0
    return fractal_noise(scale, _build(min_depth - 1, max_depth - 1, rng))

@time_it
def build_random_tree(min_depth: int = DEFAULT_MIN_DEPTH,
                      max_depth: int = DEFAULT_MAX_DEPTH,
                      rng: Optional[random.Random] = None) -> ExpressionNode:
    """Create a random expression tree bounded by [min_depth, max_depth].

    A leaf is forced once max_depth reaches 0; below min_depth every
    node is an operator, past it each node becomes a leaf with
    probability 0.2. max_depth drops by one per level, so the
    recursion always terminates.

    `rng` is the only source of randomness. Pass the same seeded
    instance to replay the exact same sequence of trees.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    if rng is None:
        rng = random.Random()
    return _build(min_depth, max_depth, rng)


# --- Seeding ---
FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619

def fnv_hash(seed: str) -> int:
    """32-bit FNV hash of the UTF-8 bytes of `seed`."""
    h = FNV_OFFSET_BASIS
    for c in seed.encode('utf-8'):
        h = ((h * FNV_PRIME) & 0xFFFFFFFF) ^ c
    return h
