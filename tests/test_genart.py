"""Tests for the expression tree grammar, builder and seed hash."""

import dataclasses
import math
import random

import numpy as np
import pytest

from genart import (
    BRANCH_KINDS,
    ExpressionNode,
    NodeKind,
    OpType,
    build_random_tree,
    constant,
    evaluate,
    fnv_hash,
    fractal_noise,
    mix,
    product,
    sin_node,
    variable_x,
    variable_y,
    well,
)


def min_leaf_depth(node: ExpressionNode) -> int:
    kids = node.children()
    if not kids:
        return 0
    return 1 + min(min_leaf_depth(child) for child in kids)


def all_kinds(node: ExpressionNode):
    yield node.kind
    for child in node.children():
        yield from all_kinds(child)


class TestFnvHash:
    """Test the 32-bit seed hash."""

    def test_empty_string_is_offset_basis(self):
        assert fnv_hash("") == 2166136261

    def test_single_byte(self):
        expected = ((2166136261 * 16777619) & 0xFFFFFFFF) ^ 97
        assert fnv_hash("a") == expected

    def test_folds_every_byte(self):
        h = 2166136261
        for c in b"adamenger":
            h = ((h * 16777619) & 0xFFFFFFFF) ^ c
        assert fnv_hash("adamenger") == h

    def test_fits_in_32_bits(self):
        for seed in ["", "x", "a much longer seed string with spaces", "ünïcødé"]:
            assert 0 <= fnv_hash(seed) < 2 ** 32

    def test_hashes_utf8_bytes(self):
        h = 2166136261
        for c in "é".encode("utf-8"):
            h = ((h * 16777619) & 0xFFFFFFFF) ^ c
        assert fnv_hash("é") == h

    def test_stable_and_distinct(self):
        assert fnv_hash("seed") == fnv_hash("seed")
        assert fnv_hash("seed") != fnv_hash("seed2")


class TestEvaluate:
    """Test per-kind evaluation semantics."""

    def test_constant_is_position_independent(self):
        node = constant(0.1, -0.2, 0.3)
        assert evaluate(node, -1.0, 1.0) == (0.1, -0.2, 0.3)
        assert evaluate(node, 0.5, 0.5) == (0.1, -0.2, 0.3)

    def test_variables(self):
        assert evaluate(variable_x(), 0.25, -0.75) == (0.25, 0.25, 0.25)
        assert evaluate(variable_y(), 0.25, -0.75) == (-0.75, -0.75, -0.75)

    def test_sin(self):
        node = sin_node(0.5, 2.0, constant(0.1, 0.2, 0.3))
        r, g, b = evaluate(node, 0.0, 0.0)
        assert r == pytest.approx(math.sin(0.5 + 2.0 * 0.1))
        assert g == pytest.approx(math.sin(0.5 + 2.0 * 0.2))
        assert b == pytest.approx(math.sin(0.5 + 2.0 * 0.3))

    def test_product(self):
        node = product(constant(0.5, -0.5, 1.0), variable_x())
        assert evaluate(node, 0.5, 0.0) == pytest.approx((0.25, -0.25, 0.5))

    def test_mix(self):
        node = mix(0.25, constant(1.0, 1.0, 1.0), constant(-1.0, 0.0, 1.0))
        assert evaluate(node, 0.0, 0.0) == pytest.approx((-0.5, 0.25, 1.0))

    def test_well(self):
        node = well(variable_x())
        assert evaluate(node, 0.0, 0.0) == pytest.approx((-1.0, -1.0, -1.0))
        assert evaluate(node, 1.0, 0.0) == pytest.approx((0.0, 0.0, 0.0))
        r, _, _ = evaluate(well(constant(1e6, 0.0, 0.0)), 0.0, 0.0)
        assert r == pytest.approx(1.0)

    def test_fractal_noise_scales_coordinates(self):
        node = fractal_noise(2.0, variable_x())
        r, g, b = evaluate(node, 0.2, -0.9)
        v = 0.4
        expected = 0.5 * (math.sin(5 * v) + math.cos(5 * v))
        assert (r, g, b) == pytest.approx((expected, expected, expected))

    def test_fractal_noise_scales_y_too(self):
        node = fractal_noise(0.5, variable_y())
        r, _, _ = evaluate(node, 0.0, 0.8)
        assert r == pytest.approx(0.5 * (math.sin(2.0) + math.cos(2.0)))

    def test_vectorized_matches_scalar(self, sample_tree):
        xs = np.linspace(-1, 1, 7)
        ys = np.linspace(-1, 1, 7)
        X, Y = np.meshgrid(xs, ys)
        r, g, b = evaluate(sample_tree, X, Y)
        for i in range(7):
            for j in range(7):
                sr, sg, sb = evaluate(sample_tree, float(X[i, j]), float(Y[i, j]))
                assert r[i, j] == pytest.approx(sr)
                assert g[i, j] == pytest.approx(sg)
                assert b[i, j] == pytest.approx(sb)

    def test_random_trees_are_finite(self):
        X, Y = np.meshgrid(np.linspace(-1, 1, 21), np.linspace(-1, 1, 21))
        rng = random.Random(99)
        for _ in range(10):
            tree = build_random_tree(4, 10, rng)
            for channel in evaluate(tree, X, Y):
                assert np.all(np.isfinite(np.broadcast_to(channel, X.shape)))

    def test_default_depth_trees_are_finite(self):
        X, Y = np.meshgrid(np.linspace(-1, 1, 33), np.linspace(-1, 1, 33))
        rng = random.Random(fnv_hash("adamenger"))
        for _ in range(3):
            tree = build_random_tree(10, 30, rng)
            for channel in evaluate(tree, X, Y):
                assert np.all(np.isfinite(np.broadcast_to(channel, X.shape)))

    def test_well_over_random_subtrees_is_finite_and_bounded(self):
        X, Y = np.meshgrid(np.linspace(-1, 1, 41), np.linspace(-1, 1, 41))
        rng = random.Random(2024)
        for _ in range(5):
            tree = well(build_random_tree(4, 12, rng))
            for channel in evaluate(tree, X, Y):
                values = np.broadcast_to(channel, X.shape)
                assert np.all(np.isfinite(values))
                assert np.all(values >= -1.0)
                assert np.all(values < 1.0)

    def test_well_handles_extreme_inputs(self):
        extremes = np.array([0.0, 1e-300, 1e150, -1e150])
        r, _, _ = evaluate(well(variable_x()), extremes, extremes)
        assert np.all(np.isfinite(r))

    def test_evaluation_does_not_mutate_tree(self, sample_tree):
        before = sample_tree.to_string()
        evaluate(sample_tree, 0.3, 0.4)
        assert sample_tree.to_string() == before


class TestExpressionNode:
    """Test tree structure helpers."""

    def test_depth_and_count(self, sample_tree):
        assert sample_tree.depth() == 2
        assert sample_tree.node_count() == 6
        assert variable_x().depth() == 0

    def test_op_types(self):
        assert variable_x().op_type == OpType.TERMINAL
        assert well(variable_x()).op_type == OpType.UNARY
        assert product(variable_x(), variable_y()).op_type == OpType.BINARY

    def test_to_string(self):
        node = mix(0.5, sin_node(1.2, 2.0, variable_x()), constant(0.1, -0.5, 0.9))
        assert node.to_string() == (
            "Mix(w=0.50, left=Sin(phase=1.20, freq=2.00, sub=VariableX), "
            "right=Constant(0.10, -0.50, 0.90))"
        )
        assert str(well(fractal_noise(1.5, variable_y()))) == \
            "Well(sub=FractalNoise(scale=1.50, sub=VariableY))"
        assert product(variable_x(), variable_y()).to_string() == \
            "Product(left=VariableX, right=VariableY)"

    def test_nodes_are_immutable(self, sample_tree):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_tree.left = variable_x()

    def test_rejects_wrong_arity(self):
        with pytest.raises(ValueError):
            ExpressionNode(NodeKind.PRODUCT, left=variable_x())
        with pytest.raises(ValueError):
            ExpressionNode(NodeKind.VARIABLE_X, left=variable_y())

    def test_rejects_wrong_param_count(self):
        with pytest.raises(ValueError):
            ExpressionNode(NodeKind.CONSTANT, (0.1, 0.2))


class TestBuildRandomTree:
    """Test depth-bounded random construction."""

    @pytest.mark.parametrize("min_depth,max_depth", [(0, 0), (0, 3), (2, 5), (5, 5), (10, 12), (8, 3)])
    def test_depth_within_bounds(self, min_depth, max_depth):
        rng = random.Random(min_depth * 100 + max_depth)
        for _ in range(5):
            tree = build_random_tree(min_depth, max_depth, rng)
            assert tree.depth() <= max_depth
            assert min_leaf_depth(tree) >= min(min_depth, max_depth)

    def test_max_depth_zero_gives_leaf(self):
        tree = build_random_tree(10, 0, random.Random(3))
        assert tree.op_type == OpType.TERMINAL

    def test_negative_max_depth_rejected(self):
        with pytest.raises(ValueError):
            build_random_tree(0, -1, random.Random(0))

    def test_same_seed_same_tree(self):
        first = build_random_tree(3, 9, random.Random(fnv_hash("adamenger")))
        second = build_random_tree(3, 9, random.Random(fnv_hash("adamenger")))
        assert first == second
        assert first.to_string() == second.to_string()

    def test_retries_draw_further_from_same_source(self):
        rng = random.Random(42)
        first = build_random_tree(3, 9, rng)
        second = build_random_tree(3, 9, rng)

        replay = random.Random(42)
        assert build_random_tree(3, 9, replay) == first
        assert build_random_tree(3, 9, replay) == second

    def test_parameter_ranges(self):
        rng = random.Random(5)
        for _ in range(20):
            tree = build_random_tree(2, 7, rng)
            stack = [tree]
            while stack:
                node = stack.pop()
                stack.extend(node.children())
                if node.kind == NodeKind.CONSTANT:
                    assert all(-1.0 <= c <= 1.0 for c in node.params)
                elif node.kind == NodeKind.SIN:
                    phase, freq = node.params
                    assert 0.0 <= phase < 2 * math.pi
                    assert 0.5 <= freq < 3.5
                elif node.kind == NodeKind.MIX:
                    assert 0.0 <= node.params[0] < 1.0
                elif node.kind == NodeKind.FRACTAL_NOISE:
                    assert 0.5 <= node.params[0] < 2.5

    def test_builder_only_uses_branch_and_leaf_kinds(self):
        rng = random.Random(11)
        allowed = set(BRANCH_KINDS) | {NodeKind.CONSTANT, NodeKind.VARIABLE_X, NodeKind.VARIABLE_Y}
        for _ in range(10):
            assert set(all_kinds(build_random_tree(3, 8, rng))) <= allowed

    def test_default_depths_terminate(self):
        tree = build_random_tree(rng=random.Random(fnv_hash("adamenger")))
        assert 10 <= tree.depth() <= 30
        assert min_leaf_depth(tree) >= 10
