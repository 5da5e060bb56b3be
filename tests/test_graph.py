"""Tests for the node graph: ordering, ownership, logging."""

import gc
import logging
import weakref

import pytest

from scalargrad import Node, Op, Value, add, topological_sort, zero_grad
from scalargrad import graph


def _diamond():
    a = Value(1.0, label='a')
    b = Value(2.0, label='b')
    c = a + b
    d = c * c
    loss = d + d
    return a, b, c, d, loss


def _live_nodes() -> int:
    return sum(1 for obj in gc.get_objects() if isinstance(obj, Node))


class TestTopologicalSort:

    def test_root_is_last(self) -> None:
        *_, loss = _diamond()
        topo = topological_sort(loss)
        assert topo[-1] == loss

    def test_each_node_once(self) -> None:
        a, b, c, d, loss = _diamond()
        topo = topological_sort(loss)
        assert len(topo) == 5
        assert set(topo) == {a, b, c, d, loss}

    def test_operands_come_first(self) -> None:
        a = Value(0.5)
        x = a
        for i in range(6):
            x = (x * a + i) / (x - 3.0)
        y = (x + a).relu()

        topo = topological_sort(y)
        position = {v.id: i for i, v in enumerate(topo)}
        for v in topo:
            for operand in v.operands:
                assert position[operand.id] < position[v.id]

    def test_operands_visited_in_order(self) -> None:
        a = Value(1.0)
        b = Value(2.0)
        c = add(a, b)
        assert topological_sort(c) == [a, b, c]

    def test_equal_valued_leaves_are_distinct(self) -> None:
        """Two leaves with the same value and op are still two nodes."""
        a = Value(2.0)
        b = Value(2.0)
        c = a + b
        c.backward()

        assert len(topological_sort(c)) == 3
        assert a.grad == 1.0
        assert b.grad == 1.0

    def test_long_chain_beyond_recursion_limit(self) -> None:
        x = Value(1.0)
        y = x
        for _ in range(5000):
            y = y + 1.0
        y.backward()

        assert y.data == 5001.0
        assert x.grad == 1.0
        assert len(topological_sort(y)) == 10001


class TestNodes:

    def test_node_level_api(self) -> None:
        a = graph.leaf(2.0)
        b = graph.leaf(3.0)
        c = graph.multiply(a, b)
        graph.backward(c)

        assert c.op is Op.MUL
        assert c.operands == (a, b)
        assert a.grad == 3.0
        assert b.grad == 2.0

    def test_ids_follow_creation_order(self) -> None:
        a = graph.leaf(4.0)
        b = graph.leaf(2.0)
        out = graph.rectifier(graph.subtract(graph.divide(a, b), graph.power(b, 2)))
        for node in graph.topological_order(out):
            assert all(operand.id < node.id for operand in node.operands)
        assert out.data == 0.0

    def test_divide_adds_reciprocal_node(self) -> None:
        a = Value(1.0)
        b = Value(4.0)
        c = a / b
        _, reciprocal = c.operands

        assert len(topological_sort(c)) == 4
        assert reciprocal.op == '**'
        assert reciprocal.exponent == -1.0
        assert reciprocal.operands == (b,)

    def test_zero_grad_reachable_nodes(self) -> None:
        a, b, c, d, loss = _diamond()
        loss.backward()
        zero_grad(loss)

        assert all(v.grad == 0.0 for v in (a, b, c, d, loss))

    def test_power_requires_numeric_exponent(self) -> None:
        a = graph.leaf(1.0)
        with pytest.raises(TypeError):
            graph.power(a, "2")

    def test_op_tags(self) -> None:
        assert str(Op.LEAF) == ''
        assert [str(op) for op in (Op.ADD, Op.SUB, Op.MUL, Op.POW, Op.RELU)] == [
            '+', '-', '*', '**', 'relu'
        ]


class TestOwnership:

    def test_graph_freed_without_cycle_collector(self) -> None:
        """Dropping every handle frees every node by reference counting alone."""

        def build() -> "weakref.ref[Node]":
            a, b, c, d, loss = _diamond()
            loss.backward()
            topological_sort(loss)
            return weakref.ref(a._node)

        gc.collect()
        gc.disable()
        try:
            ref = build()
            assert ref() is None
        finally:
            gc.enable()

    def test_dropped_subexpression_freed_while_leaf_lives(self) -> None:
        """A long-lived leaf does not keep the expressions built from it."""
        w = Value(1.0)
        loss = (w * 2.0 - 3.0) ** 2
        intermediate = weakref.ref(loss.operands[0]._node)
        loss.backward()

        gc.disable()
        try:
            del loss
            assert intermediate() is None
            assert w.data == 1.0
        finally:
            gc.enable()

    def test_node_count_does_not_grow_with_reused_leaf(self) -> None:
        w = Value(1.0)
        gc.collect()
        baseline = _live_nodes()

        gc.disable()
        try:
            for i in range(1000):
                loss = (w * float(i) - 3.0) ** 2
                loss.backward()
                del loss
            assert _live_nodes() == baseline
        finally:
            gc.enable()
        assert w.grad != 0.0

    def test_live_handle_keeps_operands(self) -> None:
        a = Value(1.0)
        ref = weakref.ref(a._node)
        b = a * 2.0
        del a
        gc.collect()

        assert ref() is not None
        assert b.operands[0].data == 1.0


class TestLogging:

    def test_backward_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="scalargrad")
        *_, loss = _diamond()
        loss.backward()

        assert "backward from node" in caplog.text
        assert "over 5 nodes" in caplog.text

    def test_non_finite_value_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="scalargrad")
        Value(1.0) / Value(0.0)

        assert "non-finite" in caplog.text
