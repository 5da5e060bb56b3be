"""
Computation Graph: Nodes and the Backward Pass
==============================================

Every scalar in a computation is a Node. A node holds its value, its
gradient, the tag of the primitive that produced it, and references to its
operand nodes. Edges only point from a consumer to its operands: a node
never refers to the nodes built from it, and no node holds a closure, so
the graph has no reference cycles. A sub-expression is freed by plain
reference counting as soon as nothing downstream and no caller handle
refers to it, even while other parts of the same expression stay alive.

The backward driver looks each node's tag up in a small table of backward
rules, one per primitive:

    +      a.grad += out.grad          b.grad += out.grad
    -      a.grad += out.grad          b.grad -= out.grad
    *      a.grad += b * out.grad      b.grad += a * out.grad
    **     a.grad += n * a^(n-1) * out.grad
    relu   a.grad += out.grad   (only where out > 0)

Division is not a primitive: a / b is built as a * b^-1.

All arithmetic happens in numpy.float64 with floating point warnings
silenced, so division by zero, overflow and invalid operations produce
inf/nan the IEEE way instead of raising.
"""

from __future__ import annotations

import enum
import itertools
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


# Storage type of every value and gradient
DTYPE = np.float64

# Type alias for numeric inputs
Numeric = Union[int, float, np.floating, np.integer]

# Creation-order identities
_next_id = itertools.count()


def is_numeric(x: object) -> bool:
    """True for plain numbers and numpy scalars, False for bools."""
    return isinstance(x, (int, float, np.floating, np.integer)) and not isinstance(x, bool)


class Op(str, enum.Enum):
    """Tag naming the primitive that produced a node."""

    LEAF = ''
    ADD = '+'
    SUB = '-'
    MUL = '*'
    POW = '**'
    RELU = 'relu'

    def __str__(self) -> str:
        return self.value


class Node:
    """
    One scalar and its provenance.

    Only grad changes after construction. operands holds the input nodes
    in order: none for a leaf, one for ** and relu, two otherwise. The same
    node may appear twice (x * x).
    """

    __slots__ = ('id', 'data', 'grad', 'op', 'operands', 'exponent', 'label', '__weakref__')

    def __init__(
        self,
        data: np.float64,
        op: Op = Op.LEAF,
        operands: Tuple[Node, ...] = (),
        exponent: Optional[np.float64] = None,
        label: str = ''
    ) -> None:
        self.id: int = next(_next_id)
        self.data = data
        self.grad = DTYPE(0.0)
        self.op = op
        self.operands = operands
        self.exponent = exponent
        self.label = label
        if not np.isfinite(data):
            logger.debug("node %d (%r) holds non-finite value %s", self.id, str(op), data)

    def __repr__(self) -> str:
        return f"Node(id={self.id}, op={str(self.op)!r}, data={self.data}, grad={self.grad})"


# =============================================================================
# Backward Rules
# =============================================================================

def _add_backward(out: Node) -> None:
    a, b = out.operands
    a.grad += out.grad
    b.grad += out.grad


def _sub_backward(out: Node) -> None:
    a, b = out.operands
    a.grad += out.grad
    b.grad -= out.grad


def _mul_backward(out: Node) -> None:
    a, b = out.operands
    a.grad += b.data * out.grad
    b.grad += a.data * out.grad


def _pow_backward(out: Node) -> None:
    (base,) = out.operands
    n = out.exponent
    # Power rule on the base's value, not the output's
    base.grad += n * base.data ** (n - 1) * out.grad


def _relu_backward(out: Node) -> None:
    (a,) = out.operands
    if out.data > 0:
        a.grad += out.grad


_BACKWARD_RULES: Dict[Op, Callable[[Node], None]] = {
    Op.ADD: _add_backward,
    Op.SUB: _sub_backward,
    Op.MUL: _mul_backward,
    Op.POW: _pow_backward,
    Op.RELU: _relu_backward,
}


# =============================================================================
# Primitive Constructors
# =============================================================================

def leaf(data: Numeric, label: str = '') -> Node:
    """
    Create an input node.

    Args:
        data: The scalar value to store. Integers too large for a float
            become +inf or -inf.
        label: Optional name for debugging.

    Raises:
        TypeError: If data is not a numeric type.
    """
    if not is_numeric(data):
        raise TypeError(
            f"Value data must be numeric, got {type(data).__name__}"
        )
    try:
        value = DTYPE(data)
    except OverflowError:
        value = DTYPE(np.inf) if data > 0 else DTYPE(-np.inf)
    return Node(value, label=label)


def add(a: Node, b: Node) -> Node:
    with np.errstate(all='ignore'):
        return Node(a.data + b.data, Op.ADD, (a, b))


def subtract(a: Node, b: Node) -> Node:
    with np.errstate(all='ignore'):
        return Node(a.data - b.data, Op.SUB, (a, b))


def multiply(a: Node, b: Node) -> Node:
    with np.errstate(all='ignore'):
        return Node(a.data * b.data, Op.MUL, (a, b))


def power(a: Node, exponent: Numeric) -> Node:
    """
    Raise a to a constant exponent.

    Raises:
        TypeError: If exponent is not a plain number.
    """
    if not is_numeric(exponent):
        raise TypeError(
            f"exponent must be numeric, got {type(exponent).__name__}"
        )
    n = DTYPE(exponent)
    with np.errstate(all='ignore'):
        return Node(a.data ** n, Op.POW, (a,), exponent=n)


def divide(a: Node, b: Node) -> Node:
    """a / b, built as a * b^-1 (two nodes)."""
    return multiply(a, power(b, -1.0))


def rectifier(a: Node) -> Node:
    # np.maximum keeps nan, the builtin max would not
    with np.errstate(all='ignore'):
        return Node(np.maximum(DTYPE(0.0), a.data), Op.RELU, (a,))


# =============================================================================
# Backpropagation
# =============================================================================

def topological_order(root: Node) -> List[Node]:
    """
    Every node reachable from root, each after its operands.

    Depth-first post-order with operands visited in order; the root is
    last. The visited set is keyed by node id, so distinct nodes that
    happen to share a value and an op are never collapsed. An explicit
    stack replaces recursion so long chains are not limited by the
    interpreter's recursion depth.
    """
    order: List[Node] = []
    visited = set()
    stack: List[Tuple[Node, bool]] = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        if node.id in visited:
            continue
        visited.add(node.id)
        stack.append((node, True))
        for operand in reversed(node.operands):
            if operand.id not in visited:
                stack.append((operand, False))

    return order


def backward(root: Node) -> None:
    """
    Compute d(root)/d(node) for every node reachable from root.

    Interior gradients are cleared and the root is seeded with 1.0,
    then the backward rules run in reverse topological order, so each
    node's gradient is complete before it is pushed to its operands.

    Leaf gradients ACCUMULATE: a second call on the same graph adds
    the same contributions again and doubles them. Use zero_grad() to
    start fresh.
    """
    order = topological_order(root)

    for node in order:
        if node.op is not Op.LEAF:
            node.grad = DTYPE(0.0)
    root.grad = DTYPE(1.0)

    logger.debug("backward from node %d over %d nodes", root.id, len(order))

    with np.errstate(all='ignore'):
        for node in reversed(order):
            rule = _BACKWARD_RULES.get(node.op)
            if rule is not None:
                rule(node)


def zero_grad(nodes: Iterable[Node]) -> None:
    """Reset the gradient of each given node to zero."""
    count = 0
    for node in nodes:
        node.grad = DTYPE(0.0)
        count += 1
    logger.debug("zeroed gradients of %d nodes", count)
