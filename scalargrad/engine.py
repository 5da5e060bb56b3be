"""
ScalarGrad: A Scalar-Value Reverse-Mode Autograd Engine
=======================================================

Build an expression out of scalar Values, call backward() on the result,
and every Value that contributed to it holds d(result)/d(itself) in .grad.

A Value is a lightweight handle on a graph Node (see graph.py). Nodes keep
their operands alive and nothing else, so any part of an expression that
is no longer reachable from a handle is freed right away:

    >>> a = Value(1.0)
    >>> b = Value(2.0)
    >>> c = a + b
    >>> d = c * c
    >>> loss = d + d
    >>> loss.backward()
    >>> print(a.grad, b.grad)  # d(2(a+b)^2)/da = 4(a+b) = 12
    12.0 12.0

The same graph can be built with the functional API:
make_leaf, add, subtract, multiply, divide, power, rectifier, backward.
"""

from __future__ import annotations

from typing import List, Tuple, Union

import numpy as np

from . import graph
from .graph import Node, Numeric


class Value:
    """
    A scalar value that tracks its computational history for automatic differentiation.

    Every Value knows:
    1. Its data (the actual number)
    2. Its gradient (derivative of the backward root with respect to this value)
    3. Its operands (the Values that produced it via some operation)
    4. The operation that produced it, which selects its backward rule

    The gradient is computed by backward(). Until you call backward(),
    all gradients remain at 0.0.

    Attributes:
        data: The scalar value stored in this node (read-only).
        grad: The gradient of the backward root with respect to this value.
        label: Optional name for debugging.

    Example:
        >>> a = Value(2.0, label='a')
        >>> b = Value(3.0, label='b')
        >>> c = a * b + a
        >>> c.backward()
        >>> print(a.grad)  # dc/da = b + 1 = 4.0
        4.0
        >>> print(b.grad)  # dc/db = a = 2.0
        2.0
    """

    __slots__ = ('_node',)

    # Let numpy scalars on the left defer to our reflected operators
    __array_ufunc__ = None

    def __init__(self, data: Numeric, label: str = '') -> None:
        """
        Create a leaf Value.

        Args:
            data: The scalar value to store.
            label: Optional name for debugging.

        Raises:
            TypeError: If data is not a numeric type.
        """
        self._node = graph.leaf(data, label)

    @classmethod
    def _wrap(cls, node: Node) -> Value:
        """Handle on an existing node, without creating a new one."""
        out = cls.__new__(cls)
        out._node = node
        return out

    def __repr__(self) -> str:
        """String representation showing data and gradient."""
        if self.label:
            return f"Value({self.label}={self.data:.4f}, grad={self.grad:.4f})"
        return f"Value(data={self.data:.4f}, grad={self.grad:.4f})"

    def __eq__(self, other: object) -> bool:
        """Two handles are equal when they refer to the same node."""
        if not isinstance(other, Value):
            return NotImplemented
        return self._node is other._node

    def __hash__(self) -> int:
        return hash(self._node.id)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def data(self) -> np.float64:
        return self._node.data

    @property
    def grad(self) -> np.float64:
        return self._node.grad

    @property
    def op(self) -> str:
        """'' for leaves, otherwise the tag of the primitive ('+', '-', '*', '**', 'relu')."""
        return str(self._node.op)

    @property
    def operands(self) -> Tuple[Value, ...]:
        return tuple(Value._wrap(n) for n in self._node.operands)

    @property
    def exponent(self) -> Union[np.float64, None]:
        """The constant exponent of a ** node, None for every other op."""
        return self._node.exponent

    @property
    def label(self) -> str:
        return self._node.label

    @property
    def id(self) -> int:
        """Creation-order identity."""
        return self._node.id

    def item(self) -> float:
        """Return the scalar value (PyTorch compatibility)."""
        return float(self.data)

    # =========================================================================
    # Arithmetic Operations
    # =========================================================================

    def __add__(self, other: Union[Value, Numeric]) -> Value:
        """
        Addition: out = self + other

        Local derivatives:
            d(out)/d(self) = 1
            d(out)/d(other) = 1
        """
        other = other if isinstance(other, Value) else Value(other)
        return add(self, other)

    def __radd__(self, other: Numeric) -> Value:
        """Handle numeric + Value."""
        return add(Value(other), self)

    def __sub__(self, other: Union[Value, Numeric]) -> Value:
        """
        Subtraction: out = self - other

        Local derivatives:
            d(out)/d(self) = 1
            d(out)/d(other) = -1
        """
        other = other if isinstance(other, Value) else Value(other)
        return subtract(self, other)

    def __rsub__(self, other: Numeric) -> Value:
        """Handle numeric - Value."""
        return subtract(Value(other), self)

    def __neg__(self) -> Value:
        """Negation: -self."""
        return self * -1

    def __mul__(self, other: Union[Value, Numeric]) -> Value:
        """
        Multiplication: out = self * other

        Local derivatives:
            d(out)/d(self) = other.data
            d(out)/d(other) = self.data
        """
        other = other if isinstance(other, Value) else Value(other)
        return multiply(self, other)

    def __rmul__(self, other: Numeric) -> Value:
        """Handle numeric * Value."""
        return multiply(Value(other), self)

    def __truediv__(self, other: Union[Value, Numeric]) -> Value:
        """Division: self / other = self * other^(-1)."""
        other = other if isinstance(other, Value) else Value(other)
        return divide(self, other)

    def __rtruediv__(self, other: Numeric) -> Value:
        """Handle numeric / Value."""
        return divide(Value(other), self)

    def __pow__(self, n: Numeric) -> Value:
        """
        Power: out = self^n (where n is a constant, not a Value)

        Local derivative:
            d(out)/d(self) = n * self^(n-1)

        Raises:
            TypeError: If n is a Value (not supported).
        """
        return power(self, n)

    # =========================================================================
    # Activation Functions
    # =========================================================================

    def relu(self) -> Value:
        """
        Rectified Linear Unit: out = max(0, self)

        Local derivative:
            d(relu(x))/dx = 1 if relu(x) > 0 else 0
        """
        return rectifier(self)

    # =========================================================================
    # Backpropagation
    # =========================================================================

    def backward(self) -> None:
        """
        Compute gradients for all nodes in the computation graph.

        The algorithm:
        1. Build a topological ordering of the computation graph
        2. Set this node's gradient to 1.0 (d(self)/d(self) = 1)
        3. Walk backward through the graph, applying each node's backward rule

        Note: Calling backward() multiple times will ACCUMULATE leaf
        gradients. Call zero_grad() first if you want fresh gradients.

        Example:
            >>> x = Value(2.0)
            >>> y = x ** 2 + 3 * x
            >>> y.backward()
            >>> print(x.grad)  # dy/dx = 2x + 3 = 7.0
            7.0
        """
        backward(self)

    def zero_grad(self) -> None:
        """Reset this node's gradient to zero."""
        graph.zero_grad([self._node])

    @staticmethod
    def zero_grad_all(values: List[Value]) -> None:
        """
        Zero gradients for a list of Values.

        Args:
            values: List of Value objects to zero.
        """
        graph.zero_grad(v._node for v in values)


# =============================================================================
# Functional API
# =============================================================================

def _check(*values: Value) -> None:
    for v in values:
        if not isinstance(v, Value):
            raise TypeError(f"expected a Value, got {type(v).__name__}")


def make_leaf(value: Numeric, label: str = '') -> Value:
    """Create an input Value."""
    return Value(value, label)


def add(a: Value, b: Value) -> Value:
    _check(a, b)
    return Value._wrap(graph.add(a._node, b._node))


def subtract(a: Value, b: Value) -> Value:
    _check(a, b)
    return Value._wrap(graph.subtract(a._node, b._node))


def multiply(a: Value, b: Value) -> Value:
    _check(a, b)
    return Value._wrap(graph.multiply(a._node, b._node))


def divide(a: Value, b: Value) -> Value:
    """a / b as a * b^-1. b == 0 gives inf or nan, not an error."""
    _check(a, b)
    return Value._wrap(graph.divide(a._node, b._node))


def power(a: Value, exponent: Numeric) -> Value:
    """
    Raise a to a constant exponent.

    Raises:
        TypeError: If exponent is a Value or not numeric.
    """
    _check(a)
    if isinstance(exponent, Value):
        raise TypeError(
            "Power with Value exponent not supported. "
            "Use a constant float exponent instead."
        )
    return Value._wrap(graph.power(a._node, exponent))


def rectifier(a: Value) -> Value:
    """max(0, a). Gradient passes only where the output is positive."""
    _check(a)
    return Value._wrap(graph.rectifier(a._node))


def backward(root: Value) -> None:
    """Populate .grad on root and on every Value it was computed from."""
    _check(root)
    graph.backward(root._node)


def zero_grad(root: Value) -> None:
    """Reset the gradient of root and of every Value it was computed from."""
    _check(root)
    graph.zero_grad(graph.topological_order(root._node))


def topological_sort(root: Value) -> List[Value]:
    """
    Compute topological ordering of computation graph rooted at `root`.

    Every node appears exactly once and after all of its operands; the
    root is last.

    Args:
        root: The root node of the computation graph.

    Returns:
        List of Values in topological order (root is last).

    Example:
        >>> a = Value(1.0)
        >>> b = Value(2.0)
        >>> c = a + b
        >>> d = c * a
        >>> topo = topological_sort(d)
        >>> # topo will be [a, b, c, d]
    """
    _check(root)
    return [Value._wrap(n) for n in graph.topological_order(root._node)]
