"""ScalarGrad: A scalar-value reverse-mode autograd engine."""

import logging

from .engine import (
    Value,
    make_leaf,
    add,
    subtract,
    multiply,
    divide,
    power,
    rectifier,
    backward,
    zero_grad,
    topological_sort,
)
from .graph import Node, Op

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Value",
    "Node",
    "Op",
    "make_leaf",
    "add",
    "subtract",
    "multiply",
    "divide",
    "power",
    "rectifier",
    "backward",
    "zero_grad",
    "topological_sort",
]
