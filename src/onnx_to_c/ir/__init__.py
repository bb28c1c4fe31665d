"""Intermediate Representation (IR) module"""

from .dtypes import DType
from .tensor import Tensor, TensorRole
from .node import IRNode
from .graph import IRGraph

__all__ = ['DType', 'Tensor', 'TensorRole', 'IRNode', 'IRGraph']
