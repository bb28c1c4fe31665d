"""
Gemm and MatMul - matrix products
"""

from typing import Iterable, List, Optional

from onnx import AttributeProto

from ..errors import ShapeError, UnsupportedFeatureError
from ..ir.dtypes import is_high_precision_numeric
from ..ir.node import INDENT, IRNode
from ..ir.shape_utils import broadcast_index, multidirectional_broadcast
from ..ir.tensor import Tensor, format_float_literal
from .attributes import get_bool, get_float


class GemmNode(IRNode):
    """
    Y = alpha * A' * B' + beta * C

    A' and B' are A and B, optionally transposed. C is optional and is
    broadcast unidirectionally to the shape (M, N) of the product.
    """

    OP_TYPE = "Gemm"
    MIN_INPUTS = 2
    MAX_INPUTS = 3

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.alpha = 1.0
        self.beta = 1.0
        self.trans_a = False
        self.trans_b = False

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        owner = self.description
        for a in attributes:
            if a.name == "alpha":
                self.alpha = get_float(a, owner)
            elif a.name == "beta":
                self.beta = get_float(a, owner)
            elif a.name == "transA":
                self.trans_a = get_bool(a, owner)
            elif a.name == "transB":
                self.trans_b = get_bool(a, owner)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        a, b = inputs[0], inputs[1]
        c = inputs[2] if len(inputs) > 2 else None
        for tensor, role in ((a, "A"), (b, "B")):
            self.check_type(tensor, role, is_high_precision_numeric)
            if tensor.rank != 2:
                raise ShapeError(f"{self.description}: input {role} must be 2D, got rank {tensor.rank}")
        self.check_same_type(a, b)

        m, k = reversed(a.shape) if self.trans_a else a.shape
        k_b, n = reversed(b.shape) if self.trans_b else b.shape
        if k != k_b:
            raise ShapeError(
                f"{self.description}: inner dimensions differ, A' is {m}x{k}, B' is {k_b}x{n}"
            )

        if c is not None:
            self.check_same_type(a, c)
            if c.rank > 2 or multidirectional_broadcast(c.shape, (m, n)) != (m, n):
                raise ShapeError(
                    f"{self.description}: C of shape {list(c.shape)} cannot be "
                    f"broadcast to [{m}, {n}]"
                )
        return [self.make_output(0, (m, n), a.dtype)]

    def _scalar(self, value: float) -> str:
        dtype = self.inputs[0].dtype
        if dtype.is_floating_point:
            return format_float_literal(value, dtype)
        return str(int(value))

    def generate_c_code(self) -> List[str]:
        a, b = self.inputs[0], self.inputs[1]
        c = self.input(2)
        y = self.outputs[0]
        m, n = y.shape
        k = a.shape[0] if self.trans_a else a.shape[1]

        lines = self.header_comment([
            ("alpha", self.alpha), ("beta", self.beta),
            ("transA", int(self.trans_a)), ("transB", int(self.trans_b)),
        ])
        a_cell = f"{a.c_name}[k][i]" if self.trans_a else f"{a.c_name}[i][k]"
        b_cell = f"{b.c_name}[j][k]" if self.trans_b else f"{b.c_name}[k][j]"

        depth = self.open_loops(lines, [("i", m), ("j", n)])
        lines.append(INDENT * depth + f"{y.dtype.c_type} acc = 0;")
        depth = self.open_loops(lines, [("k", k)], depth)
        lines.append(INDENT * depth + f"acc += {a_cell} * {b_cell};")
        depth = self.close_loops(lines, 1, depth)

        value = "acc" if self.alpha == 1.0 else f"{self._scalar(self.alpha)} * acc"
        if c is not None and self.beta != 0.0:
            c_cell = c.c_name + broadcast_index(c.shape, y.shape, ["i", "j"])
            if self.beta != 1.0:
                c_cell = f"{self._scalar(self.beta)} * {c_cell}"
            value = f"{value} + {c_cell}"
        lines.append(INDENT * depth + f"{y.c_name}[i][j] = {value};")
        self.close_loops(lines, 2, depth)
        return lines


class MatMulNode(IRNode):
    """Matrix product of two 2D inputs. Batched (rank > 2) products are not implemented."""

    OP_TYPE = "MatMul"
    MIN_INPUTS = 2
    MAX_INPUTS = 2

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        a, b = inputs
        self.check_type(a, "A", is_high_precision_numeric)
        self.check_type(b, "B", is_high_precision_numeric)
        self.check_same_type(a, b)
        if a.rank != 2 or b.rank != 2:
            raise UnsupportedFeatureError(
                f"Unimplemented: {self.description} for inputs of rank "
                f"{a.rank} and {b.rank} (only 2D)"
            )
        if a.shape[1] != b.shape[0]:
            raise ShapeError(
                f"{self.description}: cannot multiply {list(a.shape)} by {list(b.shape)}"
            )
        return [self.make_output(0, (a.shape[0], b.shape[1]), a.dtype)]

    def generate_c_code(self) -> List[str]:
        a, b = self.inputs
        y = self.outputs[0]
        lines = self.header_comment()
        depth = self.open_loops(lines, [("i", y.shape[0]), ("j", y.shape[1])])
        lines.append(INDENT * depth + f"{y.dtype.c_type} acc = 0;")
        depth = self.open_loops(lines, [("k", a.shape[1])], depth)
        lines.append(INDENT * depth + f"acc += {a.c_name}[i][k] * {b.c_name}[k][j];")
        depth = self.close_loops(lines, 1, depth)
        lines.append(INDENT * depth + f"{y.c_name}[i][j] = acc;")
        self.close_loops(lines, 2, depth)
        return lines
