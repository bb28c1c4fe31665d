"""
Relu and Softmax
"""

from typing import Iterable, List, Optional

from onnx import AttributeProto

from ..errors import InvalidAttributeError, ShapeError
from ..ir.dtypes import DType, is_plain_floating_point, is_signed_integer, lowest_value_literal
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.tensor import Tensor
from .attributes import get_int


class ReluNode(IRNode):
    """Y = max(X, 0)"""

    OP_TYPE = "Relu"

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        self.check_type(x, "X", is_plain_floating_point, is_signed_integer)
        return [self.make_output(0, x.shape, x.dtype)]

    def generate_c_code(self) -> List[str]:
        x = self.inputs[0]
        y = self.outputs[0]
        lines = self.header_comment()

        dim_vars = loop_vars("i", y.rank) or ["0"]
        idx = subscript(dim_vars)
        depth = self.open_loops(lines, zip(dim_vars, y.shape))
        lines.append(INDENT * depth + f"{y.c_name}{idx} = {x.c_name}{idx} > 0 ? {x.c_name}{idx} : 0;")
        self.close_loops(lines, y.rank, depth)
        return lines


class SoftmaxNode(IRNode):
    """
    Normalized exponential along one axis.

    Before opset 13 the input is treated as a 2D matrix, with the axis
    attribute (default 1) splitting the dimensions into rows and columns,
    and each row is normalized. From opset 13 only the given axis
    (default -1) is normalized.
    """

    OP_TYPE = "Softmax"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.axis: Optional[int] = None

        # Filled in by resolve(): normalized over dims [axis_begin, axis_end)
        self.axis_begin = 0
        self.axis_end = 0

    @property
    def is_legacy(self) -> bool:
        return not self.context.opset_at_least(13)

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        for a in attributes:
            if a.name == "axis":
                self.axis = get_int(a, self.description)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        self.check_type(x, "input", is_plain_floating_point)
        if x.rank == 0:
            raise ShapeError(f"{self.description}: input must have rank >= 1")

        if self.axis is None:
            axis = 1 if self.is_legacy else -1
            if axis >= x.rank:
                axis = x.rank - 1
        else:
            axis = self.axis
        if not -x.rank <= axis < x.rank:
            raise InvalidAttributeError(
                f"{self.description}: axis {axis} out of range for rank {x.rank}"
            )
        if axis < 0:
            axis += x.rank

        self.axis_begin = axis
        self.axis_end = x.rank if self.is_legacy else axis + 1
        return [self.make_output(0, x.shape, x.dtype)]

    def generate_c_code(self) -> List[str]:
        x = self.inputs[0]
        y = self.outputs[0]
        dtype = x.dtype.c_type
        exp = "expf" if x.dtype is DType.FLOAT else "exp"

        dim_vars = loop_vars("i", x.rank)
        outer = [(v, d) for i, (v, d) in enumerate(zip(dim_vars, x.shape))
                 if not self.axis_begin <= i < self.axis_end]
        inner = list(zip(dim_vars, x.shape))[self.axis_begin:self.axis_end]
        x_cell = f"{x.c_name}{subscript(dim_vars)}"
        y_cell = f"{y.c_name}{subscript(dim_vars)}"

        lines = self.header_comment([("axis", self.axis_begin),
                                     ("legacy_2d", int(self.is_legacy))])
        depth = self.open_loops(lines, outer)

        lines.append(INDENT * depth + f"{dtype} maxval = {lowest_value_literal(x.dtype)};")
        depth = self.open_loops(lines, inner, depth)
        lines.append(INDENT * depth + f"maxval = MAX(maxval, {x_cell});")
        depth = self.close_loops(lines, len(inner), depth)

        lines.append(INDENT * depth + f"{dtype} sum = 0;")
        depth = self.open_loops(lines, inner, depth)
        lines.append(INDENT * depth + f"{y_cell} = {exp}({x_cell} - maxval);")
        lines.append(INDENT * depth + f"sum += {y_cell};")
        depth = self.close_loops(lines, len(inner), depth)

        depth = self.open_loops(lines, inner, depth)
        lines.append(INDENT * depth + f"{y_cell} /= sum;")
        depth = self.close_loops(lines, len(inner), depth)

        self.close_loops(lines, len(outer), depth)
        return lines
