"""
Elementwise binary arithmetic with multidirectional broadcasting
"""

from typing import List, Optional

from ..ir.dtypes import is_8bit, is_high_precision_numeric
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.shape_utils import broadcast_index, multidirectional_broadcast
from ..ir.tensor import Tensor


class BinaryElementwiseNode(IRNode):
    """
    C = A <op> B, where A and B are broadcast to a common shape.

    Subclasses set OPERATOR to the C infix operator.
    """

    MIN_INPUTS = 2
    MAX_INPUTS = 2
    OPERATOR = ""

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        a, b = inputs
        self.check_type(a, "A", is_high_precision_numeric, is_8bit)
        self.check_type(b, "B", is_high_precision_numeric, is_8bit)
        self.check_same_type(a, b)

        shape = multidirectional_broadcast(a.shape, b.shape)
        return [self.make_output(0, shape, a.dtype)]

    def generate_c_code(self) -> List[str]:
        a, b = self.inputs
        c = self.outputs[0]
        lines = self.header_comment()

        if c.rank == 0:
            lines.append(f"{c.c_name}[0] = {a.c_name}[0] {self.OPERATOR} {b.c_name}[0];")
            return lines

        out_vars = loop_vars("i", c.rank)
        a_idx = broadcast_index(a.shape, c.shape, out_vars)
        b_idx = broadcast_index(b.shape, c.shape, out_vars)

        depth = self.open_loops(lines, zip(out_vars, c.shape))
        lines.append(INDENT * depth + f"{c.c_name}{subscript(out_vars)} = "
                     f"{a.c_name}{a_idx} {self.OPERATOR} {b.c_name}{b_idx};")
        self.close_loops(lines, c.rank, depth)
        return lines


class AddNode(BinaryElementwiseNode):
    OP_TYPE = "Add"
    OPERATOR = "+"


class SubNode(BinaryElementwiseNode):
    OP_TYPE = "Sub"
    OPERATOR = "-"


class MulNode(BinaryElementwiseNode):
    OP_TYPE = "Mul"
    OPERATOR = "*"


class DivNode(BinaryElementwiseNode):
    OP_TYPE = "Div"
    OPERATOR = "/"
