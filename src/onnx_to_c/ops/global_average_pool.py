"""
GlobalAveragePool - mean over all spatial positions of each channel
"""

from typing import List, Optional

from ..errors import ShapeError
from ..ir.dtypes import is_plain_floating_point
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.tensor import Tensor


class GlobalAveragePoolNode(IRNode):
    """
    Y[b][c][0]...[0] = mean of X[b][c] over the spatial dimensions.

    The sum is accumulated in double whatever the element type, and cast
    back on the final store.
    """

    OP_TYPE = "GlobalAveragePool"

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        self.check_type(x, "X", is_plain_floating_point)
        if x.rank < 3:
            raise ShapeError(f"{self.description}: input must have rank >= 3, got {x.rank}")

        shape = list(x.shape[:2]) + [1] * (x.rank - 2)
        return [self.make_output(0, shape, x.dtype)]

    def generate_c_code(self) -> List[str]:
        x = self.inputs[0]
        y = self.outputs[0]
        n_spatial = x.rank - 2
        dim_vars = loop_vars("d", n_spatial)
        count = 1
        for d in x.shape[2:]:
            count *= d

        lines = self.header_comment()
        depth = self.open_loops(lines, [("b", x.shape[0]), ("c", x.shape[1])])
        lines.append(INDENT * depth + "double dimsum = 0.0;")
        depth = self.open_loops(lines, zip(dim_vars, x.shape[2:]), depth)
        lines.append(INDENT * depth + f"dimsum += {x.c_name}[b][c]{subscript(dim_vars)};")
        depth = self.close_loops(lines, n_spatial, depth)
        out_cell = f"{y.c_name}[b][c]" + "[0]" * n_spatial
        lines.append(INDENT * depth + f"{out_cell} = ({y.dtype.c_type})(dimsum / {count});")
        self.close_loops(lines, 2, depth)
        return lines
