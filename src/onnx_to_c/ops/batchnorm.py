"""
BatchNormalization - inference mode only
"""

from typing import Iterable, List, Optional

from onnx import AttributeProto

from ..errors import ShapeError, UnsupportedFeatureError
from ..ir.dtypes import DType, is_plain_floating_point
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.tensor import Tensor, format_float_literal
from .attributes import get_bool, get_float, get_int

PARAMETER_ROLES = ("scale", "B", "mean", "var")


class BatchNormalizationNode(IRNode):
    """
    Y = (X - mean) / sqrt(var + epsilon) * scale + B, per channel (axis 1),
    with the stored running statistics.
    """

    OP_TYPE = "BatchNormalization"
    MIN_INPUTS = 5
    MAX_INPUTS = 5

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.epsilon = 1e-5
        self.momentum = 0.9
        self.spatial = 1
        self.training_mode = False

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        owner = self.description
        for a in attributes:
            if a.name == "epsilon":
                self.epsilon = get_float(a, owner)
            elif a.name == "momentum":
                self.momentum = get_float(a, owner)
            elif a.name == "spatial":
                self.spatial = get_int(a, owner)
                if self.spatial != 1:
                    raise UnsupportedFeatureError(f"Unimplemented: spatial=0 for {owner}")
            elif a.name == "training_mode":
                self.training_mode = get_bool(a, owner)
                if self.training_mode:
                    raise UnsupportedFeatureError(f"Unimplemented: training mode for {owner}")
            elif a.name == "is_test":
                # Only meaningful to training runtimes of old opsets
                get_int(a, owner)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        self.check_type(x, "X", is_plain_floating_point)
        if x.rank < 2:
            raise ShapeError(f"{self.description}: input X must have rank >= 2, got {x.rank}")

        channels = x.shape[1]
        for tensor, role in zip(inputs[1:], PARAMETER_ROLES):
            self.check_type(tensor, role, is_plain_floating_point)
            self.check_same_type(x, tensor)
            if tensor.shape != (channels,):
                raise ShapeError(
                    f"{self.description}: input {role} must have shape [{channels}], "
                    f"got {list(tensor.shape)}"
                )
        return [self.make_output(0, x.shape, x.dtype)]

    def generate_c_code(self) -> List[str]:
        x, scale, bias, mean, var = self.inputs
        y = self.outputs[0]
        sqrt = "sqrtf" if x.dtype is DType.FLOAT else "sqrt"
        epsilon = format_float_literal(self.epsilon, x.dtype)

        dim_vars = ["b", "c"] + loop_vars("i", x.rank - 2)
        idx = subscript(dim_vars)

        lines = self.header_comment([("epsilon", self.epsilon)])
        depth = self.open_loops(lines, zip(dim_vars, x.shape))
        lines.append(
            INDENT * depth
            + f"{y.c_name}{idx} = ({x.c_name}{idx} - {mean.c_name}[c]) / "
            f"{sqrt}({var.c_name}[c] + {epsilon}) * {scale.c_name}[c] + {bias.c_name}[c];"
        )
        self.close_loops(lines, x.rank, depth)
        return lines
