"""
Flatten and Reshape - change the shape, keep the row-major data
"""

import math
from typing import Iterable, List, Optional

from onnx import AttributeProto

from ..errors import InvalidAttributeError, ShapeError, UnsupportedFeatureError
from ..ir.dtypes import is_int64
from ..ir.node import INDENT, IRNode
from ..ir.tensor import Shape, Tensor
from .attributes import get_bool, get_int


class CopyNode(IRNode):
    """Base for operators whose output holds the input elements in the same order."""

    def generate_c_code(self) -> List[str]:
        x = self.inputs[0]
        y = self.outputs[0]
        ctype = y.dtype.c_type
        lines = self.header_comment(self.attribute_summary())
        lines.append(f"const {ctype} *src = (const {ctype}*){x.c_name};")
        lines.append(f"{ctype} *dst = ({ctype}*){y.c_name};")
        self.open_loops(lines, [("i", y.size)])
        lines.append(INDENT + "dst[i] = src[i];")
        lines.append("}")
        return lines

    def attribute_summary(self):
        return []


class FlattenNode(CopyNode):
    """Reshape to 2D: dimensions before axis become rows, the rest columns."""

    OP_TYPE = "Flatten"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.axis = 1

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        for a in attributes:
            if a.name == "axis":
                self.axis = get_int(a, self.description)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        if not -x.rank <= self.axis <= x.rank:
            raise InvalidAttributeError(
                f"{self.description}: axis {self.axis} out of range for rank {x.rank}"
            )
        axis = self.axis + x.rank if self.axis < 0 else self.axis
        shape = (math.prod(x.shape[:axis]), math.prod(x.shape[axis:]))
        return [self.make_output(0, shape, x.dtype)]

    def attribute_summary(self):
        return [("axis", self.axis)]


class ReshapeNode(CopyNode):
    """
    Reshape to the shape given by the second input, which must be a constant.

    A 0 in the target shape copies the input dimension at that position
    (unless allowzero is set), and one -1 is inferred from the element count.
    """

    OP_TYPE = "Reshape"
    MIN_INPUTS = 2
    MAX_INPUTS = 2

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allowzero = False

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        for a in attributes:
            if a.name == "allowzero":
                self.allowzero = get_bool(a, self.description)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        data, shape = inputs
        self.check_type(shape, "shape", is_int64)
        if not shape.is_const:
            raise UnsupportedFeatureError(
                f"Unimplemented: {self.description} with a computed target shape"
            )
        if shape.rank != 1:
            raise ShapeError(f"{self.description}: shape input must be 1D, got rank {shape.rank}")

        target = self.target_shape(data.shape, [int(v) for v in shape.data.reshape(-1)])
        return [self.make_output(0, target, data.dtype)]

    def target_shape(self, in_shape: Shape, requested: List[int]) -> Shape:
        result = []
        inferred = None
        for i, dim in enumerate(requested):
            if dim == 0 and not self.allowzero:
                if i >= len(in_shape):
                    raise ShapeError(
                        f"{self.description}: 0 at position {i} has no input dimension to copy"
                    )
                dim = in_shape[i]
            elif dim == -1:
                if inferred is not None:
                    raise ShapeError(f"{self.description}: more than one -1 in target shape")
                inferred = i
                dim = 1
            elif dim < 0:
                raise ShapeError(f"{self.description}: invalid dimension {dim} in target shape")
            result.append(dim)

        total = math.prod(in_shape)
        known = math.prod(result)
        if inferred is not None:
            if known == 0 or total % known:
                raise ShapeError(
                    f"{self.description}: cannot infer -1 reshaping {list(in_shape)} to {requested}"
                )
            result[inferred] = total // known
        elif known != total:
            raise ShapeError(
                f"{self.description}: cannot reshape {list(in_shape)} ({total} elements) "
                f"to {result} ({known} elements)"
            )
        return tuple(result)

    def attribute_summary(self):
        return [("allowzero", int(self.allowzero)), ("shape", list(self.outputs[0].shape))]
