"""
Tensor - shape, dtype and optional constant payload of one graph value
"""

import math
import re
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np
from onnx import TensorProto, numpy_helper

from ..errors import ShapeError, UnsupportedFeatureError
from .dtypes import DType

Shape = Tuple[int, ...]

INDENT = "  "

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class TensorRole(Enum):
    """Where a tensor comes from and how the generated source declares it."""
    INPUT = "input"
    OUTPUT = "output"
    CONSTANT = "constant"
    INTERMEDIATE = "intermediate"


def cify_name(name: str) -> str:
    """Replace every character that is not valid in a C identifier with '_'."""
    return re.sub(r"[^A-Za-z0-9_]", "_", name)


def as_shape(dims: Iterable[int]) -> Shape:
    shape = tuple(int(d) for d in dims)
    for d in shape:
        if d < 0:
            raise ShapeError(f"Negative dimension in shape {list(shape)}")
    return shape


def format_float_literal(value: float, dtype: DType = DType.FLOAT) -> str:
    """
    Format a floating point value as a C literal.

    Uses the shortest representation that round-trips at the precision of
    dtype, always with a '.' so the literal is not read as an integer, and
    an 'f' suffix for float32.
    """
    v = float(value)
    if math.isnan(v):
        return "NAN"
    if math.isinf(v):
        return "INFINITY" if v > 0 else "-INFINITY"

    typed = (np.float32 if dtype is DType.FLOAT else np.float64)(value)
    magnitude = abs(v)
    if magnitude == 0.0 or 1e-4 <= magnitude < 1e16:
        text = np.format_float_positional(typed, unique=True, trim="0")
    else:
        text = np.format_float_scientific(typed, unique=True, trim="0")
    return text + "f" if dtype is DType.FLOAT else text


class Tensor:
    """
    A value flowing through the graph.

    Tensors are owned by the graph's tensor table; nodes only keep references.
    Constant tensors carry their payload as a numpy array of matching shape.
    """

    def __init__(
        self,
        name: str,
        dtype: DType,
        shape: Iterable[int],
        role: TensorRole = TensorRole.INTERMEDIATE,
        data: Optional[np.ndarray] = None
    ):
        """
        Args:
            name: Unique tensor name (the ONNX value name)
            dtype: Element type
            shape: Dimensions, outermost first. May contain zeros.
            role: Graph input, graph output, constant or intermediate
            data: Constant payload, row-major; its size must match the shape
        """
        self.name = name
        self.dtype = dtype
        self.shape: Shape = as_shape(shape)
        self.role = role
        self.data: Optional[np.ndarray] = None
        # Set by the graph when the default identifier is already taken
        self.c_name_override: Optional[str] = None
        if data is not None:
            self.set_data(data)

    def set_data(self, data) -> None:
        """Attach a constant payload. Raises ShapeError if the size is wrong."""
        array = np.asarray(data)
        if array.size != self.size:
            raise ShapeError(
                f"Tensor '{self.name}': payload has {array.size} elements, "
                f"shape {list(self.shape)} needs {self.size}"
            )
        if self.dtype.numpy_type is not None:
            array = array.astype(self.dtype.numpy_type, copy=False)
        self.data = array.reshape(self.shape)

    @classmethod
    def from_onnx(cls, proto: TensorProto, role: TensorRole = TensorRole.CONSTANT,
                  name: Optional[str] = None) -> "Tensor":
        """
        Build a constant tensor from an ONNX TensorProto.

        Accepts raw_data as well as the typed data fields, including byte sized
        types that ONNX packs into int32_data.
        """
        name = name or proto.name
        if proto.data_location == TensorProto.EXTERNAL:
            raise UnsupportedFeatureError(f"Unimplemented: external data in tensor '{name}'")
        if proto.HasField("segment"):
            raise UnsupportedFeatureError(f"Unimplemented: segmented data in tensor '{name}'")

        dtype = DType.from_onnx(proto.data_type)
        if dtype.numpy_type is None:
            raise UnsupportedFeatureError(
                f"Unimplemented: constant data of type {dtype} in tensor '{name}'"
            )

        shape = as_shape(proto.dims)
        try:
            array = numpy_helper.to_array(proto)
        except ValueError as e:
            raise ShapeError(f"Tensor '{name}': data does not match dimensions {list(shape)}: {e}")

        return cls(name, dtype, shape, role=role, data=array)

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return math.prod(self.shape)

    @property
    def is_const(self) -> bool:
        return self.data is not None

    @property
    def c_name(self) -> str:
        if self.c_name_override:
            return self.c_name_override
        return self.default_c_name

    @property
    def default_c_name(self) -> str:
        # Prefixed since ONNX allows a tensor and a node to share a name
        return "tensor_" + cify_name(self.name)

    @property
    def c_dims(self) -> Shape:
        """Declared array dimensions. A scalar is declared as a one element array."""
        return self.shape if self.shape else (1,)

    def declaration(self, const: bool = False) -> str:
        """
        C declaration of this tensor as a dimensioned array, e.g.
        'const float tensor_x[1][3][4][4]'.
        """
        dims = "".join(f"[{d}]" for d in self.c_dims)
        prefix = "const " if const else ""
        return f"{prefix}{self.dtype.c_type} {self.c_name}{dims}"

    def format_element(self, value) -> str:
        if self.dtype.is_floating_point:
            return format_float_literal(value, self.dtype)
        if self.dtype is DType.BOOL:
            return "1" if value else "0"
        value = int(value)
        if self.dtype is DType.INT64 and value == INT64_MIN:
            # -9223372036854775808 parses as a negated unsigned constant
            return "INT64_MIN"
        if self.dtype is DType.UINT64 and value > INT64_MAX:
            return f"{value}ULL"
        return str(value)

    def initializer(self) -> str:
        """
        Brace-nested initializer for the constant payload.

        Nesting depth equals the declared rank. A dimension of size 0 is
        printed as '{}' and not descended into.
        """
        if self.data is None:
            raise ValueError(f"Tensor '{self.name}' has no constant data to print")
        flat = self.data.reshape(-1)
        lines: List[str] = []
        self._print_initializer(lines, flat, self.c_dims, 0, 0, "")
        return "\n".join(lines)

    def _print_initializer(
        self,
        lines: List[str],
        flat: np.ndarray,
        dims: Shape,
        dim: int,
        offset: int,
        suffix: str
    ) -> None:
        indent = INDENT * dim
        if dims[dim] == 0:
            lines.append(f"{indent}{{}}{suffix}")
            return

        if dim == len(dims) - 1:
            values = ", ".join(
                self.format_element(flat[offset + i]) for i in range(dims[dim])
            )
            lines.append(f"{indent}{{{values}}}{suffix}")
            return

        # Outer dimension: recurse until the innermost one is reached
        stride = math.prod(dims[dim + 1:])
        lines.append(f"{indent}{{")
        for i in range(dims[dim]):
            inner_suffix = "," if i < dims[dim] - 1 else ""
            self._print_initializer(lines, flat, dims, dim + 1, offset + i * stride, inner_suffix)
        lines.append(f"{indent}}}{suffix}")

    def __repr__(self) -> str:
        return (f"Tensor(name='{self.name}', dtype={self.dtype}, "
                f"shape={list(self.shape)}, role={self.role.value})")
