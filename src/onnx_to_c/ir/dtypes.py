"""
Tensor element types and the type predicates operators check their inputs with.
"""

from enum import Enum
from typing import Optional

import numpy as np
from onnx import TensorProto

from ..errors import UnsupportedFeatureError


class DType(Enum):
    """
    Closed set of element types, keyed on the ONNX TensorProto data type code.

    Each member carries (onnx code, short name, C type, numpy type). Types
    without a C equivalent have c_type None; they can take part in type
    checks but cannot be declared in the generated source.
    """

    FLOAT = (TensorProto.FLOAT, "float32", "float", np.float32)
    DOUBLE = (TensorProto.DOUBLE, "float64", "double", np.float64)
    FLOAT16 = (TensorProto.FLOAT16, "float16", None, np.float16)
    BFLOAT16 = (TensorProto.BFLOAT16, "bfloat16", None, None)
    INT8 = (TensorProto.INT8, "int8", "int8_t", np.int8)
    UINT8 = (TensorProto.UINT8, "uint8", "uint8_t", np.uint8)
    INT16 = (TensorProto.INT16, "int16", "int16_t", np.int16)
    UINT16 = (TensorProto.UINT16, "uint16", "uint16_t", np.uint16)
    INT32 = (TensorProto.INT32, "int32", "int32_t", np.int32)
    UINT32 = (TensorProto.UINT32, "uint32", "uint32_t", np.uint32)
    INT64 = (TensorProto.INT64, "int64", "int64_t", np.int64)
    UINT64 = (TensorProto.UINT64, "uint64", "uint64_t", np.uint64)
    BOOL = (TensorProto.BOOL, "bool", "bool", np.bool_)

    def __init__(self, onnx_type: int, short_name: str, c_type: Optional[str], numpy_type):
        self.onnx_type = onnx_type
        self.short_name = short_name
        self._c_type = c_type
        self.numpy_type = numpy_type

    @property
    def c_type(self) -> str:
        """C type name used in declarations, e.g. 'float' or 'int64_t'."""
        if self._c_type is None:
            raise UnsupportedFeatureError(
                f"Unimplemented: no C type for tensor element type {self.short_name}"
            )
        return self._c_type

    @property
    def is_floating_point(self) -> bool:
        return self in _ALL_FLOATING_POINT

    @classmethod
    def from_onnx(cls, onnx_type: int) -> "DType":
        """Look up the DType for an ONNX data type code."""
        for dtype in cls:
            if dtype.onnx_type == onnx_type:
                return dtype
        type_name = TensorProto.DataType.Name(onnx_type) \
            if onnx_type in TensorProto.DataType.values() else str(onnx_type)
        raise UnsupportedFeatureError(f"Unimplemented: tensor element type {type_name}")

    @classmethod
    def from_numpy(cls, numpy_dtype) -> "DType":
        numpy_dtype = np.dtype(numpy_dtype)
        for dtype in cls:
            if dtype.numpy_type is not None and np.dtype(dtype.numpy_type) == numpy_dtype:
                return dtype
        raise UnsupportedFeatureError(f"Unimplemented: numpy element type {numpy_dtype}")

    def __str__(self) -> str:
        return self.short_name


_HIGH_PRECISION_NUMERIC = frozenset({
    DType.INT32, DType.UINT32, DType.INT64, DType.UINT64,
    DType.FLOAT16, DType.FLOAT, DType.DOUBLE, DType.BFLOAT16,
})
_ALL_FLOATING_POINT = frozenset({DType.FLOAT16, DType.FLOAT, DType.DOUBLE, DType.BFLOAT16})
_PLAIN_FLOATING_POINT = frozenset({DType.FLOAT16, DType.FLOAT, DType.DOUBLE})
_EIGHT_BIT = frozenset({DType.INT8, DType.UINT8})
_UNSIGNED_INTEGERS = frozenset({DType.UINT8, DType.UINT16, DType.UINT32, DType.UINT64})
_SIGNED_INTEGERS = frozenset({DType.INT8, DType.INT16, DType.INT32, DType.INT64})


# Predicates follow the type constraint names of the ONNX operator docs.

def is_high_precision_numeric(dtype: DType) -> bool:
    """(u)int32, (u)int64, float16/32/64, bfloat16"""
    return dtype in _HIGH_PRECISION_NUMERIC


def is_all_floating_point(dtype: DType) -> bool:
    """float16/32/64, bfloat16"""
    return dtype in _ALL_FLOATING_POINT


def is_plain_floating_point(dtype: DType) -> bool:
    """float16/32/64 (not bfloat16)"""
    return dtype in _PLAIN_FLOATING_POINT


def is_8bit(dtype: DType) -> bool:
    return dtype in _EIGHT_BIT


def is_int64(dtype: DType) -> bool:
    return dtype is DType.INT64


def is_integer(dtype: DType) -> bool:
    return dtype in _SIGNED_INTEGERS or dtype in _UNSIGNED_INTEGERS


def is_unsigned_integer(dtype: DType) -> bool:
    return dtype in _UNSIGNED_INTEGERS


def is_signed_integer(dtype: DType) -> bool:
    return dtype in _SIGNED_INTEGERS


def lowest_value_literal(dtype: DType) -> str:
    """C expression for the smallest finite value of a type (max-reduction seed)."""
    literals = {
        DType.FLOAT: "-FLT_MAX",
        DType.DOUBLE: "-DBL_MAX",
        DType.INT8: "INT8_MIN",
        DType.UINT8: "0",
        DType.INT16: "INT16_MIN",
        DType.UINT16: "0",
        DType.INT32: "INT32_MIN",
        DType.UINT32: "0",
        DType.INT64: "INT64_MIN",
        DType.UINT64: "0",
    }
    if dtype not in literals:
        raise UnsupportedFeatureError(f"Unimplemented: minimum value for type {dtype}")
    return literals[dtype]
