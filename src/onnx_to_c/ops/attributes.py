"""
Typed accessors for ONNX node attributes.

Each accessor checks the attribute's type tag and raises InvalidAttributeError
naming the node and attribute when it does not match.
"""

from typing import List

from onnx import AttributeProto, TensorProto, helper

from ..errors import InvalidAttributeError


def _expect(attr: AttributeProto, expected: int, owner: str) -> None:
    if attr.type != expected:
        raise InvalidAttributeError(
            f"{owner}: attribute '{attr.name}' must be of type "
            f"{AttributeProto.AttributeType.Name(expected)}, got "
            f"{AttributeProto.AttributeType.Name(attr.type)}"
        )


def get_int(attr: AttributeProto, owner: str) -> int:
    _expect(attr, AttributeProto.INT, owner)
    return int(attr.i)


def get_ints(attr: AttributeProto, owner: str) -> List[int]:
    _expect(attr, AttributeProto.INTS, owner)
    return [int(v) for v in attr.ints]


def get_float(attr: AttributeProto, owner: str) -> float:
    _expect(attr, AttributeProto.FLOAT, owner)
    return float(attr.f)


def get_floats(attr: AttributeProto, owner: str) -> List[float]:
    _expect(attr, AttributeProto.FLOATS, owner)
    return [float(v) for v in attr.floats]


def get_string(attr: AttributeProto, owner: str) -> str:
    _expect(attr, AttributeProto.STRING, owner)
    return helper.get_attribute_value(attr).decode("utf-8")


def get_tensor(attr: AttributeProto, owner: str) -> TensorProto:
    _expect(attr, AttributeProto.TENSOR, owner)
    return attr.t


def get_bool(attr: AttributeProto, owner: str) -> bool:
    """An INT attribute restricted to 0 or 1."""
    value = get_int(attr, owner)
    if value not in (0, 1):
        raise InvalidAttributeError(
            f"{owner}: attribute '{attr.name}' must be 0 or 1, got {value}"
        )
    return bool(value)


def require_positive(values: List[int], name: str, owner: str) -> List[int]:
    for v in values:
        if v < 1:
            raise InvalidAttributeError(
                f"{owner}: attribute '{name}' must be positive, got {values}"
            )
    return values


def require_non_negative(values: List[int], name: str, owner: str) -> List[int]:
    for v in values:
        if v < 0:
            raise InvalidAttributeError(
                f"{owner}: attribute '{name}' must be non-negative, got {values}"
            )
    return values
