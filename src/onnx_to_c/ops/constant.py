"""
Constant - a node whose output is a compile-time tensor
"""

from typing import Iterable, List, Optional

import numpy as np
from onnx import AttributeProto

from ..errors import InvalidAttributeError, UnsupportedFeatureError
from ..ir.dtypes import DType
from ..ir.node import IRNode
from ..ir.tensor import Tensor, TensorRole
from .attributes import get_float, get_floats, get_int, get_ints, get_tensor

UNSUPPORTED_VALUES = ("sparse_value", "value_string", "value_strings")


class ConstantNode(IRNode):
    """
    Produces the tensor held in its attribute. The output is printed with
    the other constants, so the node emits no code.
    """

    OP_TYPE = "Constant"
    MIN_INPUTS = 0
    MAX_INPUTS = 0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.value: Optional[Tensor] = None

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        owner = self.description
        name = self.output_names[0] if self.output_names else self.name
        for a in attributes:
            if self.value is not None:
                raise InvalidAttributeError(f"{owner}: more than one value attribute")
            if a.name == "value":
                self.value = Tensor.from_onnx(get_tensor(a, owner), name=name)
            elif a.name == "value_float":
                self.value = Tensor(name, DType.FLOAT, (), data=np.float32(get_float(a, owner)))
            elif a.name == "value_floats":
                values = get_floats(a, owner)
                self.value = Tensor(name, DType.FLOAT, (len(values),),
                                    data=np.array(values, dtype=np.float32))
            elif a.name == "value_int":
                self.value = Tensor(name, DType.INT64, (), data=np.int64(get_int(a, owner)))
            elif a.name == "value_ints":
                values = get_ints(a, owner)
                self.value = Tensor(name, DType.INT64, (len(values),),
                                    data=np.array(values, dtype=np.int64))
            elif a.name in UNSUPPORTED_VALUES:
                raise UnsupportedFeatureError(f"Unimplemented: attribute '{a.name}' for {owner}")
            else:
                self.unknown_attribute(a)

        if self.value is None:
            raise InvalidAttributeError(f"{owner}: no value attribute given")

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        self.value.role = TensorRole.CONSTANT
        return [self.value]

    def generate_c_code(self) -> List[str]:
        return []
