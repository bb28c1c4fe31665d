"""
MaxPool and AveragePool - sliding window reductions over 2D images
"""

import logging
from abc import abstractmethod
from typing import Iterable, List, Optional, Tuple

from onnx import AttributeProto

from ..errors import InvalidAttributeError, UnsupportedFeatureError
from ..ir.dtypes import is_8bit, is_plain_floating_point, lowest_value_literal
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.shape_utils import pool_output_size
from ..ir.tensor import Tensor
from .attributes import get_bool, get_int, get_ints, get_string, require_non_negative, require_positive

logger = logging.getLogger(__name__)


class PoolNode(IRNode):
    """
    Common attribute handling and shape rule of the pooling operators.

    Only 2D images (rank 4 input) with batch size 1 and no padding are
    implemented; other configurations raise UnsupportedFeatureError.
    Subclasses provide the window reduction.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.auto_pad = "NOTSET"
        self.ceil_mode = False
        self.dilations: List[int] = []
        self.kernel_shape: List[int] = []
        self.pads: List[int] = []
        self.strides: List[int] = []

        # Filled in by resolve()
        self.pad_sums: List[int] = []
        self.resolved_strides: List[int] = []
        self.resolved_dilations: List[int] = []
        # Axes whose last window reaches past the input (ceil_mode only)
        self.overhang: List[bool] = []

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        owner = self.description
        for a in attributes:
            if a.name == "auto_pad":
                self.auto_pad = get_string(a, owner)
                if self.auto_pad in ("SAME_UPPER", "SAME_LOWER"):
                    raise UnsupportedFeatureError(
                        f"Unimplemented: auto_pad {self.auto_pad} for {owner}"
                    )
                if self.auto_pad not in ("NOTSET", "VALID"):
                    raise InvalidAttributeError(f"{owner}: unknown auto_pad '{self.auto_pad}'")
            elif a.name == "ceil_mode":
                self.ceil_mode = get_bool(a, owner)
            elif a.name == "dilations":
                self.dilations = require_positive(get_ints(a, owner), a.name, owner)
            elif a.name == "kernel_shape":
                self.kernel_shape = require_positive(get_ints(a, owner), a.name, owner)
            elif a.name == "pads":
                self.pads = require_non_negative(get_ints(a, owner), a.name, owner)
            elif a.name == "strides":
                self.strides = require_positive(get_ints(a, owner), a.name, owner)
            elif not self.parse_extra_attribute(a):
                self.unknown_attribute(a)

    def parse_extra_attribute(self, attribute: AttributeProto) -> bool:
        """Hook for operator specific attributes. Returns True if handled."""
        return False

    def check_input_type(self, x: Tensor) -> None:
        self.check_type(x, "X", is_plain_floating_point)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x = inputs[0]
        self.check_input_type(x)

        if x.rank != 4:
            raise UnsupportedFeatureError(
                f"Unimplemented: {self.description} for non 2D images (input rank {x.rank})"
            )
        if x.shape[0] != 1:
            raise UnsupportedFeatureError(
                f"Unimplemented: {self.description} with batch size {x.shape[0]}"
            )
        if not self.kernel_shape:
            raise InvalidAttributeError(f"{self.description}: kernel_shape not provided")

        n_spatial = x.rank - 2
        self._check_length(self.kernel_shape, n_spatial, "kernel_shape")
        strides = self.strides or [1] * n_spatial
        self._check_length(strides, n_spatial, "strides")
        dilations = self.dilations or [1] * n_spatial
        self._check_length(dilations, n_spatial, "dilations")

        pads = self.pads or [0] * (2 * n_spatial)
        if self.auto_pad == "VALID":
            pads = [0] * (2 * n_spatial)
        self._check_length(pads, 2 * n_spatial, "pads")
        # Known limitation: the pad sums feed the size formula, but any
        # nonzero pad is rejected below.
        self.pad_sums = [pads[i] + pads[i + n_spatial] for i in range(n_spatial)]
        if any(pads):
            raise UnsupportedFeatureError(f"Unimplemented: pads != 0 for {self.description}")

        out_spatial = []
        self.overhang = []
        for i in range(n_spatial):
            in_size = x.shape[2 + i]
            out = pool_output_size(in_size, self.pad_sums[i], self.kernel_shape[i],
                                   strides[i], dilations[i], self.ceil_mode)
            # A window may not start beyond the input
            if self.ceil_mode and (out - 1) * strides[i] >= in_size + pads[i]:
                out -= 1
            window_end = (out - 1) * strides[i] + (self.kernel_shape[i] - 1) * dilations[i] + 1
            out_spatial.append(out)
            self.overhang.append(window_end > in_size)

        self.resolved_strides = strides
        self.resolved_dilations = dilations
        logger.debug("%s: output spatial %s, overhang %s",
                     self.description, out_spatial, self.overhang)

        return [self.make_output(0, list(x.shape[:2]) + out_spatial, x.dtype)]

    def _check_length(self, values: List[int], expected: int, name: str) -> None:
        if len(values) != expected:
            raise InvalidAttributeError(
                f"{self.description}: attribute '{name}' has {len(values)} values, "
                f"expected {expected}"
            )

    def attribute_summary(self) -> List[Tuple[str, object]]:
        n_spatial = len(self.kernel_shape)
        return [
            ("auto_pad", self.auto_pad),
            ("ceil_mode", int(self.ceil_mode)),
            ("dilations", self.resolved_dilations),
            ("kernel_shape", self.kernel_shape),
            ("pads", self.pads or [0] * (2 * n_spatial)),
            ("strides", self.resolved_strides),
        ]

    def window_index(self, out_vars: List[str], k_vars: List[str]) -> List[str]:
        """Input coordinate of kernel element k for output o, per axis."""
        indices = []
        for o, k, s, d in zip(out_vars, k_vars, self.resolved_strides, self.resolved_dilations):
            start = o if s == 1 else f"{o}*{s}"
            step = k if d == 1 else f"{k}*{d}"
            indices.append(f"{start}+{step}")
        return indices

    def guard_condition(self, indices: List[str]) -> str:
        """C condition true when the window element lies outside the input."""
        x = self.inputs[0]
        tests = [f"{idx} >= {x.shape[2 + i]}"
                 for i, idx in enumerate(indices) if self.overhang[i]]
        return " || ".join(tests)

    def generate_c_code(self) -> List[str]:
        x = self.inputs[0]
        y = self.outputs[0]
        n_spatial = x.rank - 2
        out_vars = loop_vars("o", n_spatial)
        k_vars = loop_vars("k", n_spatial)
        indices = self.window_index(out_vars, k_vars)
        guard = self.guard_condition(indices)
        out_cell = f"{y.c_name}[b][c]{subscript(out_vars)}"
        in_cell = f"{x.c_name}[b][c]{subscript(indices)}"

        lines = self.header_comment(self.attribute_summary())
        depth = self.open_loops(lines, [("b", x.shape[0]), ("c", x.shape[1])])
        depth = self.open_loops(lines, zip(out_vars, y.shape[2:]), depth)
        lines.extend(INDENT * depth + s for s in self.window_init(guard))
        depth = self.open_loops(lines, zip(k_vars, self.kernel_shape), depth)
        if guard:
            lines.append(INDENT * depth + f"if ({guard})")
            lines.append(INDENT * (depth + 1) + "continue;")
        lines.extend(INDENT * depth + s for s in self.window_step(in_cell, guard))
        depth = self.close_loops(lines, n_spatial, depth)
        lines.extend(INDENT * depth + s for s in self.window_finalize(out_cell, guard))
        self.close_loops(lines, n_spatial + 2, depth)
        return lines

    @abstractmethod
    def window_init(self, guard: str) -> List[str]:
        """Statements declaring the window accumulator."""

    @abstractmethod
    def window_step(self, in_cell: str, guard: str) -> List[str]:
        """Statements folding one input element into the accumulator."""

    @abstractmethod
    def window_finalize(self, out_cell: str, guard: str) -> List[str]:
        """Statements storing the accumulated value into the output."""


class MaxPoolNode(PoolNode):
    """Maximum over each window. The optional Indices output is not implemented."""

    OP_TYPE = "MaxPool"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.storage_order = 0

    def parse_extra_attribute(self, attribute: AttributeProto) -> bool:
        if attribute.name == "storage_order":
            self.storage_order = get_int(attribute, self.description)
            return True
        return False

    def check_input_type(self, x: Tensor) -> None:
        self.check_type(x, "X", is_plain_floating_point, is_8bit)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        if self.storage_order != 0:
            raise UnsupportedFeatureError(
                f"Unimplemented: column-major storage_order for {self.description}"
            )
        return super().resolve(inputs)

    def attribute_summary(self) -> List[Tuple[str, object]]:
        return super().attribute_summary() + [("storage_order", self.storage_order)]

    def window_init(self, guard: str) -> List[str]:
        x = self.inputs[0]
        return [f"{x.dtype.c_type} curmax = {lowest_value_literal(x.dtype)};"]

    def window_step(self, in_cell: str, guard: str) -> List[str]:
        return [f"curmax = MAX(curmax, {in_cell});"]

    def window_finalize(self, out_cell: str, guard: str) -> List[str]:
        return [f"{out_cell} = curmax;"]


class AveragePoolNode(PoolNode):
    """
    Mean over each window. Windows cut short by ceil_mode divide by the
    number of input elements they actually cover.
    """

    OP_TYPE = "AveragePool"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.count_include_pad = False

    def parse_extra_attribute(self, attribute: AttributeProto) -> bool:
        if attribute.name == "count_include_pad":
            self.count_include_pad = get_bool(attribute, self.description)
            return True
        return False

    def attribute_summary(self) -> List[Tuple[str, object]]:
        return super().attribute_summary() + [("count_include_pad", int(self.count_include_pad))]

    def window_init(self, guard: str) -> List[str]:
        x = self.inputs[0]
        lines = [f"{x.dtype.c_type} cursum = 0;"]
        if guard:
            lines.append("uint32_t count = 0;")
        return lines

    def window_step(self, in_cell: str, guard: str) -> List[str]:
        lines = [f"cursum += {in_cell};"]
        if guard:
            lines.append("count++;")
        return lines

    def window_finalize(self, out_cell: str, guard: str) -> List[str]:
        if guard:
            return [f"{out_cell} = cursum / count;"]
        window = 1
        for k in self.kernel_shape:
            window *= k
        return [f"{out_cell} = cursum / {window};"]
