"""
Conv - N-dimensional convolution
"""

import logging
from typing import Iterable, List, Optional

from onnx import AttributeProto

from ..errors import InvalidAttributeError, ShapeError, UnsupportedFeatureError
from ..ir.dtypes import is_high_precision_numeric
from ..ir.node import INDENT, IRNode, loop_vars, subscript
from ..ir.shape_utils import conv_output_size, same_upper_padding
from ..ir.tensor import Tensor
from .attributes import get_int, get_ints, get_string, require_non_negative, require_positive

logger = logging.getLogger(__name__)

AUTO_PAD_MODES = ("NOTSET", "VALID", "SAME_UPPER", "SAME_LOWER")


class ConvNode(IRNode):
    """
    Convolution Y = X * W (+ B) over inputs of shape (N, C, D1, ..., Dn).

    Padding is materialized: the input is copied into a zero-filled scratch
    buffer with the pad margins around it, so the convolution loops never
    test for borders. Without padding the loops read X directly.
    """

    OP_TYPE = "Conv"
    MIN_INPUTS = 2
    MAX_INPUTS = 3

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.auto_pad = "NOTSET"
        self.dilations: List[int] = []
        self.group = 1
        self.kernel_shape: List[int] = []
        self.pads: List[int] = []
        self.strides: List[int] = []

        # Filled in by resolve(), one entry per spatial axis
        self.pads_begin: List[int] = []
        self.pads_end: List[int] = []
        self.resolved_strides: List[int] = []

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        owner = self.description
        for a in attributes:
            if a.name == "auto_pad":
                self.auto_pad = get_string(a, owner)
                if self.auto_pad == "SAME_LOWER":
                    raise UnsupportedFeatureError(f"Unimplemented: SAME_LOWER padding for {owner}")
                if self.auto_pad not in AUTO_PAD_MODES:
                    raise InvalidAttributeError(f"{owner}: unknown auto_pad '{self.auto_pad}'")
            elif a.name == "dilations":
                self.dilations = require_positive(get_ints(a, owner), a.name, owner)
                if any(d != 1 for d in self.dilations):
                    raise UnsupportedFeatureError(
                        f"Unimplemented: dilations other than 1 for {owner}"
                    )
            elif a.name == "group":
                self.group = get_int(a, owner)
                if self.group < 1:
                    raise InvalidAttributeError(f"{owner}: group must be positive, got {self.group}")
            elif a.name == "kernel_shape":
                self.kernel_shape = require_positive(get_ints(a, owner), a.name, owner)
            elif a.name == "pads":
                self.pads = require_non_negative(get_ints(a, owner), a.name, owner)
            elif a.name == "strides":
                self.strides = require_positive(get_ints(a, owner), a.name, owner)
            else:
                self.unknown_attribute(a)

    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        x, w = inputs[0], inputs[1]
        b = inputs[2] if len(inputs) > 2 else None

        self.check_type(x, "X", is_high_precision_numeric)
        self.check_type(w, "W", is_high_precision_numeric)
        self.check_same_type(x, w)
        if b is not None:
            self.check_type(b, "B", is_high_precision_numeric)
            self.check_same_type(x, b)

        if self.group != 1:
            raise UnsupportedFeatureError(
                f"Unimplemented: group={self.group} for {self.description}"
            )
        if x.rank < 3:
            raise ShapeError(f"{self.description}: input X must have rank >= 3, got {x.rank}")
        if w.rank != x.rank:
            raise ShapeError(
                f"{self.description}: W has rank {w.rank}, X has rank {x.rank}"
            )
        if x.shape[1] != w.shape[1]:
            raise ShapeError(
                f"{self.description}: X has {x.shape[1]} channels, W expects {w.shape[1]}"
            )

        n_spatial = x.rank - 2
        out_maps = w.shape[0]
        if self.kernel_shape and list(w.shape[2:]) != self.kernel_shape:
            raise ShapeError(
                f"{self.description}: kernel_shape {self.kernel_shape} does not match "
                f"W spatial shape {list(w.shape[2:])}"
            )
        kernel = list(w.shape[2:])
        if b is not None and b.shape != (out_maps,):
            raise ShapeError(
                f"{self.description}: B must have shape [{out_maps}], got {list(b.shape)}"
            )

        strides = self.strides or [1] * n_spatial
        self._check_length(strides, n_spatial, "strides")
        if self.dilations:
            self._check_length(self.dilations, n_spatial, "dilations")

        out_spatial = []
        if self.auto_pad == "SAME_UPPER":
            self.pads_begin, self.pads_end = [], []
            for i in range(n_spatial):
                out, pb, pa = same_upper_padding(x.shape[2 + i], kernel[i], strides[i])
                out_spatial.append(out)
                self.pads_begin.append(pb)
                self.pads_end.append(pa)
        else:
            if self.auto_pad == "VALID" or not self.pads:
                pads = [0] * (2 * n_spatial)
            else:
                pads = self.pads
                self._check_length(pads, 2 * n_spatial, "pads")
            self.pads_begin = pads[:n_spatial]
            self.pads_end = pads[n_spatial:]
            for i in range(n_spatial):
                out_spatial.append(conv_output_size(
                    x.shape[2 + i], self.pads_begin[i], self.pads_end[i], kernel[i], strides[i]
                ))

        self.resolved_strides = strides
        self.kernel_shape = kernel
        logger.debug("%s: pads %s/%s, output spatial %s",
                     self.description, self.pads_begin, self.pads_end, out_spatial)

        return [self.make_output(0, [x.shape[0], out_maps] + out_spatial, x.dtype)]

    def _check_length(self, values: List[int], expected: int, name: str) -> None:
        if len(values) != expected:
            raise InvalidAttributeError(
                f"{self.description}: attribute '{name}' has {len(values)} values, "
                f"expected {expected}"
            )

    @property
    def is_padded(self) -> bool:
        return any(self.pads_begin) or any(self.pads_end)

    def generate_c_code(self) -> List[str]:
        x, w = self.inputs[0], self.inputs[1]
        b = self.input(2)
        y = self.outputs[0]
        n_spatial = x.rank - 2
        channels = x.shape[1]

        lines = self.header_comment([
            ("auto_pad", self.auto_pad),
            ("dilations", self.dilations or [1] * n_spatial),
            ("group", self.group),
            ("kernel_shape", self.kernel_shape),
            ("pads", self.pads_begin + self.pads_end),
            ("strides", self.resolved_strides),
        ])

        in_vars = loop_vars("i", n_spatial)
        out_vars = loop_vars("o", n_spatial)
        k_vars = loop_vars("k", n_spatial)

        if self.is_padded:
            padded = [x.shape[2 + i] + self.pads_begin[i] + self.pads_end[i] for i in range(n_spatial)]
            lines.append("/* Input copied into a zero-padded scratch buffer */")
            lines.append(f"static {x.dtype.c_type} scratch[{channels}]{subscript(padded)};")
            lines.append("memset((void*)scratch, 0, sizeof(scratch));")

        depth = self.open_loops(lines, [("b", x.shape[0])])

        if self.is_padded:
            depth = self.open_loops(lines, [("c", channels)], depth)
            depth = self.open_loops(lines, zip(in_vars, x.shape[2:]), depth)
            dst = [f"{v}+{p}" if p else v for v, p in zip(in_vars, self.pads_begin)]
            lines.append(INDENT * depth
                         + f"scratch[c]{subscript(dst)} = {x.c_name}[b][c]{subscript(in_vars)};")
            depth = self.close_loops(lines, n_spatial + 1, depth)
            source = "scratch[c]"
        else:
            source = f"{x.c_name}[b][c]"

        out_cell = f"{y.c_name}[b][m]{subscript(out_vars)}"
        depth = self.open_loops(lines, [("m", w.shape[0])], depth)
        depth = self.open_loops(lines, zip(out_vars, y.shape[2:]), depth)
        if b is not None:
            lines.append(INDENT * depth + f"{out_cell} = {b.c_name}[m];")
        else:
            lines.append(INDENT * depth + f"{out_cell} = 0;")

        depth = self.open_loops(lines, [("c", channels)], depth)
        depth = self.open_loops(lines, zip(k_vars, self.kernel_shape), depth)
        reads = []
        for o, k, s in zip(out_vars, k_vars, self.resolved_strides):
            reads.append(f"{o}+{k}" if s == 1 else f"{o}*{s}+{k}")
        lines.append(INDENT * depth + f"{out_cell} += {source}{subscript(reads)} * "
                     f"{w.c_name}[m][c]{subscript(k_vars)};")
        depth = self.close_loops(lines, 2 * n_spatial + 2, depth)
        self.close_loops(lines, 1, depth)
        return lines
