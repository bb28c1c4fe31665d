"""
C code generator - converts a resolved IR graph to one C source file
"""

from typing import List

from .. import __version__
from ..ir.graph import IRGraph
from ..ir.node import INDENT, comment_text

INCLUDES = ["float.h", "math.h", "stdbool.h", "stdint.h", "string.h"]


class CPrinter:
    """
    Generates C code from a resolved IR graph.

    Output layout:
    - Header comment and includes
    - Constant tensors as static const arrays with their initializers
    - Intermediate tensors as static arrays
    - One function taking the graph inputs (const) and outputs as
      dimensioned arrays, running each node's body in resolved order
    """

    def __init__(self, ir_graph: IRGraph):
        """
        Initialize the C code generator.

        Args:
            ir_graph: The resolved IR graph to generate code from
        """
        if not ir_graph.is_resolved:
            raise ValueError("IR graph must be resolved before generating code")
        self.ir_graph = ir_graph
        self.function_name = ir_graph.context.function_name

    def generate_source(self) -> str:
        """
        Generate the complete C source.

        Returns:
            The C code as a string
        """
        lines: List[str] = []
        lines.extend(self.generate_preamble())
        lines.extend(self.generate_constants())
        lines.extend(self.generate_intermediates())
        lines.extend(self.generate_function())
        return "\n".join(lines) + "\n"

    def generate_preamble(self) -> List[str]:
        context = self.ir_graph.context
        lines = [
            f"/* Generated by onnx_to_c {__version__}",
            f" * ONNX IR version: {context.ir_version}",
            f" * ONNX opset version: {context.opset_version}",
            " * DO NOT EDIT",
            " */",
        ]
        lines.extend(f"#include <{header}>" for header in INCLUDES)
        lines.append("")
        lines.append("#define MAX(X, Y) ((X) > (Y) ? (X) : (Y))")
        lines.append("#define MIN(X, Y) ((X) < (Y) ? (X) : (Y))")
        lines.append("")
        return lines

    def generate_constants(self) -> List[str]:
        """Constant tensors read by some node, with brace-nested initializers."""
        lines = []
        for tensor in self.ir_graph.constant_tensors():
            lines.append(f"/* {comment_text(tensor.name)}: {tensor.dtype} {list(tensor.shape)} */")
            lines.append(f"static {tensor.declaration(const=True)} =")
            lines.append(tensor.initializer() + ";")
            lines.append("")
        return lines

    def generate_intermediates(self) -> List[str]:
        lines = []
        for tensor in self.ir_graph.intermediate_tensors():
            lines.append(f"static {tensor.declaration()};")
        if lines:
            lines.append("")
        return lines

    def generate_signature(self) -> str:
        params: List[str] = []
        params.extend(t.declaration(const=True) for t in self.ir_graph.input_tensors())
        params.extend(t.declaration() for t in self.ir_graph.output_tensors())
        return f"void {self.function_name}({', '.join(params) or 'void'})"

    def generate_function(self) -> List[str]:
        lines = [self.generate_signature(), "{"]
        first = True
        for node in self.ir_graph.resolved_order:
            body = node.generate_c_code()
            if not body:
                continue
            if not first:
                lines.append("")
            first = False
            lines.append(INDENT + "{")
            lines.extend(self._indent(body, 2))
            lines.append(INDENT + "}")
        lines.append("}")
        return lines

    @staticmethod
    def _indent(body: List[str], depth: int) -> List[str]:
        return [INDENT * depth + line if line else line for line in body]
