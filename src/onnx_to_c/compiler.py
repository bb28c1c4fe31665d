"""
Main compiler entry point for ONNX to C compilation
"""

import sys
from typing import Mapping, Optional

from onnx import ModelProto

from .codegen.c_printer import CPrinter
from .context import CompilationContext
from .frontend.onnx_loader import load_model
from .ir.graph import IRGraph
from .lowering.lower import Lowering


class OnnxToCCompiler:
    """
    Main compiler class that orchestrates the compilation pipeline.

    Pipeline:
    1. Frontend: Load the ONNX model
    2. Lowering: Build the IR graph and parse node attributes
    3. Resolution: Infer every tensor's shape and type
    4. Codegen: Generate the C source
    """

    def __init__(
        self,
        verbose: bool = False,
        function_name: str = "model_forward",
        dim_values: Optional[Mapping[str, int]] = None
    ):
        """
        Initialize the compiler.

        Args:
            verbose: If True, print compilation progress to stderr
            function_name: Name of the generated C function
            dim_values: Values for symbolic input dimensions
        """
        self.verbose = verbose
        self.context = CompilationContext(
            function_name=function_name,
            dim_values=dict(dim_values or {}),
            verbose=verbose
        )

    def build_graph(self, model: ModelProto) -> IRGraph:
        """
        Lower and resolve a model without generating code.

        Args:
            model: The parsed ONNX model

        Returns:
            The resolved IR graph
        """
        self._log("\n[1/3] Lowering ONNX graph to IR...")
        ir_graph = Lowering(self.context).lower_onnx_model(model)
        self._log(f"  ✓ Created {len(ir_graph.nodes)} IR nodes")
        self._log(f"  ✓ Registered {len(ir_graph.tensors)} input and constant tensors")

        self._log("\n[2/3] Resolving shapes and types...")
        ir_graph.resolve()
        self._log(f"  ✓ Resolved {len(ir_graph.resolved_order)} nodes "
                  f"in {ir_graph.resolve_passes} passes")

        if self.verbose:
            self._log("\n" + ir_graph.print_graph())
        return ir_graph

    def compile(self, model: ModelProto) -> str:
        """
        Compile an ONNX model to C source.

        Args:
            model: The parsed ONNX model

        Returns:
            The generated C source
        """
        self._log("=" * 60)
        self._log("ONNX to C Compiler")
        self._log("=" * 60)

        ir_graph = self.build_graph(model)

        self._log("\n[3/3] Generating C code...")
        source = CPrinter(ir_graph).generate_source()
        self._log(f"  ✓ Generated function {self.context.function_name}()")

        constants = ir_graph.constant_tensors()
        self._log("\nModel Statistics:")
        self._log(f"  Constant elements: {sum(t.size for t in constants)}")
        self._log(f"  Intermediate buffers: {len(ir_graph.intermediate_tensors())}")
        self._log(f"  Number of operations: {len(ir_graph.nodes)}")
        return source

    def compile_file(self, model_path: str, output_path: Optional[str] = None) -> str:
        """
        Compile an ONNX model file.

        Args:
            model_path: Path of the .onnx file
            output_path: File to write the C source to (None to skip)

        Returns:
            The generated C source
        """
        self._log(f"Loading {model_path}")
        source = self.compile(load_model(model_path))
        if output_path is not None:
            with open(output_path, 'w') as f:
                f.write(source)
            self._log(f"  ✓ Wrote {output_path}")
        return source

    def _log(self, message: str) -> None:
        """Print a log message to stderr if verbose mode is enabled."""
        if self.verbose:
            print(message, file=sys.stderr)


def compile_model(
    model: ModelProto,
    function_name: str = "model_forward",
    dim_values: Optional[Mapping[str, int]] = None,
    verbose: bool = False
) -> str:
    """
    Convenience function to compile an ONNX model to C.

    Args:
        model: The parsed ONNX model (e.g. from onnx.load)
        function_name: Name of the generated C function
        dim_values: Values for symbolic input dimensions
        verbose: If True, print compilation progress

    Returns:
        The generated C source

    Example:
        >>> model = onnx.load("mnist.onnx")
        >>> source = compile_model(model)
    """
    compiler = OnnxToCCompiler(verbose=verbose, function_name=function_name,
                               dim_values=dim_values)
    return compiler.compile(model)
