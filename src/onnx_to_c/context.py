"""
Compilation context shared by the build, resolve and emit stages.
"""

import re
from dataclasses import dataclass, field
from typing import Mapping

_C_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class CompilationContext:
    """
    Per-compilation settings, passed explicitly to every stage.

    Attributes:
        ir_version: ONNX IR version of the model being compiled (0 if unknown)
        opset_version: Version of the default ONNX operator set (0 if unknown)
        function_name: Name of the generated C entry function
        dim_values: Values for symbolic input dimensions, e.g. {'N': 1}
        verbose: Print progress information while compiling
    """

    ir_version: int = 0
    opset_version: int = 0
    function_name: str = "model_forward"
    dim_values: Mapping[str, int] = field(default_factory=dict)
    verbose: bool = False

    def __post_init__(self):
        if not _C_IDENTIFIER.match(self.function_name):
            raise ValueError(
                f"Function name '{self.function_name}' is not a valid C identifier"
            )
        for name, value in self.dim_values.items():
            if value < 0:
                raise ValueError(f"Dimension '{name}' must be non-negative, got {value}")

    def opset_at_least(self, version: int) -> bool:
        """True if the model's opset is >= version. An unknown opset counts as new."""
        return self.opset_version == 0 or self.opset_version >= version
