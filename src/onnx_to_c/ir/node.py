"""
IRNode - base class of every operator in the graph
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from onnx import AttributeProto

from ..context import CompilationContext
from ..errors import TypeConstraintError, UnresolvableGraphError, UnsupportedFeatureError
from .dtypes import DType
from .tensor import Shape, Tensor, cify_name

logger = logging.getLogger(__name__)

INDENT = "\t"


class IRNode(ABC):
    """
    One operator instance in the graph.

    Subclasses implement the three per-operator rules:
    - parse_attributes(): read the ONNX attributes, once, at graph build time
    - resolve(): compute the output tensors from the resolved inputs
    - generate_c_code(): emit the loop nest computing the outputs

    Nodes never own tensors. resolve() hands newly created outputs back to
    the graph, which inserts them into its tensor table.
    """

    OP_TYPE = ""
    MIN_INPUTS = 1
    MAX_INPUTS = 1
    MAX_OUTPUTS = 1

    def __init__(
        self,
        name: str,
        input_names: Sequence[str],
        output_names: Sequence[str],
        context: Optional[CompilationContext] = None
    ):
        """
        Args:
            name: Unique node name (the ONNX node name, or a generated one)
            input_names: Input tensor names in operator order; '' marks an
                omitted optional input
            output_names: Output tensor names in operator order; '' marks an
                unused optional output
            context: Settings of the running compilation
        """
        self.name = name
        self.op_type = self.OP_TYPE
        self.input_names: List[str] = list(input_names)
        self.output_names: List[str] = list(output_names)
        self.context = context or CompilationContext()

        # Filled in by resolve_outputs()
        self.inputs: List[Optional[Tensor]] = []
        self.outputs: List[Tensor] = []
        self.is_resolved = False

    @property
    def c_name(self) -> str:
        return "node_" + cify_name(self.name)

    @property
    def description(self) -> str:
        return f"{self.op_type} node '{self.name}'"

    # ------------------------------------------------------------------
    # Attribute parsing
    # ------------------------------------------------------------------

    def parse_attributes(self, attributes: Iterable[AttributeProto]) -> None:
        """
        Parse the node's ONNX attributes.

        The default accepts no attributes. Operators with attributes override
        this and hand unknown names to unknown_attribute().
        """
        for a in attributes:
            self.unknown_attribute(a)

    def unknown_attribute(self, attribute: AttributeProto) -> None:
        raise UnsupportedFeatureError(
            f"Unimplemented: attribute '{attribute.name}' for {self.description}"
        )

    def check_arity(self) -> None:
        """
        Check the number of inputs and outputs against the operator definition.

        Raises:
            UnresolvableGraphError: If a required input is missing
            UnsupportedFeatureError: If more inputs or outputs are given than implemented
        """
        if len(self.input_names) > self.MAX_INPUTS:
            raise UnsupportedFeatureError(
                f"{self.description}: got {len(self.input_names)} inputs, "
                f"at most {self.MAX_INPUTS} supported"
            )
        for i in range(self.MIN_INPUTS):
            if i >= len(self.input_names) or not self.input_names[i]:
                raise UnresolvableGraphError(f"{self.description}: required input {i} is missing")
        if not self.output_names or not self.output_names[0]:
            raise UnresolvableGraphError(f"{self.description}: has no output")
        for i in range(self.MAX_OUTPUTS, len(self.output_names)):
            if self.output_names[i]:
                raise UnsupportedFeatureError(
                    f"Unimplemented: output {i} of {self.description}"
                )

    # ------------------------------------------------------------------
    # Shape/type resolution
    # ------------------------------------------------------------------

    def required_input_names(self) -> List[str]:
        """Names that must be present in the tensor table before resolving."""
        return [n for n in self.input_names if n]

    def resolve_outputs(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        """
        Resolve this node once. inputs is aligned with input_names, with None
        for omitted optional inputs.
        """
        if self.is_resolved:
            raise RuntimeError(f"{self.description} is already resolved")

        logger.debug("Resolving %s", self.description)
        self.inputs = list(inputs)
        self.outputs = self.resolve(self.inputs)
        self.is_resolved = True
        return self.outputs

    @abstractmethod
    def resolve(self, inputs: List[Optional[Tensor]]) -> List[Tensor]:
        """
        Compute output shapes and dtypes.

        Args:
            inputs: Resolved input tensors, None for omitted optional inputs

        Returns:
            Newly created output tensors (one per used output)
        """

    def input(self, index: int) -> Optional[Tensor]:
        """Resolved input tensor at index, or None if the optional input is absent."""
        if index < len(self.inputs):
            return self.inputs[index]
        return None

    def make_output(self, index: int, shape: Iterable[int], dtype: DType) -> Tensor:
        return Tensor(self.output_names[index], dtype, shape)

    def is_output_used(self, index: int) -> bool:
        return index < len(self.output_names) and self.output_names[index] != ""

    def check_type(self, tensor: Tensor, role: str, *predicates: Callable[[DType], bool]) -> None:
        """
        Require that tensor's dtype satisfies at least one of predicates.

        Raises:
            TypeConstraintError: If none is satisfied
        """
        if any(predicate(tensor.dtype) for predicate in predicates):
            return
        names = " or ".join(p.__name__.replace("is_", "").replace("_", " ") for p in predicates)
        raise TypeConstraintError(
            f"{self.description}: input {role} ('{tensor.name}') has type "
            f"{tensor.dtype}, expected {names}"
        )

    def check_same_type(self, first: Tensor, second: Tensor) -> None:
        if first.dtype is not second.dtype:
            raise TypeConstraintError(
                f"{self.description}: inputs '{first.name}' ({first.dtype}) and "
                f"'{second.name}' ({second.dtype}) must have the same type"
            )

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    @abstractmethod
    def generate_c_code(self) -> List[str]:
        """
        Generate the C statements computing this node's outputs.

        Returns:
            Lines of C, without base indentation. All loop bounds are literals.
        """

    def header_comment(self, attributes: Sequence[Tuple[str, object]] = ()) -> List[str]:
        """Comment block opening a node body: op type, node name, parameters, attributes."""
        lines = [f"/* {self.op_type}: {comment_text(self.name)}"]
        lines.extend(f" * {comment_text(p)}" for p in self.print_parameters())
        for key, value in attributes:
            if isinstance(value, (list, tuple)):
                value = " ".join(str(v) for v in value)
            lines.append(f" * {key}: {comment_text(str(value))}")
        lines.append(" */")
        return lines

    def print_parameters(self) -> List[str]:
        """
        One line per input and output tensor the node body reads or writes,
        in operator order, e.g. 'in X: tensor_x float 1x3x5x5'.
        """
        params = []
        for direction, tensors in (("in", self.inputs), ("out", self.outputs)):
            for t in tensors:
                if t is None:
                    continue
                params.append(f"{direction} {t.name}: {t.c_name} {t.dtype} {shape_str(t.shape)}")
        return params

    @staticmethod
    def open_loops(lines: List[str], loops: Sequence[Tuple[str, int]], depth: int = 0) -> int:
        """
        Append one for-loop per (variable, bound) pair, each nested in the
        previous one. Returns the new indentation depth.
        """
        for var, bound in loops:
            lines.append(INDENT * depth + f"for (uint32_t {var} = 0; {var} < {bound}; {var}++) {{")
            depth += 1
        return depth

    @staticmethod
    def close_loops(lines: List[str], count: int, depth: int) -> int:
        for _ in range(count):
            depth -= 1
            lines.append(INDENT * depth + "}")
        return depth

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name='{self.name}', "
                f"inputs={self.input_names}, outputs={self.output_names})")

    def __str__(self) -> str:
        inputs_str = ", ".join(n or "<none>" for n in self.input_names)
        outputs_str = ", ".join(n for n in self.output_names if n)
        return f"{outputs_str} = {self.op_type}({inputs_str})"


def loop_vars(prefix: str, count: int) -> List[str]:
    """Loop variable names prefix0, prefix1, ..."""
    return [f"{prefix}{i}" for i in range(count)]


def subscript(indices: Iterable[str]) -> str:
    """'[a][b][c]' for indices ['a', 'b', 'c']."""
    return "".join(f"[{i}]" for i in indices)


def shape_str(shape: Shape) -> str:
    return "x".join(str(d) for d in shape) if shape else "scalar"


def comment_text(text: str) -> str:
    """Make text safe to place inside a C block comment."""
    return text.replace("*/", "* /")
