"""
IRGraph - Container for the intermediate representation
"""

import logging
from typing import Dict, List, Optional, TextIO, Tuple

from ..context import CompilationContext
from ..errors import ShapeError, TypeConstraintError, UnresolvableGraphError, UnsupportedFeatureError
from .dtypes import DType
from .node import IRNode, shape_str
from .tensor import Shape, Tensor, TensorRole

logger = logging.getLogger(__name__)


class IRGraph:
    """
    Represents the complete computational graph in IR form.

    Maintains:
    - Nodes in source order, and the order in which they were resolved
    - The tensor table (name -> Tensor), which owns every tensor and only grows
    - Declared graph input and output names
    """

    def __init__(self, context: Optional[CompilationContext] = None):
        """
        Initialize an empty IR graph.

        Args:
            context: Settings of the running compilation
        """
        self.context = context or CompilationContext()
        self.nodes: List[IRNode] = []
        self.tensors: Dict[str, Tensor] = {}
        self.input_names: List[str] = []
        self.output_names: List[str] = []
        # Element type and static shape declared for each graph output, if any
        self.declared_outputs: Dict[str, Tuple[Optional[DType], Optional[Shape]]] = {}

        self.resolved_order: List[IRNode] = []
        self.resolve_passes = 0
        self._node_map: Dict[str, IRNode] = {}
        # C identifier -> tensor name
        self._c_names: Dict[str, str] = {}

    @classmethod
    def build(cls, model, context: Optional[CompilationContext] = None) -> "IRGraph":
        """
        Build an unresolved graph from a parsed onnx.ModelProto.

        See Lowering.lower_onnx_model for the details.
        """
        from ..lowering.lower import Lowering
        return Lowering(context).lower_onnx_model(model)

    def add_tensor(self, tensor: Tensor) -> None:
        """
        Insert a tensor into the tensor table.

        Raises:
            ShapeError: If a tensor of that name already exists
        """
        if tensor.name in self.tensors:
            raise ShapeError(f"Tensor '{tensor.name}' is defined more than once")
        self._assign_c_name(tensor)
        self.tensors[tensor.name] = tensor

    def _assign_c_name(self, tensor: Tensor) -> None:
        """
        Give the tensor a C identifier no other tensor uses. Distinct ONNX
        names can map to the same identifier ('a.b' and 'a_b'), in which
        case later tensors get a numeric suffix.
        """
        c_name = tensor.default_c_name
        suffix = 1
        while c_name in self._c_names:
            c_name = f"{tensor.default_c_name}_{suffix}"
            suffix += 1
        if c_name != tensor.default_c_name:
            logger.debug("Tensor '%s' renamed to %s, '%s' uses %s",
                         tensor.name, c_name, self._c_names[tensor.default_c_name],
                         tensor.default_c_name)
        tensor.c_name_override = c_name if c_name != tensor.default_c_name else None
        self._c_names[c_name] = tensor.name

    def get_tensor(self, name: str) -> Optional[Tensor]:
        return self.tensors.get(name)

    def add_node(self, node: IRNode) -> None:
        """
        Add a node to the graph.

        Args:
            node: The IRNode to add
        """
        if node.name in self._node_map:
            raise ValueError(f"Node with name '{node.name}' already exists in graph")

        self.nodes.append(node)
        self._node_map[node.name] = node

    def get_node_by_name(self, name: str) -> Optional[IRNode]:
        return self._node_map.get(name)

    def resolve(self) -> None:
        """
        Resolve the output shape and type of every node.

        Repeatedly scans the unresolved nodes and resolves each one whose
        named inputs are all in the tensor table, until a pass makes no
        progress. Nodes are resolved in dependency order, which need not be
        source order.

        Raises:
            UnresolvableGraphError: If nodes are left that can never become
                eligible (a cycle or a reference to a tensor nobody produces),
                or a graph output is never produced
        """
        pending = [n for n in self.nodes if not n.is_resolved]
        while pending:
            self.resolve_passes += 1
            waiting = []
            for node in pending:
                if all(name in self.tensors for name in node.required_input_names()):
                    self._resolve_node(node)
                else:
                    waiting.append(node)

            logger.debug("Resolve pass %d: %d nodes resolved, %d waiting",
                         self.resolve_passes, len(pending) - len(waiting), len(waiting))
            if len(waiting) == len(pending):
                raise UnresolvableGraphError(self._describe_stuck(waiting))
            pending = waiting

        for name in self.output_names:
            tensor = self.tensors.get(name)
            if tensor is None:
                raise UnresolvableGraphError(f"Graph output '{name}' is never produced")
            if tensor.role is not TensorRole.OUTPUT:
                raise UnsupportedFeatureError(
                    f"Unimplemented: graph output '{name}' is a graph input or initializer"
                )

    def _resolve_node(self, node: IRNode) -> None:
        inputs = [self.tensors[name] if name else None for name in node.input_names]
        for tensor in node.resolve_outputs(inputs):
            if tensor.name in self.output_names:
                if tensor.is_const:
                    raise UnsupportedFeatureError(
                        f"Unimplemented: constant '{tensor.name}' as graph output"
                    )
                tensor.role = TensorRole.OUTPUT
                self._check_declared_output(tensor)
            elif tensor.is_const:
                tensor.role = TensorRole.CONSTANT
            else:
                tensor.role = TensorRole.INTERMEDIATE
            self.add_tensor(tensor)
        self.resolved_order.append(node)

    def _check_declared_output(self, tensor: Tensor) -> None:
        dtype, shape = self.declared_outputs.get(tensor.name, (None, None))
        if dtype is not None and dtype is not tensor.dtype:
            raise TypeConstraintError(
                f"Graph output '{tensor.name}' is declared {dtype}, inferred {tensor.dtype}"
            )
        if shape is not None and shape != tensor.shape:
            raise ShapeError(
                f"Graph output '{tensor.name}' is declared with shape {list(shape)}, "
                f"inferred {list(tensor.shape)}"
            )

    def _describe_stuck(self, nodes: List[IRNode]) -> str:
        parts = []
        for node in nodes:
            missing = [n for n in node.required_input_names() if n not in self.tensors]
            parts.append(f"{node.description} (missing: {', '.join(missing)})")
        return "Cannot resolve graph: " + "; ".join(parts)

    @property
    def is_resolved(self) -> bool:
        return len(self.resolved_order) == len(self.nodes)

    def input_tensors(self) -> List[Tensor]:
        return [self.tensors[n] for n in self.input_names]

    def output_tensors(self) -> List[Tensor]:
        return [self.tensors[n] for n in self.output_names]

    def constant_tensors(self) -> List[Tensor]:
        """Constant tensors read by at least one node, in table order."""
        used = {n for node in self.resolved_order for n in node.input_names if n}
        return [t for t in self.tensors.values()
                if t.role is TensorRole.CONSTANT and t.name in used]

    def intermediate_tensors(self) -> List[Tensor]:
        return [t for t in self.tensors.values() if t.role is TensorRole.INTERMEDIATE]

    def emit(self, stream: TextIO) -> None:
        """Write the generated C source of the resolved graph to stream."""
        from ..codegen.c_printer import CPrinter
        stream.write(CPrinter(self).generate_source())

    def print_graph(self) -> str:
        """
        Generate a human-readable representation of the graph.

        Returns:
            String representation of the graph
        """
        lines = ["IR Graph:"]
        for name in self.input_names:
            t = self.tensors[name]
            lines.append(f"  input  {name}: {t.dtype} {shape_str(t.shape)}")
        for node in self.resolved_order or self.nodes:
            lines.append(f"  {node}")
        for name in self.output_names:
            t = self.tensors.get(name)
            if t is not None:
                lines.append(f"  output {name}: {t.dtype} {shape_str(t.shape)}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (f"IRGraph(nodes={len(self.nodes)}, "
                f"tensors={len(self.tensors)}, "
                f"inputs={len(self.input_names)}, "
                f"outputs={len(self.output_names)})")
