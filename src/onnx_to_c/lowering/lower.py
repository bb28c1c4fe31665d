"""
Lowering pass: Convert an ONNX ModelProto to custom IR
"""

import dataclasses
import logging
from typing import Optional, Tuple

from onnx import ModelProto, NodeProto, TensorProto, ValueInfoProto

from ..context import CompilationContext
from ..errors import TypeConstraintError, UnsupportedFeatureError
from ..ir.dtypes import DType
from ..ir.graph import IRGraph
from ..ir.tensor import Shape, Tensor, TensorRole
from ..ops.ops_map import OpMapping

logger = logging.getLogger(__name__)

ONNX_DOMAINS = ("", "ai.onnx")


class Lowering:
    """
    Converts an ONNX ModelProto to our custom IR.

    Key responsibilities:
    - Register initializers, graph inputs and declared outputs as tensors
    - Instantiate one IR node per ONNX node, in source order
    - Parse every node's attributes

    The graph it returns is not yet resolved.
    """

    def __init__(self, context: Optional[CompilationContext] = None):
        """
        Initialize the lowering pass.

        Args:
            context: Compilation settings. The IR and opset versions are taken
                from the model when the context leaves them at 0.
        """
        self.context = context or CompilationContext()

    def lower_onnx_model(self, model: ModelProto) -> IRGraph:
        """
        Convert an ONNX model to an IR graph.

        Args:
            model: The parsed ONNX model

        Returns:
            IRGraph: The unresolved IR graph
        """
        context = self._model_context(model)
        ir_graph = IRGraph(context)
        graph = model.graph
        logger.debug("Lowering graph '%s' (IR version %d, opset %d)",
                     graph.name, context.ir_version, context.opset_version)

        # Initializers first: before IR version 4 they are also listed as inputs
        for initializer in graph.initializer:
            ir_graph.add_tensor(Tensor.from_onnx(initializer, TensorRole.CONSTANT))

        for value_info in graph.input:
            if value_info.name in ir_graph.tensors:
                continue
            dtype, shape = self._value_info_type(value_info, context)
            ir_graph.add_tensor(Tensor(value_info.name, dtype, shape, role=TensorRole.INPUT))
            ir_graph.input_names.append(value_info.name)

        for value_info in graph.output:
            ir_graph.output_names.append(value_info.name)
            ir_graph.declared_outputs[value_info.name] = self._declared_output_type(value_info)

        for index, node_proto in enumerate(graph.node):
            name = self._node_name(node_proto, index, ir_graph)
            ir_graph.add_node(OpMapping.create_node(node_proto, context, name))

        logger.debug("Lowered %d nodes, %d tensors", len(ir_graph.nodes), len(ir_graph.tensors))
        return ir_graph

    def _model_context(self, model: ModelProto) -> CompilationContext:
        changes = {}
        if self.context.ir_version == 0:
            changes["ir_version"] = model.ir_version
        if self.context.opset_version == 0:
            for opset in model.opset_import:
                if opset.domain in ONNX_DOMAINS:
                    changes["opset_version"] = opset.version
        return dataclasses.replace(self.context, **changes) if changes else self.context

    @staticmethod
    def _node_name(node_proto: NodeProto, index: int, ir_graph: IRGraph) -> str:
        """The node's own name, or a generated one; made unique within the graph."""
        base = node_proto.name or f"{node_proto.op_type}_{index}"
        name = base
        suffix = 1
        while ir_graph.get_node_by_name(name) is not None:
            name = f"{base}_{suffix}"
            suffix += 1
        return name

    @staticmethod
    def _element_type(value_info: ValueInfoProto) -> DType:
        elem_type = value_info.type.tensor_type.elem_type
        if elem_type == TensorProto.UNDEFINED:
            raise TypeConstraintError(f"Tensor '{value_info.name}' has no element type")
        try:
            return DType.from_onnx(elem_type)
        except UnsupportedFeatureError as e:
            raise TypeConstraintError(f"Tensor '{value_info.name}': {e}") from e

    def _value_info_type(
        self,
        value_info: ValueInfoProto,
        context: CompilationContext
    ) -> Tuple[DType, Shape]:
        """
        Element type and static shape of a graph input.

        Symbolic dimensions are looked up in context.dim_values.
        """
        if not value_info.type.HasField("tensor_type"):
            raise UnsupportedFeatureError(
                f"Unimplemented: graph input '{value_info.name}' is not a tensor"
            )
        dtype = self._element_type(value_info)
        tensor_type = value_info.type.tensor_type
        if not tensor_type.HasField("shape"):
            raise UnsupportedFeatureError(
                f"Unimplemented: graph input '{value_info.name}' has unknown rank"
            )

        shape = []
        for dim in tensor_type.shape.dim:
            if dim.HasField("dim_value"):
                shape.append(dim.dim_value)
            elif dim.HasField("dim_param") and dim.dim_param in context.dim_values:
                shape.append(context.dim_values[dim.dim_param])
            else:
                label = dim.dim_param or "?"
                raise UnsupportedFeatureError(
                    f"Unimplemented: dynamic dimension '{label}' of graph input "
                    f"'{value_info.name}' (give it a fixed value)"
                )
        return dtype, tuple(shape)

    def _declared_output_type(
        self,
        value_info: ValueInfoProto
    ) -> Tuple[Optional[DType], Optional[Shape]]:
        """Declared element type and fully static shape of a graph output, where given."""
        if not value_info.type.HasField("tensor_type"):
            return None, None
        tensor_type = value_info.type.tensor_type
        dtype = None
        if tensor_type.elem_type != TensorProto.UNDEFINED:
            dtype = self._element_type(value_info)

        shape = None
        if tensor_type.HasField("shape") and all(d.HasField("dim_value") for d in tensor_type.shape.dim):
            shape = tuple(d.dim_value for d in tensor_type.shape.dim)
        return dtype, shape
