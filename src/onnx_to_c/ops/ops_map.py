"""
Mapping from ONNX operator types to IR node classes
"""

import logging
from typing import Dict, List, Optional, Type

from onnx import NodeProto

from ..context import CompilationContext
from ..errors import UnsupportedFeatureError
from ..ir.node import IRNode
from .activation import ReluNode, SoftmaxNode
from .batchnorm import BatchNormalizationNode
from .constant import ConstantNode
from .conv import ConvNode
from .elementwise import AddNode, DivNode, MulNode, SubNode
from .gemm import GemmNode, MatMulNode
from .global_average_pool import GlobalAveragePoolNode
from .pooling import AveragePoolNode, MaxPoolNode
from .reshape import FlattenNode, ReshapeNode

logger = logging.getLogger(__name__)


class OpMapping:
    """Maps ONNX op_type names to the node classes implementing them."""

    # Closed set: every supported operator is listed here
    OP_TO_NODE: Dict[str, Type[IRNode]] = {
        'Add': AddNode,
        'AveragePool': AveragePoolNode,
        'BatchNormalization': BatchNormalizationNode,
        'Constant': ConstantNode,
        'Conv': ConvNode,
        'Div': DivNode,
        'Flatten': FlattenNode,
        'Gemm': GemmNode,
        'GlobalAveragePool': GlobalAveragePoolNode,
        'MatMul': MatMulNode,
        'MaxPool': MaxPoolNode,
        'Mul': MulNode,
        'Relu': ReluNode,
        'Reshape': ReshapeNode,
        'Softmax': SoftmaxNode,
        'Sub': SubNode,
    }

    @staticmethod
    def get_node_class(op_type: str) -> Type[IRNode]:
        """
        Get the node class for an ONNX operator type.

        Args:
            op_type: The ONNX operator type, e.g. 'Conv'

        Returns:
            The corresponding IRNode subclass

        Raises:
            UnsupportedFeatureError: If the operator is not implemented
        """
        if op_type not in OpMapping.OP_TO_NODE:
            raise UnsupportedFeatureError(f"Unimplemented operator: {op_type}")
        return OpMapping.OP_TO_NODE[op_type]

    @staticmethod
    def supported_ops() -> List[str]:
        return sorted(OpMapping.OP_TO_NODE)

    @staticmethod
    def create_node(
        node_proto: NodeProto,
        context: Optional[CompilationContext] = None,
        name: Optional[str] = None
    ) -> IRNode:
        """
        Instantiate the node for an ONNX NodeProto and parse its attributes.

        Args:
            node_proto: The ONNX node
            context: Settings of the running compilation
            name: Node name to use instead of node_proto.name

        Returns:
            The unresolved IRNode
        """
        if node_proto.domain not in ("", "ai.onnx"):
            raise UnsupportedFeatureError(
                f"Unimplemented operator: {node_proto.domain}.{node_proto.op_type}"
            )
        node_class = OpMapping.get_node_class(node_proto.op_type)
        node = node_class(
            name or node_proto.name,
            list(node_proto.input),
            list(node_proto.output),
            context
        )
        node.check_arity()
        logger.debug("Parsing attributes of %s", node.description)
        node.parse_attributes(node_proto.attribute)
        return node
