"""
Example: Compiling a small CNN from ONNX to C code

Builds a Conv -> Relu -> MaxPool -> GlobalAveragePool -> Flatten -> Gemm
-> Softmax classifier with onnx.helper, saves it, and compiles it to a
single C source file.
"""

import os

import numpy as np
import onnx
from onnx import TensorProto, helper, numpy_helper

from onnx_to_c.compiler import OnnxToCCompiler


def build_model() -> onnx.ModelProto:
    """A 1x1x8x8 -> 3 class classifier with random weights."""
    rng = np.random.default_rng(42)
    weights = {
        "conv_w": rng.standard_normal((4, 1, 3, 3)).astype(np.float32),
        "conv_b": np.zeros(4, dtype=np.float32),
        "fc_w": rng.standard_normal((3, 4)).astype(np.float32),
        "fc_b": np.zeros(3, dtype=np.float32),
    }
    nodes = [
        helper.make_node("Conv", ["input", "conv_w", "conv_b"], ["conv"],
                         kernel_shape=[3, 3], auto_pad="SAME_UPPER"),
        helper.make_node("Relu", ["conv"], ["relu"]),
        helper.make_node("MaxPool", ["relu"], ["pool"], kernel_shape=[2, 2], strides=[2, 2]),
        helper.make_node("GlobalAveragePool", ["pool"], ["gap"]),
        helper.make_node("Flatten", ["gap"], ["flat"]),
        helper.make_node("Gemm", ["flat", "fc_w", "fc_b"], ["logits"], transB=1),
        helper.make_node("Softmax", ["logits"], ["probs"], axis=1),
    ]
    graph = helper.make_graph(
        nodes,
        "tiny_cnn",
        [helper.make_tensor_value_info("input", TensorProto.FLOAT, [1, 1, 8, 8])],
        [helper.make_tensor_value_info("probs", TensorProto.FLOAT, [1, 3])],
        initializer=[numpy_helper.from_array(array, name) for name, array in weights.items()],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    onnx.checker.check_model(model)
    return model


def main():
    """Main example function."""
    print("=" * 60)
    print("ONNX to C Compiler - Example")
    print("=" * 60)

    output_dir = "generated"
    os.makedirs(output_dir, exist_ok=True)
    model_path = os.path.join(output_dir, "tiny_cnn.onnx")
    source_path = os.path.join(output_dir, "tiny_cnn.c")

    print("\nBuilding model...")
    onnx.save(build_model(), model_path)
    print(f"Saved {model_path}")

    compiler = OnnxToCCompiler(verbose=True, function_name="tiny_cnn_forward")
    compiler.compile_file(model_path, source_path)

    ir_graph = compiler.build_graph(onnx.load(model_path))
    print("\nNode Types:")
    node_types = {}
    for node in ir_graph.nodes:
        node_types[node.OP_TYPE] = node_types.get(node.OP_TYPE, 0) + 1
    for op_type, count in sorted(node_types.items()):
        print(f"  {op_type}: {count}")

    print("\nNext steps:")
    print(f"  1. Review {source_path}")
    print("  2. Compile it with your target toolchain (link with -lm)")
    print("  3. Call tiny_cnn_forward(input, probs) to run inference")


if __name__ == "__main__":
    main()
