"""
Tests for C code generation
"""

import io
import re

import numpy as np
import pytest
from onnx import helper

from onnx_to_c.codegen.c_printer import CPrinter
from onnx_to_c.compiler import compile_model
from onnx_to_c.errors import UnsupportedFeatureError
from onnx_to_c.ir.graph import IRGraph

from test_models import (
    colliding_names_model,
    conv_model,
    gap_model,
    make_model,
    pool_model,
    tiny_cnn_model,
)

LOOP = re.compile(r"for \(uint32_t (\w+) = 0; \1 < (\d+); \1\+\+\) \{$")


def weights(*shape):
    return np.arange(np.prod(shape), dtype=np.float32).reshape(shape)


class TestCPrinter:
    """Test the overall layout of the generated source."""

    def test_preamble(self):
        source = compile_model(gap_model([1, 3, 4, 4]))
        for header in ("float.h", "math.h", "stdint.h", "string.h"):
            assert f"#include <{header}>" in source
        assert "#define MAX(X, Y)" in source

    def test_signature(self):
        source = compile_model(conv_model([1, 1, 5, 5], weights(1, 1, 3, 3)))
        assert "void model_forward(const float tensor_x[1][1][5][5], " \
               "float tensor_y[1][1][3][3])" in source

    def test_function_name(self):
        source = compile_model(gap_model([1, 1, 2, 2]), function_name="mnist_infer")
        assert "void mnist_infer(" in source
        assert "model_forward" not in source

    def test_constants_and_intermediates(self):
        source = compile_model(tiny_cnn_model())
        assert "static const float tensor_conv_w[4][2][3][3] =" in source
        assert "static float tensor_c1[1][4][6][6];" in source
        # Graph inputs and outputs are parameters, not buffers
        assert "static float tensor_y" not in source

    def test_unused_initializer_not_printed(self):
        model = make_model([helper.make_node("Relu", ["x"], ["y"])], {"x": [2]}, {"y": None},
                           {"unused": np.ones(3, np.float32)})
        assert "tensor_unused" not in compile_model(model)

    def test_loop_bounds_are_literals(self):
        source = compile_model(tiny_cnn_model())
        loops = [line.strip() for line in source.splitlines() if line.strip().startswith("for")]
        assert loops
        for line in loops:
            assert LOOP.match(line), line

    def test_deterministic(self):
        assert compile_model(tiny_cnn_model()) == compile_model(tiny_cnn_model())

    def test_node_blocks_in_resolved_order(self):
        source = compile_model(tiny_cnn_model())
        positions = [source.index(f"/* {op}: ") for op in
                     ("Conv", "BatchNormalization", "Relu", "MaxPool", "Flatten", "Gemm", "Softmax")]
        assert positions == sorted(positions)

    def test_emit_to_stream(self):
        graph = IRGraph.build(gap_model([1, 1, 2, 2]))
        graph.resolve()
        stream = io.StringIO()
        graph.emit(stream)
        assert stream.getvalue() == CPrinter(graph).generate_source()

    def test_colliding_names_get_separate_buffers(self):
        source = compile_model(colliding_names_model())
        assert "static float tensor_p_q[3];" in source
        assert "static float tensor_p_q_1[3];" in source
        assert "tensor_y[i0] = tensor_p_q[i0] - tensor_p_q_1[i0];" in source

    def test_comment_terminator_in_names(self):
        nodes = [helper.make_node("Add", ["x", "w*/b"], ["a"], name="bad*/name"),
                 helper.make_node("Relu", ["a"], ["y"], name="relu")]
        model = make_model(nodes, {"x": [2]}, {"y": None}, {"w*/b": np.ones(2, np.float32)})
        source = compile_model(model)
        assert "/* Add: bad* /name" in source
        assert "/* w* /b: float32 [2] */" in source
        # Every comment closes on the line it is meant to close on
        for line in source.splitlines():
            if "*/" in line:
                assert line.rstrip().endswith("*/"), line
                assert line.count("*/") == 1, line

    def test_unresolved_graph_rejected(self):
        graph = IRGraph.build(gap_model([1, 1, 2, 2]))
        with pytest.raises(ValueError):
            CPrinter(graph)


class TestConvCodegen:
    """Test the Conv loop nest."""

    def test_no_padding_reads_input_directly(self):
        source = compile_model(conv_model([1, 1, 5, 5], weights(1, 1, 3, 3)))
        assert "scratch" not in source
        assert "tensor_y[b][m][o0][o1] = 0;" in source
        assert "tensor_x[b][c][o0+k0][o1+k1] * tensor_W[m][c][k0][k1]" in source

    def test_padding_uses_scratch_buffer(self):
        source = compile_model(conv_model([1, 1, 5, 5], weights(1, 1, 3, 3), auto_pad="SAME_UPPER"))
        assert "static float scratch[1][7][7];" in source
        assert "memset((void*)scratch, 0, sizeof(scratch));" in source
        assert "scratch[c][i0+1][i1+1] = tensor_x[b][c][i0][i1];" in source

    def test_bias_selected_at_compile_time(self):
        source = compile_model(conv_model([1, 1, 5, 5], weights(2, 1, 3, 3),
                                          np.ones(2, np.float32)))
        assert "tensor_y[b][m][o0][o1] = tensor_B[m];" in source

    def test_strided(self):
        source = compile_model(conv_model([1, 1, 5, 5], weights(1, 1, 3, 3), strides=[2, 2]))
        assert "[o0*2+k0][o1*2+k1]" in source

    def test_grouped_conv_fails_before_emission(self):
        with pytest.raises(UnsupportedFeatureError):
            compile_model(conv_model([1, 2, 5, 5], weights(2, 1, 3, 3), group=2))


class TestPoolingCodegen:
    """Test the pooling loop nests."""

    def test_max_pool(self):
        source = compile_model(pool_model("MaxPool", [1, 1, 4, 4], kernel_shape=[2, 2],
                                          strides=[2, 2]))
        assert "float curmax = -FLT_MAX;" in source
        assert "curmax = MAX(curmax, tensor_x[b][c][o0*2+k0][o1*2+k1]);" in source
        assert "continue;" not in source

    def test_ceil_mode_guard(self):
        source = compile_model(pool_model("MaxPool", [1, 1, 5, 4], kernel_shape=[2, 2],
                                          strides=[2, 2], ceil_mode=1))
        assert "if (o0*2+k0 >= 5)" in source
        assert "continue;" in source

    def test_average_pool_divides_by_window(self):
        source = compile_model(pool_model("AveragePool", [1, 1, 4, 4], kernel_shape=[2, 2],
                                          strides=[2, 2]))
        assert "tensor_y[b][c][o0][o1] = cursum / 4;" in source
        assert "uint32_t count" not in source

    def test_average_pool_counts_partial_windows(self):
        source = compile_model(pool_model("AveragePool", [1, 1, 5, 5], kernel_shape=[2, 2],
                                          strides=[2, 2], ceil_mode=1))
        assert "count++;" in source
        assert "cursum / count;" in source

    def test_global_average_pool(self):
        source = compile_model(gap_model([1, 3, 4, 4]))
        assert "double dimsum = 0.0;" in source
        assert "tensor_y[b][c][0][0] = (float)(dimsum / 16);" in source


class TestOtherCodegen:
    """Test the supplementary operators."""

    def test_broadcast_add(self):
        node = helper.make_node("Add", ["a", "b"], ["y"])
        source = compile_model(make_model([node], {"a": [2, 3], "b": [3]}, {"y": None}))
        assert "tensor_y[i0][i1] = tensor_a[i0][i1] + tensor_b[i1];" in source

    def test_scalar_broadcast(self):
        nodes = [helper.make_node("Constant", [], ["c"], value_float=2.0),
                 helper.make_node("Mul", ["x", "c"], ["y"])]
        source = compile_model(make_model(nodes, {"x": [3]}, {"y": None}))
        assert "static const float tensor_c[1] =\n{2.0f};" in source
        assert "tensor_y[i0] = tensor_x[i0] * tensor_c[0];" in source

    def test_softmax_uses_expf(self):
        node = helper.make_node("Softmax", ["x"], ["y"], axis=1)
        source = compile_model(make_model([node], {"x": [1, 4]}, {"y": None}))
        assert "expf(tensor_x[i0][i1] - maxval)" in source

    def test_gemm_alpha_beta(self):
        node = helper.make_node("Gemm", ["a", "w", "c"], ["y"], alpha=0.5, beta=2.0)
        model = make_model([node], {"a": [1, 2]}, {"y": None},
                           {"w": weights(2, 3), "c": weights(3)})
        source = compile_model(model)
        assert "tensor_y[i][j] = 0.5f * acc + 2.0f * tensor_c[j];" in source

    def test_reshape_is_flat_copy(self):
        node = helper.make_node("Flatten", ["x"], ["y"])
        source = compile_model(make_model([node], {"x": [1, 2, 3]}, {"y": None}))
        assert "float *dst = (float*)tensor_y;" in source
        assert "dst[i] = src[i];" in source
