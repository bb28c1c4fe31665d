"""
Integration tests - end-to-end compilation
"""

import os
import subprocess
import tempfile

import numpy as np
import onnx
import pytest
import torch
import torch.nn.functional as F
from onnx import helper, numpy_helper

from onnx_to_c.codegen.c_printer import CPrinter
from onnx_to_c.compiler import OnnxToCCompiler, compile_model

from test_models import (
    colliding_names_model,
    conv_model,
    gap_model,
    get_test_models,
    make_model,
    pool_model,
    tiny_cnn_model,
)


def _check_gcc_available():
    """Check if gcc is available."""
    try:
        subprocess.run(
            ["gcc", "--version"],
            check=True,
            capture_output=True,
            timeout=5
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        return False


requires_gcc = pytest.mark.skipif(not _check_gcc_available(), reason="gcc not available")


def _pointer_cast(shape, const):
    """Cast expression turning a flat float buffer into the parameter's array type."""
    qualifier = "const " if const else ""
    if len(shape) <= 1:
        return f"({qualifier}float *)"
    rows = "".join(f"[{d}]" for d in shape[1:])
    return f"({qualifier}float (*){rows})"


class TestIntegration:
    """End-to-end compilation tests."""

    def test_compile_all_test_models(self):
        for model_name, model, _ in get_test_models():
            try:
                source = compile_model(model)
            except Exception as e:
                pytest.fail(f"Failed to compile {model_name}: {e}")
            assert "void model_forward(" in source

    def test_compile_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            model_path = os.path.join(tmpdir, "tiny_cnn.onnx")
            output_path = os.path.join(tmpdir, "tiny_cnn.c")
            onnx.save(tiny_cnn_model(), model_path)

            source = OnnxToCCompiler().compile_file(model_path, output_path)

            with open(output_path) as f:
                assert f.read() == source

    def test_verbose_logs_to_stderr(self, capsys):
        source = compile_model(gap_model([1, 1, 2, 2]), verbose=True)
        captured = capsys.readouterr()
        assert "[3/3] Generating C code" in captured.err
        assert captured.out == ""
        assert source

    @pytest.mark.parametrize("model, expected", [
        (conv_model([1, 1, 5, 5], np.ones((1, 1, 3, 3), np.float32)), (1, 1, 3, 3)),
        (conv_model([1, 1, 5, 5], np.ones((1, 1, 3, 3), np.float32), auto_pad="SAME_UPPER"),
         (1, 1, 5, 5)),
        (pool_model("MaxPool", [1, 1, 4, 4], kernel_shape=[2, 2], strides=[2, 2]), (1, 1, 2, 2)),
        (pool_model("MaxPool", [1, 1, 5, 5], kernel_shape=[2, 2], strides=[2, 2], ceil_mode=1),
         (1, 1, 3, 3)),
    ])
    def test_output_shapes(self, model, expected):
        graph = OnnxToCCompiler().build_graph(model)
        assert graph.output_tensors()[0].shape == expected


class TestTorchCComparison:
    """Test that the generated C matches torch.nn.functional."""

    def _create_test_harness(self, tmpdir, source, input_shape, output_shape):
        """Create a C test harness that reads input and writes output."""
        with open(os.path.join(tmpdir, "model.c"), 'w') as f:
            f.write(source)

        input_size = int(np.prod(input_shape))
        output_size = int(np.prod(output_shape))
        harness_code = f"""
#include <stdio.h>
#include "model.c"

static float input[{input_size}];
static float output[{output_size}];

int main(int argc, char* argv[]) {{
    if (argc != 3) {{
        fprintf(stderr, "Usage: %s <input.bin> <output.bin>\\n", argv[0]);
        return 1;
    }}

    FILE* f_in = fopen(argv[1], "rb");
    if (!f_in) {{
        fprintf(stderr, "Failed to open input file\\n");
        return 1;
    }}
    size_t read_count = fread(input, sizeof(float), {input_size}, f_in);
    fclose(f_in);
    if (read_count != {input_size}) {{
        fprintf(stderr, "Failed to read input: expected %d, got %zu\\n", {input_size}, read_count);
        return 1;
    }}

    model_forward({_pointer_cast(input_shape, True)}input, {_pointer_cast(output_shape, False)}output);

    FILE* f_out = fopen(argv[2], "wb");
    if (!f_out) {{
        fprintf(stderr, "Failed to open output file\\n");
        return 1;
    }}
    fwrite(output, sizeof(float), {output_size}, f_out);
    fclose(f_out);
    return 0;
}}
"""
        harness_path = os.path.join(tmpdir, "test_harness.c")
        with open(harness_path, 'w') as f:
            f.write(harness_code)
        return harness_path

    def _compile_and_run_c_model(self, model, input_data):
        """Compile the model to C, build it with gcc and run it on one input."""
        graph = OnnxToCCompiler().build_graph(model)
        source = CPrinter(graph).generate_source()
        input_shape = graph.input_tensors()[0].shape
        output_shape = graph.output_tensors()[0].shape
        assert tuple(input_data.shape) == input_shape

        with tempfile.TemporaryDirectory() as tmpdir:
            harness_path = self._create_test_harness(tmpdir, source, input_shape, output_shape)
            executable = os.path.join(tmpdir, "test_model")
            result = subprocess.run(
                ["gcc", "-o", executable, harness_path, f"-I{tmpdir}", "-std=c99", "-O2", "-lm"],
                capture_output=True,
                timeout=60,
                text=True
            )
            if result.returncode != 0:
                raise RuntimeError(f"Compilation failed: {result.stderr}")

            input_file = os.path.join(tmpdir, "input.bin")
            output_file = os.path.join(tmpdir, "output.bin")
            input_data.astype(np.float32).tofile(input_file)
            result = subprocess.run(
                [executable, input_file, output_file],
                capture_output=True,
                timeout=30,
                text=True
            )
            if result.returncode != 0:
                raise RuntimeError(f"Execution failed: {result.stderr}")

            return np.fromfile(output_file, dtype=np.float32).reshape(output_shape)

    def _assert_matches(self, c_output, reference):
        np.testing.assert_allclose(c_output, reference.numpy(), rtol=1e-5, atol=1e-5)

    @requires_gcc
    @pytest.mark.parametrize("attrs, torch_kwargs", [
        ({}, {}),
        ({"pads": [1, 1, 1, 1]}, {"padding": 1}),
        ({"strides": [2, 2]}, {"stride": 2}),
        ({"pads": [1, 1, 1, 1], "strides": [2, 2]}, {"padding": 1, "stride": 2}),
        ({"auto_pad": "SAME_UPPER"}, {"padding": 1}),
    ])
    def test_conv(self, attrs, torch_kwargs):
        rng = np.random.default_rng(0)
        x = rng.standard_normal((1, 3, 7, 7)).astype(np.float32)
        w = rng.standard_normal((4, 3, 3, 3)).astype(np.float32)
        b = rng.standard_normal(4).astype(np.float32)

        c_output = self._compile_and_run_c_model(conv_model(x.shape, w, b, **attrs), x)

        reference = F.conv2d(torch.from_numpy(x), torch.from_numpy(w), torch.from_numpy(b),
                             **torch_kwargs)
        self._assert_matches(c_output, reference)

    @requires_gcc
    def test_conv_without_bias(self):
        rng = np.random.default_rng(1)
        x = rng.standard_normal((1, 2, 5, 5)).astype(np.float32)
        w = rng.standard_normal((3, 2, 3, 3)).astype(np.float32)

        c_output = self._compile_and_run_c_model(conv_model(x.shape, w), x)

        self._assert_matches(c_output, F.conv2d(torch.from_numpy(x), torch.from_numpy(w)))

    @requires_gcc
    @pytest.mark.parametrize("in_size, ceil_mode", [(4, False), (5, False), (5, True)])
    def test_max_pool(self, in_size, ceil_mode):
        x = np.random.default_rng(2).standard_normal((1, 2, in_size, in_size)).astype(np.float32)
        model = pool_model("MaxPool", x.shape, kernel_shape=[2, 2], strides=[2, 2],
                           ceil_mode=int(ceil_mode))

        c_output = self._compile_and_run_c_model(model, x)

        reference = F.max_pool2d(torch.from_numpy(x), 2, 2, ceil_mode=ceil_mode)
        self._assert_matches(c_output, reference)

    @requires_gcc
    @pytest.mark.parametrize("in_size, ceil_mode", [(4, False), (5, True)])
    def test_average_pool(self, in_size, ceil_mode):
        x = np.random.default_rng(3).standard_normal((1, 2, in_size, in_size)).astype(np.float32)
        model = pool_model("AveragePool", x.shape, kernel_shape=[2, 2], strides=[2, 2],
                           ceil_mode=int(ceil_mode))

        c_output = self._compile_and_run_c_model(model, x)

        reference = F.avg_pool2d(torch.from_numpy(x), 2, 2, ceil_mode=ceil_mode)
        self._assert_matches(c_output, reference)

    @requires_gcc
    def test_global_average_pool(self):
        x = np.random.default_rng(4).standard_normal((1, 3, 4, 5)).astype(np.float32)

        c_output = self._compile_and_run_c_model(gap_model(x.shape), x)

        self._assert_matches(c_output, F.adaptive_avg_pool2d(torch.from_numpy(x), 1))

    @requires_gcc
    def test_global_average_pool_uniform_input(self):
        x = np.full((1, 2, 3, 3), 2.0, dtype=np.float32)
        c_output = self._compile_and_run_c_model(gap_model(x.shape), x)
        assert np.all(c_output == 2.0)

    @requires_gcc
    def test_colliding_tensor_names(self):
        x = np.array([1.0, 2.0, 3.0], dtype=np.float32)
        c_output = self._compile_and_run_c_model(colliding_names_model(), x)
        np.testing.assert_array_equal(c_output, [0.0, 1.0, 2.0])

    @requires_gcc
    def test_comment_terminator_in_node_name(self):
        x = np.array([-1.0, 0.5, 2.0], dtype=np.float32)
        node = helper.make_node("Relu", ["x"], ["y"], name="bad*/name")
        model = make_model([node], {"x": [3]}, {"y": None})

        c_output = self._compile_and_run_c_model(model, x)

        self._assert_matches(c_output, F.relu(torch.from_numpy(x)))

    @requires_gcc
    def test_gemm_softmax(self):
        rng = np.random.default_rng(5)
        x = rng.standard_normal((2, 6)).astype(np.float32)
        w = rng.standard_normal((4, 6)).astype(np.float32)
        b = rng.standard_normal(4).astype(np.float32)
        nodes = [helper.make_node("Gemm", ["x", "w", "b"], ["g"], transB=1),
                 helper.make_node("Softmax", ["g"], ["y"], axis=1)]
        model = make_model(nodes, {"x": [2, 6]}, {"y": None}, {"w": w, "b": b})

        c_output = self._compile_and_run_c_model(model, x)

        logits = F.linear(torch.from_numpy(x), torch.from_numpy(w), torch.from_numpy(b))
        self._assert_matches(c_output, F.softmax(logits, dim=1))

    @requires_gcc
    def test_tiny_cnn(self):
        """Compare the whole Conv/BN/Relu/MaxPool/Flatten/Gemm/Softmax network."""
        model = tiny_cnn_model(seed=7)
        params = {init.name: torch.from_numpy(numpy_helper.to_array(init).copy())
                  for init in model.graph.initializer}
        x = np.random.default_rng(6).standard_normal((1, 2, 6, 6)).astype(np.float32)

        c_output = self._compile_and_run_c_model(model, x)

        with torch.no_grad():
            h = F.conv2d(torch.from_numpy(x), params["conv_w"], params["conv_b"], padding=1)
            h = F.batch_norm(h, params["bn_mean"], params["bn_var"], params["bn_scale"],
                             params["bn_bias"], training=False, eps=1e-5)
            h = F.max_pool2d(F.relu(h), 2, 2)
            h = F.linear(torch.flatten(h, 1), params["fc_w"], params["fc_b"])
            reference = F.softmax(h, dim=1)

        max_error = np.max(np.abs(c_output - reference.numpy()))
        print(f"\nTinyCNN max error: {max_error:.2e}")
        self._assert_matches(c_output, reference)
