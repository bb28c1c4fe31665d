"""
ONNX to C Compiler

Translates a trained ONNX model into one standalone, dependency-free C source
file computing the same function on fixed-size arrays.
"""

__version__ = "0.1.0"
