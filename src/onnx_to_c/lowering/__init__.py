"""Lowering of ONNX models to the IR"""
