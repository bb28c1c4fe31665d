from setuptools import setup, find_packages

setup(
    name="onnx_to_c",
    version="0.1.0",
    description="ONNX to C Compiler for Microcontrollers",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "onnx>=1.14.0",
        "numpy>=1.24.0",
        "protobuf>=3.20.2",
        "click>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "torch>=2.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "onnx-to-c=onnx_to_c.cli:main",
        ],
    },
    python_requires=">=3.8",
)
