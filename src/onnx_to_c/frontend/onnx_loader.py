"""
Frontend: read an ONNX model from storage
"""

import logging
import os

import onnx
from google.protobuf.message import DecodeError
from onnx import ModelProto

from ..errors import ModelLoadError

logger = logging.getLogger(__name__)


def load_model(path: str) -> ModelProto:
    """
    Read and deserialize an ONNX model file.

    Args:
        path: Path of the .onnx file

    Returns:
        The parsed ModelProto

    Raises:
        ModelLoadError: If the file cannot be read or is not a valid model
    """
    if not os.path.isfile(path):
        raise ModelLoadError(f"Cannot open model file '{path}'")
    try:
        model = onnx.load(path)
    except OSError as e:
        raise ModelLoadError(f"Cannot read model file '{path}': {e}") from e
    except DecodeError as e:
        raise ModelLoadError(f"Cannot parse model file '{path}': {e}") from e

    if not model.HasField("graph"):
        raise ModelLoadError(f"Model file '{path}' contains no graph")
    logger.debug("Loaded '%s': %d nodes", path, len(model.graph.node))
    return model
