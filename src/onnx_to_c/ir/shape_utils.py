"""
Shape algebra shared by the operator shape inference rules.
"""

from typing import Sequence, Tuple

from ..errors import ShapeError


def multidirectional_broadcast(a: Sequence[int], b: Sequence[int]) -> Tuple[int, ...]:
    """
    Result shape of ONNX multidirectional (numpy style) broadcasting.

    The shapes are right-aligned and the shorter one is padded with leading
    1s. At every position the sizes must be equal or one of them must be 1.

    Raises:
        ShapeError: If the shapes cannot be broadcast together
    """
    a = list(a)
    b = list(b)
    if len(a) < len(b):
        a = [1] * (len(b) - len(a)) + a
    elif len(b) < len(a):
        b = [1] * (len(a) - len(b)) + b

    result = []
    for dim_a, dim_b in zip(a, b):
        if dim_a == dim_b or dim_b == 1:
            result.append(dim_a)
        elif dim_a == 1:
            result.append(dim_b)
        else:
            raise ShapeError(f"Cannot broadcast shapes {list(a)} and {list(b)}")
    return tuple(result)


def broadcast_index(in_shape: Sequence[int], out_shape: Sequence[int], loop_vars: Sequence[str]) -> str:
    """
    C subscript string reading an input that is broadcast to out_shape.

    loop_vars holds one loop variable per output dimension. Broadcast
    dimensions of size 1 are read at index 0. A scalar input is declared as
    a one element array, so it reads '[0]'.
    """
    if not in_shape:
        return "[0]"
    offset = len(out_shape) - len(in_shape)
    parts = []
    for i, dim in enumerate(in_shape):
        out_dim = out_shape[offset + i]
        if dim == 1 and out_dim != 1:
            parts.append("[0]")
        else:
            parts.append(f"[{loop_vars[offset + i]}]")
    return "".join(parts)


def conv_output_size(in_size: int, pad_begin: int, pad_end: int, kernel: int, stride: int) -> int:
    """Output size of a convolution along one spatial axis (dilation 1)."""
    padded = in_size + pad_begin + pad_end
    if padded < kernel:
        raise ShapeError(
            f"Kernel size {kernel} is larger than the padded input size {padded}"
        )
    # [ 0 1 2 3 4 5 6 7 8 9 ]
    #                |kern=3|
    # last output = 7
    return (padded - kernel) // stride + 1


def same_upper_padding(in_size: int, kernel: int, stride: int) -> Tuple[int, int, int]:
    """
    Output size and (pad_begin, pad_end) for auto_pad SAME_UPPER.

    The output size is ceil(in / stride), which equals the input size for
    stride 1. An odd total padding puts the extra cell at the end.
    """
    out_size = -(-in_size // stride)
    total = max((out_size - 1) * stride + kernel - in_size, 0)
    pad_begin = total // 2
    return out_size, pad_begin, total - pad_begin


def pool_output_size(
    in_size: int,
    pad_total: int,
    kernel: int,
    stride: int,
    dilation: int = 1,
    ceil_mode: bool = False
) -> int:
    """
    Output size of a pooling window along one spatial axis:
    round((in + pads - ((kernel - 1) * dilation + 1)) / stride + 1)
    rounding up with ceil_mode, down otherwise.
    """
    span = in_size + pad_total - ((kernel - 1) * dilation + 1)
    if span < 0:
        raise ShapeError(
            f"Pooling window of {kernel} (dilation {dilation}) does not fit "
            f"in input size {in_size} with padding {pad_total}"
        )
    if ceil_mode:
        return -(-span // stride) + 1
    return span // stride + 1
