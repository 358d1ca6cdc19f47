"""Central difference of one vector component along its own axis."""

from __future__ import annotations

import math
from typing import Sequence, Union

import torch
import torch.nn.functional as F
from torch import Tensor

from torchdivergence.differentiation._exceptions import (
    ConfigurationError,
    ShapeMismatchError,
)
from torchdivergence.differentiation._stencil import central_difference_stencil
from torchdivergence.pad import replication_pad, replication_pad_backward

AXES = ("x", "y", "z")

# Tensor dim differentiated for each component: x -> width, y -> height,
# z -> depth in (batch, channel, depth, height, width).
SPATIAL_DIMS = (4, 3, 2)


def _normalize_axis(axis: Union[int, str]) -> int:
    if isinstance(axis, str):
        if axis not in AXES:
            raise ValueError(f"axis must be one of {AXES}, got '{axis}'")
        return AXES.index(axis)
    if axis not in (0, 1, 2):
        raise ValueError(f"axis must be 0, 1 or 2, got {axis}")
    return axis


def _check_field(input: Tensor, min_channels: int, name: str = "input"):
    if input.dim() != 5:
        raise ShapeMismatchError(
            f"{name} must be 5D (batch, channel, depth, height, width), "
            f"got {input.dim()}D tensor of shape {tuple(input.shape)}"
        )
    if input.shape[1] < min_channels:
        raise ShapeMismatchError(
            f"{name} must have at least {min_channels} channels, "
            f"got {input.shape[1]}"
        )
    if not input.dtype.is_floating_point:
        raise TypeError(
            f"{name} must be a floating-point tensor, got {input.dtype}"
        )


def _check_grad_output(grad_output: Tensor, input_shape: Sequence[int]):
    if grad_output.dim() != 5:
        raise ShapeMismatchError(
            f"grad_output must be 5D, got {grad_output.dim()}D tensor"
        )

    expected = (input_shape[0], 1, *input_shape[2:])
    if tuple(grad_output.shape) != tuple(expected):
        raise ShapeMismatchError(
            f"grad_output has shape {tuple(grad_output.shape)}, "
            f"expected {tuple(expected)} for input of shape "
            f"{tuple(input_shape)}"
        )


def directional_kernel(
    axis: Union[int, str],
    step: float = 1.0,
    dtype: torch.dtype | None = None,
    device: torch.device | None = None,
) -> Tensor:
    """Convolution weight for the central difference along one axis.

    Parameters
    ----------
    axis : int or str
        0/"x" (width), 1/"y" (height) or 2/"z" (depth).
    step : float, optional
        Grid spacing along the axis. Default is 1.0.
    dtype : torch.dtype, optional
        Kernel dtype. Default is ``torch.get_default_dtype()``.
    device : torch.device, optional
        Kernel device.

    Returns
    -------
    Tensor
        Weight of shape (1, 1, kd, kh, kw) with extent 3 along the axis and
        1 elsewhere, holding ``(-1/(2 step), 0, 1/(2 step))``.

    Examples
    --------
    >>> directional_kernel("y", step=0.5).shape
    torch.Size([1, 1, 1, 3, 1])
    """
    axis = _normalize_axis(axis)

    if not math.isfinite(step) or step <= 0:
        raise ConfigurationError(
            f"step must be finite and positive, got {step}"
        )

    if dtype is None:
        dtype = torch.get_default_dtype()

    stencil = central_difference_stencil(dtype=dtype, device=device)
    kernel = stencil.to_dense() / step**stencil.order

    shape = [1, 1, 1, 1, 1]
    shape[SPATIAL_DIMS[axis]] = kernel.numel()

    return kernel.reshape(shape)


def _directional_derivative_forward(
    input: Tensor, kernel: Tensor, axis: int
) -> Tensor:
    dim = SPATIAL_DIMS[axis]
    kernel = kernel.to(dtype=input.dtype, device=input.device)

    component = input.narrow(1, axis, 1)

    return F.conv3d(replication_pad(component, dim), kernel)


def _directional_derivative_backward(
    grad_output: Tensor,
    kernel: Tensor,
    axis: int,
    input_shape: Sequence[int],
) -> Tensor:
    dim = SPATIAL_DIMS[axis]
    kernel = kernel.to(dtype=grad_output.dtype, device=grad_output.device)

    grad_padded = F.conv_transpose3d(grad_output, kernel)
    grad_component = replication_pad_backward(grad_padded, dim)

    # Zero gradient for every channel except the differentiated one.
    channels = input_shape[1]
    return F.pad(
        grad_component, (0, 0, 0, 0, 0, 0, axis, channels - axis - 1)
    )


class _DirectionalDerivative(torch.autograd.Function):
    @staticmethod
    def forward(ctx, input: Tensor, kernel: Tensor, axis: int) -> Tensor:
        ctx.axis = axis
        ctx.input_shape = tuple(input.shape)
        ctx.save_for_backward(kernel)
        return _directional_derivative_forward(input, kernel, axis)

    @staticmethod
    def backward(ctx, grad_output: Tensor):
        (kernel,) = ctx.saved_tensors

        grad_input = None
        if ctx.needs_input_grad[0]:
            grad_input = _directional_derivative_backward(
                grad_output, kernel, ctx.axis, ctx.input_shape
            )

        return grad_input, None, None


def directional_derivative(
    input: Tensor,
    axis: Union[int, str],
    step: float = 1.0,
) -> Tensor:
    """Central difference of one vector component along its own axis.

    Selects channel ``axis`` of ``input``, pads it by one sample on both ends
    of the matching spatial dimension by edge replication, and convolves
    with ``(-1/(2 step), 0, 1/(2 step))``.

    Parameters
    ----------
    input : Tensor
        Field of shape (batch, channel, depth, height, width) with at least
        ``axis + 1`` channels.
    axis : int or str
        0/"x" differentiates channel 0 along width, 1/"y" channel 1 along
        height, 2/"z" channel 2 along depth.
    step : float, optional
        Grid spacing along the axis. Default is 1.0.

    Returns
    -------
    Tensor
        Single-channel field of shape (batch, 1, depth, height, width).
        Interior samples hold ``(f[i+1] - f[i-1]) / (2 step)``. The first
        and last samples hold ``(f[1] - f[0]) / (2 step)`` and
        ``(f[-1] - f[-2]) / (2 step)``, half of the one-sided difference,
        because the replicated edge equals the boundary sample.

    Raises
    ------
    ShapeMismatchError
        If ``input`` is not 5D or has too few channels.
    ConfigurationError
        If ``step`` is not positive.

    Examples
    --------
    >>> x = torch.arange(4.0).reshape(1, 1, 1, 1, 4).expand(1, 3, 2, 2, 4)
    >>> directional_derivative(x, "x")[0, 0, 0, 0]
    tensor([0.5000, 1.0000, 1.0000, 0.5000])
    """
    axis = _normalize_axis(axis)
    _check_field(input, axis + 1)

    kernel = directional_kernel(
        axis, step, dtype=input.dtype, device=input.device
    )

    return _DirectionalDerivative.apply(input, kernel, axis)


def directional_derivative_backward(
    grad_output: Tensor,
    axis: Union[int, str],
    step: float,
    input_shape: Sequence[int],
) -> Tensor:
    """Adjoint of :func:`directional_derivative`.

    Parameters
    ----------
    grad_output : Tensor
        Gradient with respect to the output, shape
        (batch, 1, depth, height, width).
    axis : int or str
        Axis the forward pass differentiated along.
    step : float
        Grid spacing along the axis.
    input_shape : sequence of int
        Shape of the forward input.

    Returns
    -------
    Tensor
        Gradient with respect to the input, shape ``input_shape``. Only
        channel ``axis`` is non-zero.
    """
    axis = _normalize_axis(axis)

    if len(input_shape) != 5 or input_shape[1] < axis + 1:
        raise ShapeMismatchError(
            f"input_shape {tuple(input_shape)} is not a 5D field with at "
            f"least {axis + 1} channels"
        )
    _check_grad_output(grad_output, input_shape)

    kernel = directional_kernel(
        axis, step, dtype=grad_output.dtype, device=grad_output.device
    )

    return _directional_derivative_backward(
        grad_output, kernel, axis, input_shape
    )
