from __future__ import annotations

import warnings
from typing import Tuple, Union

import torch
from torch import Tensor
from torch.amp import custom_bwd, custom_fwd

from torchdivergence.differentiation._directional_derivative import (
    AXES,
    SPATIAL_DIMS,
    _check_field,
    _check_grad_output,
    _directional_derivative_backward,
    _directional_derivative_forward,
    directional_kernel,
)
from torchdivergence.differentiation._exceptions import ShapeMismatchError
from torchdivergence.differentiation._step_size import StepSize

StepSizeLike = Union[StepSize, float, Tuple[float, float, float]]


def _check_input(input: Tensor, stacklevel: int = 2):
    _check_field(input, 3)

    if input.shape[1] != 3:
        raise ShapeMismatchError(
            f"input must have 3 channels (x, y, z components), "
            f"got {input.shape[1]}"
        )

    for axis, dim in zip(AXES, SPATIAL_DIMS):
        if input.shape[dim] == 1:
            warnings.warn(
                f"input has extent 1 along the {axis} axis (dim {dim}); "
                f"its derivative is identically zero",
                UserWarning,
                stacklevel=stacklevel + 1,
            )


def _border_scale(field: Tensor, dim: int) -> Tensor:
    """Factor 2 at the first and last index along ``dim``, 1 elsewhere."""
    n = field.shape[dim]

    scale = torch.ones(n, dtype=field.dtype, device=field.device)
    scale[0] = 2
    scale[-1] = 2

    shape = [1] * field.dim()
    shape[dim] = n

    return scale.reshape(shape)


def _kernels(
    step_size: StepSize, dtype: torch.dtype, device: torch.device
) -> Tuple[Tensor, Tensor, Tensor]:
    return tuple(
        directional_kernel(axis, step, dtype=dtype, device=device)
        for axis, step in enumerate(step_size.as_tuple())
    )


def _volumetric_divergence_forward(
    input: Tensor, kernels: Tuple[Tensor, Tensor, Tensor]
) -> Tensor:
    output = None
    for axis, kernel in enumerate(kernels):
        partial = _directional_derivative_forward(input, kernel, axis)

        # Replicated edges halve the one-sided difference at the border.
        partial = partial * _border_scale(partial, SPATIAL_DIMS[axis])

        output = partial if output is None else output + partial

    return output


def _volumetric_divergence_backward(
    grad_output: Tensor,
    kernels: Tuple[Tensor, Tensor, Tensor],
    input_shape: Tuple[int, ...],
) -> Tensor:
    grad_input = None
    for axis, kernel in enumerate(kernels):
        scaled = grad_output * _border_scale(grad_output, SPATIAL_DIMS[axis])

        partial = _directional_derivative_backward(
            scaled, kernel, axis, input_shape
        )

        grad_input = partial if grad_input is None else grad_input + partial

    return grad_input


class _VolumetricDivergence(torch.autograd.Function):
    @staticmethod
    @custom_fwd(device_type="cpu", cast_inputs=torch.float32)
    def forward(
        ctx,
        input: Tensor,
        kernel_x: Tensor,
        kernel_y: Tensor,
        kernel_z: Tensor,
    ) -> Tensor:
        ctx.input_shape = tuple(input.shape)
        ctx.save_for_backward(kernel_x, kernel_y, kernel_z)
        return _volumetric_divergence_forward(
            input, (kernel_x, kernel_y, kernel_z)
        )

    @staticmethod
    @custom_bwd(device_type="cpu")
    def backward(ctx, grad_output: Tensor):
        kernels = ctx.saved_tensors

        grad_input = None
        if ctx.needs_input_grad[0]:
            grad_input = _volumetric_divergence_backward(
                grad_output, kernels, ctx.input_shape
            )

        return grad_input, None, None, None


def _divergence(
    input: Tensor, kernels: Tuple[Tensor, Tensor, Tensor]
) -> Tensor:
    # Frames: _divergence, Module.forward, Module._call_impl, Module.__call__.
    _check_input(input, stacklevel=5)
    return _VolumetricDivergence.apply(input, *kernels)


def volumetric_divergence(
    input: Tensor,
    step_size: StepSizeLike = 1.0,
) -> Tensor:
    """Divergence of a volumetric vector field.

    Computes ``dF_x/dx + dF_y/dy + dF_z/dz`` where x runs along width, y
    along height and z along depth. Interior samples use the central
    difference; border samples use the one-sided difference.

    Parameters
    ----------
    input : Tensor
        Vector field of shape (batch, 3, depth, height, width). Channels
        hold the x, y and z components in that order.
    step_size : StepSize, float or tuple of float, optional
        Grid spacing. A scalar applies to all axes; a tuple is (x, y, z).
        Default is 1.0.

    Returns
    -------
    Tensor
        Divergence of shape (batch, 1, depth, height, width).

    Raises
    ------
    ShapeMismatchError
        If ``input`` is not 5D or does not have exactly 3 channels.
    ConfigurationError
        If any step size is not positive.

    Examples
    --------
    >>> # Divergence of (x, y, z) is 3
    >>> n = 8
    >>> r = torch.arange(n, dtype=torch.float64)
    >>> Z, Y, X = torch.meshgrid(r, r, r, indexing="ij")
    >>> V = torch.stack([X, Y, Z]).unsqueeze(0)  # (1, 3, n, n, n)
    >>> div = volumetric_divergence(V)  # (1, 1, n, n, n), all 3
    """
    step_size = StepSize.from_value(step_size)

    _check_input(input)

    # Half precision kernels would lose digits of 1 / step.
    kernels = _kernels(
        step_size,
        torch.promote_types(input.dtype, torch.float32),
        input.device,
    )

    return _VolumetricDivergence.apply(input, *kernels)


def volumetric_divergence_backward(
    input: Tensor,
    grad_output: Tensor,
    step_size: StepSizeLike = 1.0,
) -> Tensor:
    """Gradient of :func:`volumetric_divergence` with respect to its input.

    This is the adjoint of the forward operator applied to ``grad_output``.
    The forward operator is linear, so ``input`` only supplies the shape.

    Parameters
    ----------
    input : Tensor
        Forward input of shape (batch, 3, depth, height, width).
    grad_output : Tensor
        Gradient with respect to the forward output, shape
        (batch, 1, depth, height, width).
    step_size : StepSize, float or tuple of float, optional
        Grid spacing used in the forward pass. Default is 1.0.

    Returns
    -------
    Tensor
        Gradient of shape (batch, 3, depth, height, width).

    Raises
    ------
    ShapeMismatchError
        If ``input`` or ``grad_output`` have the wrong rank, channel count,
        or if their batch and spatial extents disagree.
    """
    step_size = StepSize.from_value(step_size)

    _check_input(input)
    _check_grad_output(grad_output, input.shape)

    kernels = _kernels(step_size, grad_output.dtype, grad_output.device)

    return _volumetric_divergence_backward(
        grad_output, kernels, tuple(input.shape)
    )
