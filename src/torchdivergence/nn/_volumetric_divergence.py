"""Volumetric divergence layer."""

from __future__ import annotations

from typing import Union

import torch
import torch.nn as nn
from torch import Tensor

from torchdivergence.differentiation._directional_derivative import (
    AXES,
    SPATIAL_DIMS,
    _check_field,
    _check_grad_output,
    _directional_derivative_backward,
    _directional_derivative_forward,
    _normalize_axis,
    directional_kernel,
)
from torchdivergence.differentiation._step_size import StepSize
from torchdivergence.differentiation._volumetric_divergence import (
    _divergence,
    _border_scale,
    _check_input,
)


class DirectionalDerivative(nn.Module):
    """Central difference of one vector component along its own axis.

    Parameters
    ----------
    axis : int or str
        0/"x" (width), 1/"y" (height) or 2/"z" (depth).
    step : float, default=1.0
        Grid spacing along the axis.

    Notes
    -----
    The kernel is a non-persistent buffer: it follows ``.to()`` but is not
    part of ``state_dict()``.
    """

    has_learnable_parameters = False

    def __init__(self, axis: Union[int, str], step: float = 1.0):
        super().__init__()
        self.axis = _normalize_axis(axis)
        self.step = float(step)

        self.register_buffer(
            "kernel",
            directional_kernel(self.axis, self.step),
            persistent=False,
        )

    @property
    def dim(self) -> int:
        """Tensor dimension this module differentiates along."""
        return SPATIAL_DIMS[self.axis]

    def forward(self, input: Tensor) -> Tensor:
        _check_field(input, self.axis + 1)
        return _directional_derivative_forward(input, self.kernel, self.axis)

    def backward(self, input: Tensor, grad_output: Tensor) -> Tensor:
        """Input gradient, zero outside channel ``axis``."""
        _check_field(input, self.axis + 1)
        _check_grad_output(grad_output, input.shape)
        return _directional_derivative_backward(
            grad_output, self.kernel, self.axis, input.shape
        )

    def extra_repr(self) -> str:
        return f"axis={AXES[self.axis]!r}, step={self.step}"


class VolumetricDivergence(nn.Module):
    """Divergence of a (batch, 3, depth, height, width) vector field.

    Computes ``dF_x/dx + dF_y/dy + dF_z/dz`` with central differences in the
    interior and one-sided differences on the border. The output has shape
    (batch, 1, depth, height, width).

    Parameters
    ----------
    step_size_x : float, default=1.0
        Grid spacing along width.
    step_size_y : float, default=1.0
        Grid spacing along height.
    step_size_z : float, default=1.0
        Grid spacing along depth.

    Examples
    --------
    >>> import torch
    >>> from torchdivergence.nn import VolumetricDivergence
    >>> div = VolumetricDivergence(0.5, 0.5, 0.5)
    >>> x = torch.randn(2, 3, 8, 8, 8, requires_grad=True)
    >>> y = div(x)
    >>> y.shape
    torch.Size([2, 1, 8, 8, 8])
    >>> grad = div.backward(x, torch.ones_like(y))  # explicit adjoint

    Notes
    -----
    ``backward`` reuses scratch buffers owned by the module and is therefore
    not safe to call concurrently on the same instance. ``forward`` goes
    through autograd and has no such restriction.

    See Also
    --------
    torchdivergence.differentiation.volumetric_divergence : Functional form.
    """

    has_learnable_parameters = False

    def __init__(
        self,
        step_size_x: float = 1.0,
        step_size_y: float = 1.0,
        step_size_z: float = 1.0,
    ):
        super().__init__()
        self.step_size = StepSize(step_size_x, step_size_y, step_size_z)

        self.horiz = DirectionalDerivative("x", self.step_size.x)
        self.vert = DirectionalDerivative("y", self.step_size.y)
        self.depth = DirectionalDerivative("z", self.step_size.z)

        self.register_buffer("_grad_output_horiz", torch.empty(0), False)
        self.register_buffer("_grad_output_vert", torch.empty(0), False)
        self.register_buffer("_grad_output_depth", torch.empty(0), False)

    def forward(self, input: Tensor) -> Tensor:
        return _divergence(
            input, (self.horiz.kernel, self.vert.kernel, self.depth.kernel)
        )

    def backward(self, input: Tensor, grad_output: Tensor) -> Tensor:
        """Gradient of the divergence with respect to ``input``.

        Parameters
        ----------
        input : Tensor
            Input of the corresponding forward call.
        grad_output : Tensor
            Gradient with respect to the output,
            shape (batch, 1, depth, height, width).

        Returns
        -------
        Tensor
            Gradient of shape (batch, 3, depth, height, width).
        """
        _check_input(input)
        _check_grad_output(grad_output, input.shape)

        scratch = (
            (self.horiz, "_grad_output_horiz"),
            (self.vert, "_grad_output_vert"),
            (self.depth, "_grad_output_depth"),
        )

        grad_input = None
        for derivative, name in scratch:
            buffer = self._scratch(name, grad_output)
            buffer.mul_(_border_scale(buffer, derivative.dim))

            partial = _directional_derivative_backward(
                buffer, derivative.kernel, derivative.axis, input.shape
            )

            if grad_input is None:
                grad_input = partial
            else:
                grad_input = grad_input + partial

        return grad_input

    def _scratch(self, name: str, grad_output: Tensor) -> Tensor:
        buffer = getattr(self, name)
        if (
            buffer.dtype != grad_output.dtype
            or buffer.device != grad_output.device
        ):
            buffer = grad_output.new_empty(0)
            setattr(self, name, buffer)

        return buffer.resize_as_(grad_output).copy_(grad_output.detach())

    def clear_state(self) -> "VolumetricDivergence":
        """Release the scratch gradient buffers."""
        self._grad_output_horiz.resize_(0)
        self._grad_output_vert.resize_(0)
        self._grad_output_depth.resize_(0)
        return self

    def extra_repr(self) -> str:
        x, y, z = self.step_size.as_tuple()
        return f"step_size_x={x}, step_size_y={y}, step_size_z={z}"
