"""Differentiation module: finite difference operators on volumetric fields."""

from torchdivergence.differentiation._directional_derivative import (
    directional_derivative,
    directional_derivative_backward,
    directional_kernel,
)
from torchdivergence.differentiation._exceptions import (
    ConfigurationError,
    DifferentiationError,
    ShapeMismatchError,
)
from torchdivergence.differentiation._stencil import (
    FiniteDifferenceStencil,
    central_difference_stencil,
)
from torchdivergence.differentiation._step_size import StepSize
from torchdivergence.differentiation._volumetric_divergence import (
    volumetric_divergence,
    volumetric_divergence_backward,
)

__all__ = [
    "ConfigurationError",
    "DifferentiationError",
    "FiniteDifferenceStencil",
    "ShapeMismatchError",
    "StepSize",
    "central_difference_stencil",
    "directional_derivative",
    "directional_derivative_backward",
    "directional_kernel",
    "volumetric_divergence",
    "volumetric_divergence_backward",
]
