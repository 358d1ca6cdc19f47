"""Neural network layers."""

from torchdivergence.nn._volumetric_divergence import (
    DirectionalDerivative,
    VolumetricDivergence,
)

__all__ = [
    "DirectionalDerivative",
    "VolumetricDivergence",
]
