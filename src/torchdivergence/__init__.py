"""torchdivergence: differentiable volumetric divergence for PyTorch."""

from . import (
    differentiation,
    nn,
    pad,
)

__all__ = [
    "differentiation",
    "nn",
    "pad",
]

__version__ = "0.1.0"
