"""Grid spacing for volumetric operators."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Tuple, Union

import torch

from torchdivergence.differentiation._exceptions import ConfigurationError


def _is_scalar(value) -> bool:
    if isinstance(value, torch.Tensor):
        return (
            value.ndim == 0
            and value.dtype != torch.bool
            and not value.dtype.is_complex
        )
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class StepSize:
    """Grid step size along each spatial axis.

    Parameters
    ----------
    x : float
        Spacing along width. Default is 1.0.
    y : float
        Spacing along height. Default is 1.0.
    z : float
        Spacing along depth. Default is 1.0.

    Raises
    ------
    ConfigurationError
        If any spacing is not a finite, strictly positive real number.
        Python and numpy real scalars and 0-d tensors are accepted.

    Examples
    --------
    >>> StepSize(0.5, 0.5, 1.0).as_tuple()
    (0.5, 0.5, 1.0)
    """

    x: float = 1.0
    y: float = 1.0
    z: float = 1.0

    def __post_init__(self):
        for name in ("x", "y", "z"):
            value = getattr(self, name)
            if not _is_scalar(value):
                raise ConfigurationError(
                    f"step size {name} must be a real number, "
                    f"got {type(value).__name__}"
                )
            value = float(value)
            if not math.isfinite(value) or value <= 0:
                raise ConfigurationError(
                    f"step size {name} must be positive, got {value}"
                )
            object.__setattr__(self, name, value)

    def as_tuple(self) -> Tuple[float, float, float]:
        """Spacing as (x, y, z)."""
        return self.x, self.y, self.z

    @classmethod
    def from_value(
        cls,
        step_size: Union["StepSize", float, Tuple[float, float, float]],
    ) -> "StepSize":
        """Normalize a scalar, 3-tuple or StepSize to a StepSize."""
        if isinstance(step_size, StepSize):
            return step_size
        if _is_scalar(step_size):
            return cls(step_size, step_size, step_size)

        step_tuple = tuple(step_size)
        if len(step_tuple) != 3:
            raise ConfigurationError(
                f"step_size has {len(step_tuple)} elements but 3 spatial "
                f"dimensions"
            )
        return cls(*step_tuple)
