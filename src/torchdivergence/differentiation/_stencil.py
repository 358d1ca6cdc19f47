"""Finite difference stencil data structure."""

from __future__ import annotations

from typing import Tuple

import torch
from tensordict import tensorclass
from torch import Tensor


@tensorclass
class FiniteDifferenceStencil:
    """One-dimensional finite difference stencil.

    A stencil represents a weighted sum of function values at offset grid
    points. Only non-zero coefficients need to be stored.

    Attributes
    ----------
    offsets : Tensor
        Integer offsets from the center point, shape (n_points, 1).
    coeffs : Tensor
        Coefficients for each offset, shape (n_points,).
        The derivative is sum(coeffs[k] * f[center + offsets[k]]) / dx^order.
    derivative : Tuple[int, ...]
        Derivative order, e.g. (1,) for d/dx.
    accuracy : int
        Accuracy order of the stencil (error is O(dx^accuracy)).

    Examples
    --------
    Central first derivative (3-point stencil):

    >>> stencil = FiniteDifferenceStencil(
    ...     offsets=torch.tensor([[-1], [0], [1]]),
    ...     coeffs=torch.tensor([-0.5, 0.0, 0.5]),
    ...     derivative=(1,),
    ...     accuracy=2,
    ... )
    """

    offsets: Tensor  # (n_points, 1), int64
    coeffs: Tensor  # (n_points,), float
    derivative: Tuple[int, ...]
    accuracy: int

    @property
    def ndim(self) -> int:
        """Number of spatial dimensions."""
        return self.offsets.shape[-1]

    @property
    def n_points(self) -> int:
        """Number of stencil points."""
        return self.offsets.shape[0]

    @property
    def order(self) -> int:
        """Total derivative order."""
        return sum(self.derivative)

    def to_dense(self) -> Tensor:
        """Convert the sparse stencil to a dense 1D kernel.

        Returns
        -------
        Tensor
            Kernel of shape (kernel_size,) spanning the minimal bounding
            interval of the offsets, with offset 0 at index ``-min(offsets)``.
        """
        offsets = self.offsets[:, 0]
        min_offset = int(offsets.min())
        max_offset = int(offsets.max())

        kernel = torch.zeros(
            max_offset - min_offset + 1,
            dtype=self.coeffs.dtype,
            device=self.coeffs.device,
        )
        kernel[offsets - min_offset] = self.coeffs

        return kernel


def central_difference_stencil(
    dtype: torch.dtype | None = None,
    device: torch.device | None = None,
) -> FiniteDifferenceStencil:
    """Second-order central stencil for the first derivative.

    Returns
    -------
    FiniteDifferenceStencil
        Offsets (-1, 0, 1) with coefficients (-1/2, 0, 1/2).
    """
    if dtype is None:
        dtype = torch.float64
    if device is None:
        device = torch.device("cpu")

    return FiniteDifferenceStencil(
        offsets=torch.tensor([[-1], [0], [1]], device=device),
        coeffs=torch.tensor([-0.5, 0.0, 0.5], dtype=dtype, device=device),
        derivative=(1,),
        accuracy=2,
    )
