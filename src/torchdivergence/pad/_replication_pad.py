from typing import List

import torch
import torch.nn.functional as F
from torch import Tensor


def _normalize_dim(dim: int, ndim: int) -> int:
    if ndim != 5:
        raise ValueError(
            f"input must be 5D (batch, channels, depth, height, width), "
            f"got {ndim}D"
        )
    if dim < 0:
        dim = ndim + dim
    if dim < 2 or dim >= ndim:
        raise ValueError(
            f"dim {dim} out of range for spatial dimensions (2, 3, 4)"
        )
    return dim


def _pad_amounts(dim: int, padding: int) -> List[int]:
    # (left, right, top, bottom, front, back): width, height, then depth.
    pad = [0] * 6
    pad[2 * (4 - dim)] = padding
    pad[2 * (4 - dim) + 1] = padding
    return pad


def replication_pad(input: Tensor, dim: int, padding: int = 1) -> Tensor:
    """
    Pad a volume along one spatial dimension by repeating its edge values.

    Parameters
    ----------
    input : Tensor
        Input of shape (batch, channels, depth, height, width).
    dim : int
        Spatial dimension to pad: 2 (depth), 3 (height) or 4 (width).
        Negative dimensions are supported.
    padding : int, default 1
        Number of samples added before and after the data along ``dim``.

    Returns
    -------
    Tensor
        Padded tensor, ``2 * padding`` longer along ``dim``.

    Examples
    --------
    >>> x = torch.tensor([1.0, 2.0, 3.0]).reshape(1, 1, 1, 1, 3)
    >>> replication_pad(x, dim=4).flatten()
    tensor([1., 1., 2., 3., 3.])

    See Also
    --------
    replication_pad_backward : The adjoint of this operation.
    """
    dim = _normalize_dim(dim, input.ndim)

    if padding < 0:
        raise ValueError(f"padding must be non-negative, got {padding}")
    if padding == 0:
        return input

    if input.shape[dim] == 0:
        raise ValueError(f"cannot replicate edges of empty dimension {dim}")

    return F.pad(input, _pad_amounts(dim, padding), mode="replicate")


def replication_pad_backward(
    grad_output: Tensor, dim: int, padding: int = 1
) -> Tensor:
    """
    Adjoint of :func:`replication_pad`.

    Crops the interior of ``grad_output`` and adds the gradient of every
    replicated sample onto the edge sample it was copied from.

    Parameters
    ----------
    grad_output : Tensor
        Gradient with respect to the padded tensor, 5D.
    dim : int
        Spatial dimension that was padded.
    padding : int, default 1
        Padding that was applied on each side.

    Returns
    -------
    Tensor
        Gradient with respect to the unpadded input.

    Examples
    --------
    >>> g = torch.ones(1, 1, 1, 1, 5)
    >>> replication_pad_backward(g, dim=4).flatten()
    tensor([2., 1., 2.])
    """
    dim = _normalize_dim(dim, grad_output.ndim)

    if padding < 0:
        raise ValueError(f"padding must be non-negative, got {padding}")
    if padding == 0:
        return grad_output

    n = grad_output.shape[dim] - 2 * padding
    if n <= 0:
        raise ValueError(
            f"gradient extent {grad_output.shape[dim]} along dim {dim} is too "
            f"small for padding {padding}"
        )

    input_shape = list(grad_output.shape)
    input_shape[dim] = n

    # Only the shape of ``self`` is read by the kernel.
    return torch.ops.aten.replication_pad3d_backward(
        grad_output,
        grad_output.new_empty(input_shape),
        _pad_amounts(dim, padding),
    )
