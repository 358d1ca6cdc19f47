"""Testing helpers for volumetric operators."""

from . import strategies

__all__ = [
    "strategies",
]
