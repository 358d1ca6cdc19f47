"""Differentiation module exceptions."""


class DifferentiationError(Exception):
    """Base exception for differentiation operations."""

    pass


class ConfigurationError(DifferentiationError, ValueError):
    """Invalid operator configuration, such as a non-positive step size."""

    pass


class ShapeMismatchError(DifferentiationError, ValueError):
    """Input or gradient tensor has the wrong rank, channels or extents."""

    pass
