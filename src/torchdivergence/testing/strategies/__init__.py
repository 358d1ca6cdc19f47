"""Hypothesis strategies for volumetric operator testing."""

from ._available_devices import available_devices
from ._field_shapes import field_shapes
from ._real_number_dtypes import real_number_dtypes
from ._step_sizes import step_sizes
from ._vector_fields import vector_fields

__all__ = [
    # Shape and tensor strategies
    "field_shapes",
    "vector_fields",
    # Configuration strategies
    "step_sizes",
    # Dtype strategies
    "real_number_dtypes",
    # Device strategies
    "available_devices",
]
