"""Tests for volumetric_divergence."""

import hypothesis
import pytest
import torch

from torchdivergence.differentiation import (
    ConfigurationError,
    DifferentiationError,
    ShapeMismatchError,
    StepSize,
    volumetric_divergence,
    volumetric_divergence_backward,
)
from torchdivergence.testing.strategies import (
    available_devices,
    real_number_dtypes,
    step_sizes,
    vector_fields,
)


def _linear_field(n, step=(1.0, 1.0, 1.0), dtype=torch.float64):
    """Field (x, y, z) sampled on an n^3 grid with the given spacing."""
    sx, sy, sz = step
    r = torch.arange(n, dtype=dtype)
    Z, Y, X = torch.meshgrid(r * sz, r * sy, r * sx, indexing="ij")
    return torch.stack([X, Y, Z], dim=0).unsqueeze(0)


class TestVolumetricDivergenceForward:
    """Tests for the forward pass."""

    @pytest.mark.parametrize("shape", [(1, 3, 3, 3, 3), (2, 3, 4, 5, 6)])
    def test_output_shape(self, shape):
        """Output has a single channel and the input's extents."""
        field = torch.randn(shape, dtype=torch.float64)
        div = volumetric_divergence(field)
        b, _, d, h, w = shape
        assert div.shape == (b, 1, d, h, w)

    def test_divergence_of_linear_interior(self):
        """Divergence of (x, y, z) is 3 in the interior."""
        n = 7
        div = volumetric_divergence(_linear_field(n))

        torch.testing.assert_close(
            div[..., 1:-1, 1:-1, 1:-1],
            torch.full((1, 1, n - 2, n - 2, n - 2), 3.0, dtype=torch.float64),
        )

    def test_divergence_of_linear_border(self):
        """One-sided differences on faces, edges and corners are exact."""
        n = 5
        div = volumetric_divergence(_linear_field(n))

        torch.testing.assert_close(
            div, torch.full((1, 1, n, n, n), 3.0, dtype=torch.float64)
        )
        # Corner
        assert div[0, 0, 0, 0, 0].item() == pytest.approx(3.0)
        # Edge
        assert div[0, 0, 0, 0, 2].item() == pytest.approx(3.0)
        # Face
        assert div[0, 0, -1, 2, 2].item() == pytest.approx(3.0)

    def test_divergence_with_step_size(self):
        """Divergence of (x, y, z) is 3 on a non-unit anisotropic grid."""
        step = (0.5, 0.25, 2.0)
        n = 6
        div = volumetric_divergence(_linear_field(n, step), step_size=step)

        torch.testing.assert_close(
            div, torch.full((1, 1, n, n, n), 3.0, dtype=torch.float64)
        )

    def test_border_values_of_quadratic(self):
        """Interior uses central, border uses one-sided differences."""
        f = torch.tensor([0.0, 1.0, 4.0, 9.0], dtype=torch.float64)
        field = torch.zeros(1, 3, 3, 3, 4, dtype=torch.float64)
        field[:, 0] = f

        div = volumetric_divergence(field)

        expected = torch.tensor([1.0, 2.0, 4.0, 5.0], dtype=torch.float64)
        torch.testing.assert_close(div[0, 0, 1, 1], expected)

    def test_matches_torch_gradient(self):
        """Agrees with torch.gradient, which is one-sided at the edges."""
        field = torch.randn(2, 3, 4, 5, 6, dtype=torch.float64)
        step = (0.5, 0.25, 2.0)

        (dx,) = torch.gradient(field[:, 0], spacing=step[0], dim=3)
        (dy,) = torch.gradient(field[:, 1], spacing=step[1], dim=2)
        (dz,) = torch.gradient(field[:, 2], spacing=step[2], dim=1)
        expected = (dx + dy + dz).unsqueeze(1)

        torch.testing.assert_close(
            volumetric_divergence(field, step_size=step), expected
        )

    def test_each_component_uses_its_own_axis(self):
        """x varies along width, y along height, z along depth."""
        n = 4
        r = torch.arange(n, dtype=torch.float64)
        field = torch.zeros(1, 3, n, n, n, dtype=torch.float64)

        field[:, 1] = r.reshape(1, 1, n, 1)  # y component along height
        div = volumetric_divergence(field)
        torch.testing.assert_close(div, torch.ones_like(div))

        field.zero_()
        field[:, 1] = r.reshape(1, 1, 1, n)  # y component along width
        div = volumetric_divergence(field)
        torch.testing.assert_close(div, torch.zeros_like(div))

    def test_constant_field(self):
        """Divergence of a constant field is zero, borders included."""
        field = torch.full((1, 3, 3, 3, 3), 5.0)
        div = volumetric_divergence(field)
        torch.testing.assert_close(div, torch.zeros(1, 1, 3, 3, 3))

    def test_zero_field(self):
        """forward(0) = 0."""
        field = torch.zeros(2, 3, 4, 4, 4)
        div = volumetric_divergence(field)
        torch.testing.assert_close(div, torch.zeros(2, 1, 4, 4, 4))

    def test_step_size_scaling(self):
        """Scaling every step by k scales the divergence by 1/k."""
        field = torch.randn(2, 3, 4, 5, 6, dtype=torch.float64)
        k = 4.0

        div = volumetric_divergence(field, step_size=(0.5, 1.0, 2.0))
        div_k = volumetric_divergence(field, step_size=(2.0, 4.0, 8.0))

        torch.testing.assert_close(div_k, div / k)

    def test_step_size_forms_agree(self):
        """Scalar, tuple and StepSize step sizes are equivalent."""
        field = torch.randn(1, 3, 4, 4, 4, dtype=torch.float64)

        a = volumetric_divergence(field, step_size=0.5)
        b = volumetric_divergence(field, step_size=(0.5, 0.5, 0.5))
        c = volumetric_divergence(field, step_size=StepSize(0.5, 0.5, 0.5))

        torch.testing.assert_close(a, b)
        torch.testing.assert_close(a, c)

    def test_float32(self):
        """float32 inputs produce float32 outputs."""
        field = torch.randn(1, 3, 4, 4, 4, dtype=torch.float32)
        div = volumetric_divergence(field)
        assert div.dtype == torch.float32

    def test_two_sample_axis(self):
        """With two samples both positions hold the one-sided difference."""
        field = torch.zeros(1, 3, 3, 3, 2, dtype=torch.float64)
        field[:, 0, ..., 1] = 3.0

        div = volumetric_divergence(field)

        torch.testing.assert_close(div, torch.full_like(div, 3.0))

    def test_extent_one_warns(self):
        """A single-sample axis emits a warning."""
        field = torch.randn(1, 3, 1, 4, 4)
        with pytest.warns(UserWarning, match="z axis"):
            div = volumetric_divergence(field)
        assert div.shape == (1, 1, 1, 4, 4)

    def test_extent_one_warning_points_at_caller(self):
        field = torch.randn(1, 3, 4, 1, 4)
        with pytest.warns(UserWarning, match="y axis") as record:
            volumetric_divergence(field)
        assert record[0].filename == __file__


class TestVolumetricDivergenceBackward:
    """Tests for the explicit adjoint."""

    def test_backward_matches_autograd(self):
        """Explicit backward equals the autograd gradient."""
        field = torch.randn(
            2, 3, 4, 5, 6, dtype=torch.float64, requires_grad=True
        )
        step = (0.5, 2.0, 1.5)

        div = volumetric_divergence(field, step_size=step)
        grad_output = torch.randn_like(div)
        (expected,) = torch.autograd.grad(div, field, grad_output)

        grad = volumetric_divergence_backward(
            field.detach(), grad_output, step_size=step
        )

        assert grad.shape == field.shape
        torch.testing.assert_close(grad, expected)

    def test_backward_matches_numerical_gradient(self):
        """backward(ones) is the gradient of sum(forward) by differencing."""
        field = torch.randn(1, 3, 3, 3, 3, dtype=torch.float64)
        grad = volumetric_divergence_backward(
            field, torch.ones(1, 1, 3, 3, 3, dtype=torch.float64)
        )

        eps = 1e-6
        numerical = torch.zeros_like(field)
        flat = field.view(-1)
        for i in range(flat.numel()):
            original = flat[i].item()
            flat[i] = original + eps
            plus = volumetric_divergence(field).sum()
            flat[i] = original - eps
            minus = volumetric_divergence(field).sum()
            flat[i] = original
            numerical.view(-1)[i] = (plus - minus) / (2 * eps)

        torch.testing.assert_close(grad, numerical, rtol=1e-5, atol=1e-6)

    def test_backward_of_zero_gradient(self):
        """backward(input, 0) = 0 for any input."""
        field = torch.randn(2, 3, 4, 4, 4)
        grad = volumetric_divergence_backward(
            field, torch.zeros(2, 1, 4, 4, 4)
        )
        torch.testing.assert_close(grad, torch.zeros(2, 3, 4, 4, 4))

    def test_backward_is_linear(self):
        """The adjoint is linear in the output gradient."""
        field = torch.randn(1, 3, 4, 4, 4, dtype=torch.float64)
        a = torch.randn(1, 1, 4, 4, 4, dtype=torch.float64)
        b = torch.randn(1, 1, 4, 4, 4, dtype=torch.float64)

        lhs = volumetric_divergence_backward(field, 2.0 * a + b)
        rhs = 2.0 * volumetric_divergence_backward(
            field, a
        ) + volumetric_divergence_backward(field, b)

        torch.testing.assert_close(lhs, rhs)


class TestVolumetricDivergenceErrors:
    """Tests for shape and configuration errors."""

    def test_wrong_rank(self):
        field = torch.randn(3, 4, 4, 4)
        with pytest.raises(ShapeMismatchError, match="5D"):
            volumetric_divergence(field)

    @pytest.mark.parametrize("channels", [1, 2, 4])
    def test_wrong_channels(self, channels):
        field = torch.randn(1, channels, 4, 4, 4)
        with pytest.raises(ShapeMismatchError, match="channels"):
            volumetric_divergence(field)

    def test_shape_mismatch_is_value_error(self):
        field = torch.randn(1, 2, 4, 4, 4)
        with pytest.raises(ValueError):
            volumetric_divergence(field)
        with pytest.raises(DifferentiationError):
            volumetric_divergence(field)

    def test_integer_input(self):
        field = torch.ones(1, 3, 4, 4, 4, dtype=torch.int64)
        with pytest.raises(TypeError, match="floating-point"):
            volumetric_divergence(field)

    @pytest.mark.parametrize(
        "grad_shape",
        [
            (1, 2, 4, 4, 4),
            (2, 1, 4, 4, 4),
            (1, 1, 4, 4, 5),
            (1, 1, 3, 4, 4),
            (1, 4, 4, 4),
        ],
    )
    def test_backward_gradient_shape(self, grad_shape):
        field = torch.randn(1, 3, 4, 4, 4)
        with pytest.raises(ShapeMismatchError):
            volumetric_divergence_backward(field, torch.randn(grad_shape))

    def test_backward_wrong_input(self):
        field = torch.randn(1, 2, 4, 4, 4)
        with pytest.raises(ShapeMismatchError):
            volumetric_divergence_backward(field, torch.randn(1, 1, 4, 4, 4))

    @pytest.mark.parametrize(
        "step_size",
        [0.0, -1.0, (1.0, 0.0, 1.0), (1.0, 1.0, -2.0), float("nan")],
    )
    def test_non_positive_step_size(self, step_size):
        field = torch.randn(1, 3, 4, 4, 4)
        with pytest.raises(ConfigurationError):
            volumetric_divergence(field, step_size=step_size)

    def test_step_size_wrong_length(self):
        field = torch.randn(1, 3, 4, 4, 4)
        with pytest.raises(ConfigurationError, match="3 spatial"):
            volumetric_divergence(field, step_size=(1.0, 1.0))


class TestVolumetricDivergenceProperties:
    """Property-based tests."""

    @hypothesis.settings(max_examples=25, deadline=None)
    @hypothesis.given(field=vector_fields(), step_size=step_sizes())
    def test_adjoint_identity(self, field, step_size):
        """<div(u), g> = <u, div*(g)>."""
        div = volumetric_divergence(field, step_size=step_size)
        grad_output = torch.randn_like(div)
        grad = volumetric_divergence_backward(
            field, grad_output, step_size=step_size
        )

        lhs = (div * grad_output).sum()
        rhs = (field * grad).sum()

        torch.testing.assert_close(lhs, rhs, rtol=1e-8, atol=1e-6)

    @hypothesis.settings(max_examples=25, deadline=None)
    @hypothesis.given(
        field=vector_fields(),
        k=hypothesis.strategies.floats(min_value=0.1, max_value=10.0),
    )
    def test_step_size_scaling(self, field, k):
        """Scaling all steps by k scales the output by 1/k."""
        div = volumetric_divergence(field, step_size=1.0)
        div_k = volumetric_divergence(field, step_size=k)

        torch.testing.assert_close(div_k, div / k, rtol=1e-10, atol=1e-10)

    @hypothesis.settings(max_examples=25, deadline=None)
    @hypothesis.given(field=vector_fields())
    def test_output_shape(self, field):
        div = volumetric_divergence(field)
        assert div.shape == (field.shape[0], 1, *field.shape[2:])

    @hypothesis.settings(max_examples=10, deadline=None)
    @hypothesis.given(dtype=real_number_dtypes, device=available_devices())
    def test_dtype_and_device_preserved(self, dtype, device):
        field = torch.randn(1, 3, 3, 3, 3, dtype=dtype, device=device)
        div = volumetric_divergence(field)
        assert div.dtype == dtype
        assert div.device.type == device
