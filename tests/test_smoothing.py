"""Unit tests for bigbin.smoothing.

This module verifies:
- Kernel shapes and option validation, including prefix matching of names.
- Local mean limits: very wide bandwidths give the weighted mean, very narrow
  ones reproduce the inputs, and empty neighbourhoods give NaN.
- Local regression: agreement with ordinary least squares, exact lines, and
  the fall back to the mean on degenerate neighbourhoods.
- Robust regression resisting a gross outlier, on lines and on curved
  signals smoothed with the Gaussian kernel.
- Input hygiene and block-size independence.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from bigbin.errors import (
    InvalidBandwidthError,
    LengthMismatchError,
    UnsupportedConfigurationError,
)
from bigbin.smoothing import (
    Kernel,
    SmoothMethod,
    SmoothOptions,
    check_bandwidth,
    smooth_1d,
)

# -------------------------------------------------------------------
# Options and kernels
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("mean", SmoothMethod.MEAN),
        ("m", SmoothMethod.MEAN),
        ("reg", SmoothMethod.REGRESSION),
        ("robust", SmoothMethod.ROBUST_REGRESSION),
        ("Regression", SmoothMethod.REGRESSION),
        (SmoothMethod.REGRESSION, SmoothMethod.REGRESSION),
    ],
)
def test_method_parse(name: str | SmoothMethod, expected: SmoothMethod) -> None:
    """Methods resolve from full names or unique prefixes."""
    assert SmoothMethod.parse(name) is expected


@pytest.mark.parametrize("name", ["r", "median", ""])
def test_method_parse_rejects_unknown_or_ambiguous(name: str) -> None:
    """Ambiguous and unknown names are rejected."""
    with pytest.raises(UnsupportedConfigurationError, match="method"):
        SmoothMethod.parse(name)


def test_kernel_values() -> None:
    """Gaussian and tricube shapes, with NaN distances weighted zero."""
    u = np.array([0.0, 0.5, 1.0, np.nan])
    gauss = Kernel.GAUSSIAN.weights(u)
    np.testing.assert_allclose(gauss[:3], np.exp(-0.5 * u[:3] ** 2))
    assert gauss[3] == 0.0
    tri = Kernel.parse("tri").weights(u)
    np.testing.assert_allclose(tri, [1.0, 0.669921875, 0.0, 0.0])


def test_smooth_options_validation() -> None:
    """Kernel names are parsed; counts must be non-negative integers."""
    assert SmoothOptions(kernel="tricube").kernel is Kernel.TRICUBE  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="robust_iterations"):
        SmoothOptions(robust_iterations=-1)
    with pytest.raises(ValueError, match="max_block_elements"):
        SmoothOptions(max_block_elements=0)


def test_check_bandwidth() -> None:
    """Scalars broadcast; wrong counts and non-positive values are rejected."""
    np.testing.assert_array_equal(check_bandwidth(2.0, 3), [2.0, 2.0, 2.0])
    np.testing.assert_array_equal(check_bandwidth([1.0, 2.0], 2), [1.0, 2.0])
    with pytest.raises(InvalidBandwidthError, match="bandwidth"):
        check_bandwidth([1.0, 2.0], 3)
    for bad in (0.0, -1.0, np.nan, np.inf):
        with pytest.raises(InvalidBandwidthError, match="bandwidth"):
            check_bandwidth(bad, 1)


# -------------------------------------------------------------------
# Local mean
# -------------------------------------------------------------------


def test_wide_bandwidth_gives_weighted_mean(rng: np.random.Generator) -> None:
    """As h grows the local mean tends to the global weighted mean."""
    x = rng.uniform(0.0, 10.0, size=50)
    z = rng.normal(size=50)
    w = rng.uniform(0.5, 2.0, size=50)
    out = smooth_1d(x, z, w, [0.0, 5.0, 10.0], h=1e6)
    np.testing.assert_allclose(out, np.average(z, weights=w), rtol=1e-9)


def test_narrow_bandwidth_reproduces_inputs() -> None:
    """With h far below the spacing each input point sees only itself."""
    x = np.arange(5, dtype=float)
    z = np.array([3.0, -1.0, 4.0, 1.0, 5.0])
    np.testing.assert_allclose(smooth_1d(x, z, None, x, h=1e-3), z)


def test_empty_neighbourhood_is_nan() -> None:
    """A compact kernel with no input points in range gives NaN."""
    opts = SmoothOptions(kernel=Kernel.TRICUBE)
    out = smooth_1d([0.0, 1.0, 2.0], [1.0, 2.0, 3.0], None, [0.5, 1.0], h=0.4, options=opts)
    assert np.isnan(out[0])
    assert out[1] == pytest.approx(2.0)


def test_non_finite_points_are_ignored() -> None:
    """NaN values, NaN coordinates and NaN weights drop out of the fit."""
    x = np.array([0.0, 1.0, 2.0, np.nan, 4.0])
    z = np.array([1.0, np.nan, 3.0, 50.0, 5.0])
    w = np.array([1.0, 1.0, 1.0, 1.0, np.nan])
    out = smooth_1d(x, z, w, [1.0], h=1.0)
    expected = smooth_1d([0.0, 2.0], [1.0, 3.0], None, [1.0], h=1.0)
    np.testing.assert_allclose(out, expected)
    assert out[0] == pytest.approx(2.0)


def test_length_mismatch() -> None:
    """Values and weights must match the input positions."""
    with pytest.raises(LengthMismatchError, match="values"):
        smooth_1d([0.0, 1.0, 2.0], [1.0, 2.0], None, [0.0], h=1.0)
    with pytest.raises(LengthMismatchError, match="weights"):
        smooth_1d([0.0, 1.0], [1.0, 2.0], [1.0], [0.0], h=1.0)


def test_block_size_does_not_change_result(rng: np.random.Generator) -> None:
    """Splitting the output into small blocks gives identical values."""
    x = rng.uniform(0.0, 5.0, size=40)
    z = np.sin(x) + rng.normal(scale=0.1, size=40)
    x_out = np.linspace(0.0, 5.0, 33)
    for method in SmoothMethod:
        whole = smooth_1d(x, z, None, x_out, h=0.7, method=method)
        tiny = smooth_1d(
            x, z, None, x_out, h=0.7, method=method, options=SmoothOptions(max_block_elements=7)
        )
        np.testing.assert_allclose(whole, tiny, rtol=1e-10, atol=1e-12)


# -------------------------------------------------------------------
# Local regression
# -------------------------------------------------------------------


def test_wide_regression_matches_least_squares(rng: np.random.Generator) -> None:
    """With near-uniform kernel weights the local line is the OLS line."""
    x = rng.uniform(0.0, 10.0, size=60)
    z = 1.5 - 0.3 * x + rng.normal(scale=0.5, size=60)
    fit = stats.linregress(x, z)
    x_out = np.array([0.0, 2.5, 7.0])
    out = smooth_1d(x, z, None, x_out, h=1e6, method="regression")
    np.testing.assert_allclose(out, fit.intercept + fit.slope * x_out, rtol=1e-6)


def test_regression_reproduces_lines() -> None:
    """Exact linear data are reproduced at any bandwidth, even near the edges."""
    x = np.linspace(0.0, 10.0, 21)
    z = 2.0 + 3.0 * x
    x_out = np.array([0.0, 0.25, 5.0, 10.0])
    out = smooth_1d(x, z, None, x_out, h=0.8, method=SmoothMethod.REGRESSION)
    np.testing.assert_allclose(out, 2.0 + 3.0 * x_out, rtol=1e-8)


def test_regression_falls_back_to_mean() -> None:
    """One weighted point, or coincident x, cannot define a line."""
    single = smooth_1d([0.0, 1.0, 2.0], [5.0, 7.0, 9.0], [0.0, 1.0, 0.0], [0.3], h=1.0, method="reg")
    assert single[0] == pytest.approx(7.0)
    stacked = smooth_1d([1.0, 1.0, 1.0], [1.0, 2.0, 3.0], None, [4.0], h=2.0, method="reg")
    assert stacked[0] == pytest.approx(2.0)


def test_robust_regression_resists_outlier() -> None:
    """A single gross outlier barely moves the robust fit."""
    x = np.arange(21, dtype=float)
    z = 1.0 + 0.5 * x
    z[10] += 100.0
    plain = smooth_1d(x, z, None, [10.0], h=4.0, method="regression")
    robust = smooth_1d(x, z, None, [10.0], h=4.0, method="robust")
    assert plain[0] > 10.0
    assert robust[0] == pytest.approx(6.0, abs=1e-6)


def test_robust_regression_resists_outlier_on_curved_signal(
    rng: np.random.Generator,
) -> None:
    """With the Gaussian kernel, distant residuals do not mask a local outlier."""
    x = np.linspace(0.0, 20.0, 201)
    clean = np.sin(x) + rng.normal(scale=0.05, size=x.size)
    dirty = clean.copy()
    dirty[100] += 3.0
    x0 = [10.0]

    def shift(method: str) -> float:
        with_outlier = smooth_1d(x, dirty, None, x0, h=0.3, method=method)
        without = smooth_1d(x, clean, None, x0, h=0.3, method=method)
        return abs(float(with_outlier[0] - without[0]))

    assert shift("regression") > 0.2
    assert shift("robust") < 0.05


def test_robust_without_iterations_is_regression(rng: np.random.Generator) -> None:
    """Zero reweighting passes leave the plain local line."""
    x = rng.uniform(0.0, 5.0, size=30)
    z = rng.normal(size=30)
    opts = SmoothOptions(robust_iterations=0)
    x_out = np.array([1.0, 2.0, 3.0])
    np.testing.assert_allclose(
        smooth_1d(x, z, None, x_out, h=1.0, method="robust", options=opts),
        smooth_1d(x, z, None, x_out, h=1.0, method="regression"),
    )
