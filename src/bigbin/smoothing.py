# bigbin/src/bigbin/smoothing.py
"""Kernel smoothing of condensed 1D series.

Given input points ``(x_i, z_i, w_i)`` and output positions ``x0``, each
output value is a kernel-weighted local estimate built from the weights

    k_i(x0) = K((x_i - x0) / h) * w_i

Supported estimators (:class:`SmoothMethod`):
    - MEAN: ``sum(k z) / sum(k)``; NaN where the kernel weights sum to zero.
    - REGRESSION: weighted least-squares line ``a + b (x_i - x0)``; the
      intercept ``a`` is the estimate. Degenerate systems (fewer than two
      weighted points, or a singular normal matrix) fall back to MEAN at that
      output point.
    - ROBUST_REGRESSION: REGRESSION followed by a fixed number of local
      refits in which each point's weight is multiplied by a bisquare
      function of its residual, scaled by six times the kernel-weighted median
      absolute residual.

Kernels (:class:`Kernel`):
    - GAUSSIAN (default): ``exp(-u^2 / 2)``. Products over dimensions equal
      the kernel of the joint scaled distance, which is what makes factored
      and joint n-d MEAN smooths agree.
    - TRICUBE: ``(1 - |u|^3)^3`` on ``|u| < 1``; compact support.

Performance hygiene:
    - Work is done on ``(rows, n_in)`` weight blocks whose size is capped by
      ``SmoothOptions.max_block_elements``.
    - Input points with non-finite coordinates, values or weights are given
      zero weight up front, so a single NaN never poisons a whole block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import (
    InvalidBandwidthError,
    raise_length_mismatch,
    raise_unsupported_configuration,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

_logger = logging.getLogger(__name__)

FloatArray = NDArray[np.float64]

# Relative threshold on det(X'WX) below which a local line is ill-conditioned.
_DEGENERATE_RTOL: Final[float] = 1e-10
# Residual scale multiplier of the bisquare robustness weights.
_BISQUARE_SCALE: Final[float] = 6.0

_BANDWIDTH_ERROR = "bandwidth must be finite and > 0; got {h}"
_BANDWIDTH_LENGTH_ERROR = "expected {expected} bandwidth(s), one per dimension; got {got}"
_ITERATIONS_ERROR = "robust_iterations must be a non-negative integer; got {n}"
_BLOCK_ERROR = "max_block_elements must be a positive integer; got {n}"
_X_1D_ERROR = "{name} must be a 1D array; got ndim={ndim}"


# =============================================================================
# Closed option sets
# =============================================================================


def _parse_prefix(enum_cls: type[Enum], name: object, option: str) -> Enum:
    if isinstance(name, enum_cls):
        return name
    text = str(name).lower()
    matches = [m for m in enum_cls if m.value.startswith(text)] if text else []
    exact = [m for m in matches if m.value == text]
    if exact:
        return exact[0]
    if len(matches) != 1:
        choices = ", ".join(m.value for m in enum_cls)
        raise_unsupported_configuration(
            f"{option}={name!r}",
            reason=f"expected a unique prefix of one of: {choices}",
        )
    return matches[0]


class SmoothMethod(Enum):
    """Local estimator used at each output point."""

    MEAN = "mean"
    REGRESSION = "regression"
    ROBUST_REGRESSION = "robust_regression"

    @classmethod
    def parse(cls, name: str | SmoothMethod) -> SmoothMethod:
        """Resolve a method from its name or any unique prefix of it."""
        return _parse_prefix(cls, name, "method")  # type: ignore[return-value]


class Kernel(Enum):
    """Symmetric, non-negative kernel shapes."""

    GAUSSIAN = "gaussian"
    TRICUBE = "tricube"

    @classmethod
    def parse(cls, name: str | Kernel) -> Kernel:
        return _parse_prefix(cls, name, "kernel")  # type: ignore[return-value]

    def weights(self, u: FloatArray) -> FloatArray:
        """Evaluate the kernel at scaled distances ``u``; NaN maps to 0."""
        finite = np.isfinite(u)
        if self is Kernel.GAUSSIAN:
            safe = np.where(finite, u, 0.0)
            return np.where(finite, np.exp(-0.5 * safe * safe), 0.0)
        a = np.abs(u)
        inside = finite & (a < 1.0)
        safe = np.where(inside, a, 0.0)
        return np.where(inside, (1.0 - safe**3) ** 3, 0.0)


@dataclass(frozen=True, slots=True)
class SmoothOptions:
    """Numerical options shared by the 1D and n-d smoothers.

    Attributes:
        kernel: Kernel shape.
        robust_iterations: Number of reweighting passes for ROBUST_REGRESSION.
        max_block_elements: Upper bound on ``rows * n_in`` for one weight
            block; controls peak scratch memory.
    """

    kernel: Kernel = Kernel.GAUSSIAN
    robust_iterations: int = 3
    max_block_elements: int = 1 << 22

    def __post_init__(self) -> None:
        object.__setattr__(self, "kernel", Kernel.parse(self.kernel))
        n = self.robust_iterations
        if int(n) != n or n < 0:
            raise ValueError(_ITERATIONS_ERROR.format(n=n))
        m = self.max_block_elements
        if int(m) != m or m <= 0:
            raise ValueError(_BLOCK_ERROR.format(n=m))


# =============================================================================
# Input hygiene
# =============================================================================


def check_bandwidth(h: ArrayLike, n_dims: int) -> FloatArray:
    """Validate bandwidths, broadcasting a scalar to every dimension.

    Raises:
        InvalidBandwidthError: If any bandwidth is not finite and positive, or
            the count does not match ``n_dims``.
    """
    h_arr = np.atleast_1d(np.asarray(h, dtype=np.float64))
    if h_arr.ndim != 1:
        raise InvalidBandwidthError(_BANDWIDTH_ERROR.format(h=h))
    if h_arr.shape[0] == 1 and n_dims > 1:
        h_arr = np.repeat(h_arr, n_dims)
    if h_arr.shape[0] != n_dims:
        raise InvalidBandwidthError(
            _BANDWIDTH_LENGTH_ERROR.format(expected=n_dims, got=h_arr.shape[0])
        )
    if not np.all(np.isfinite(h_arr) & (h_arr > 0)):
        raise InvalidBandwidthError(_BANDWIDTH_ERROR.format(h=h_arr.tolist()))
    return h_arr


def clean_points(
    z: ArrayLike,
    w: ArrayLike | None,
    n: int,
    *,
    coords_finite: NDArray[np.bool_] | None = None,
) -> tuple[FloatArray, FloatArray]:
    """Return ``(z, w)`` with unusable points zeroed out.

    A point is unusable when its value, weight or coordinates are not
    finite, or its weight is negative. Such points get weight 0 and value 0.

    Raises:
        LengthMismatchError: If z or w do not have ``n`` entries.
    """
    z_arr = np.asarray(z, dtype=np.float64)
    if z_arr.shape != (n,):
        raise_length_mismatch(name="values", got=z_arr.size, expected=n, reference="grid_in")
    if w is None:
        w_arr = np.ones(n, dtype=np.float64)
    else:
        w_arr = np.asarray(w, dtype=np.float64)
        if w_arr.shape != (n,):
            raise_length_mismatch(
                name="weights", got=w_arr.size, expected=n, reference="grid_in"
            )

    usable = np.isfinite(z_arr) & np.isfinite(w_arr) & (w_arr >= 0)
    if coords_finite is not None:
        usable &= coords_finite
    return np.where(usable, z_arr, 0.0), np.where(usable, w_arr, 0.0)


def row_blocks(n_rows: int, n_cols: int, max_elements: int) -> Iterator[slice]:
    """Yield row slices so that each block holds at most ``max_elements``."""
    step = max(1, max_elements // max(1, n_cols))
    for start in range(0, n_rows, step):
        yield slice(start, min(start + step, n_rows))


# =============================================================================
# Local estimators on a weight block
# =============================================================================


def _local_mean(k: FloatArray, z: FloatArray) -> tuple[FloatArray, FloatArray]:
    wsum = k.sum(axis=1)
    num = k @ z
    mean = np.divide(num, wsum, out=np.full_like(num, np.nan), where=wsum > 0)
    return mean, wsum


def _local_linear(
    k: FloatArray,
    dx: FloatArray,
    z: FloatArray,
) -> tuple[FloatArray, FloatArray, FloatArray]:
    """Weighted local line per row; returns (intercept, slope, weight sum)."""
    kdx = k * dx
    s0 = k.sum(axis=1)
    s1 = kdx.sum(axis=1)
    s2 = (kdx * dx).sum(axis=1)
    t0 = k @ z
    t1 = kdx @ z

    det = s0 * s2 - s1 * s1
    support = np.count_nonzero(k > 0, axis=1)
    ok = (support >= 2) & (det > _DEGENERATE_RTOL * s0 * s2) & (det > 0)
    n_fallback = int(np.count_nonzero(~ok & (s0 > 0)))
    if n_fallback:
        _logger.debug("Local regression fell back to the mean at %d points", n_fallback)

    safe_det = np.where(ok, det, 1.0)
    mean = np.divide(t0, s0, out=np.full_like(t0, np.nan), where=s0 > 0)
    intercept = np.where(ok, (s2 * t0 - s1 * t1) / safe_det, mean)
    slope = np.where(ok, (s0 * t1 - s1 * t0) / safe_det, 0.0)
    return intercept, slope, s0


def _weighted_median(values: FloatArray, weights: FloatArray) -> FloatArray:
    """Row-wise weighted median; NaN for rows without weight."""
    order = np.argsort(values, axis=1)
    v = np.take_along_axis(values, order, axis=1)
    cum = np.cumsum(np.take_along_axis(weights, order, axis=1), axis=1)
    total = cum[:, -1]
    pos = np.argmax(cum >= 0.5 * total[:, None], axis=1)
    picked = v[np.arange(v.shape[0]), pos]
    return np.where(total > 0, picked, np.nan)


def _bisquare(
    resid: FloatArray,
    k: FloatArray,
    previous: FloatArray,
) -> FloatArray:
    """Bisquare robustness weights of absolute residuals, row-scaled.

    The scale of each row is the kernel-weighted median absolute residual,
    so points far outside the bandwidth do not inflate it.
    """
    scale = _weighted_median(resid, k)
    positive = np.isfinite(scale) & (scale > 0)
    safe = np.where(positive, _BISQUARE_SCALE * scale, 1.0)
    u = resid / safe[:, None]
    weights = np.where(u < 1.0, (1.0 - u * u) ** 2, 0.0)
    # zero residual scale means the local fit is already exact; stop reweighting
    return np.where(positive[:, None], weights, previous)


def _local_robust(
    k: FloatArray,
    dx: FloatArray,
    z: FloatArray,
    iterations: int,
) -> tuple[FloatArray, FloatArray]:
    intercept, slope, wsum = _local_linear(k, dx, z)
    robustness = np.ones_like(k)
    for _ in range(iterations):
        fitted = intercept[:, None] + slope[:, None] * dx
        resid = np.abs(z[None, :] - fitted)
        robustness = _bisquare(resid, k, robustness)
        intercept, slope, _ = _local_linear(k * robustness, dx, z)
    return intercept, wsum


def fit_block(
    k: FloatArray,
    dx: FloatArray,
    z: FloatArray,
    method: SmoothMethod,
    options: SmoothOptions,
) -> tuple[FloatArray, FloatArray]:
    """Apply ``method`` to one weight block.

    Args:
        k: ``(rows, n_in)`` kernel times point weights.
        dx: ``(rows, n_in)`` signed offsets ``x_i - x0`` along the smoothed axis.
        z: ``(n_in,)`` cleaned input values.
        method: Local estimator.
        options: Numerical options.

    Returns:
        Tuple of estimates and kernel-weight sums, one per row.
    """
    match method:
        case SmoothMethod.MEAN:
            return _local_mean(k, z)
        case SmoothMethod.REGRESSION:
            intercept, _, wsum = _local_linear(k, dx, z)
            return intercept, wsum
        case SmoothMethod.ROBUST_REGRESSION:
            return _local_robust(k, dx, z, options.robust_iterations)


# =============================================================================
# 1D smoother
# =============================================================================


def smooth_1d_weighted(
    x_in: FloatArray,
    z_in: FloatArray,
    w_in: FloatArray,
    x_out: FloatArray,
    h: float,
    method: SmoothMethod,
    options: SmoothOptions,
    *,
    groups_in: NDArray[np.int64] | None = None,
    groups_out: NDArray[np.int64] | None = None,
) -> tuple[FloatArray, FloatArray]:
    """Core 1D smoother on pre-cleaned inputs.

    When ``groups_in``/``groups_out`` are given, an output point only sees
    input points carrying the same group label. The n-d orchestrator uses
    this to smooth along one axis while holding the others fixed.

    Returns:
        Tuple of smoothed values and kernel-weight sums at ``x_out``.
    """
    m = x_out.shape[0]
    values = np.empty(m, dtype=np.float64)
    wsum = np.empty(m, dtype=np.float64)
    for rows in row_blocks(m, x_in.shape[0], options.max_block_elements):
        dx = x_in[None, :] - x_out[rows, None]
        k = options.kernel.weights(dx / h) * w_in[None, :]
        if groups_in is not None and groups_out is not None:
            k = np.where(groups_in[None, :] == groups_out[rows, None], k, 0.0)
        values[rows], wsum[rows] = fit_block(k, dx, z_in, method, options)
    return values, wsum


def smooth_1d(
    x_in: ArrayLike,
    z_in: ArrayLike,
    w_in: ArrayLike | None,
    x_out: ArrayLike,
    h: float,
    method: SmoothMethod | str = SmoothMethod.MEAN,
    *,
    options: SmoothOptions | None = None,
) -> FloatArray:
    """Kernel-smooth a 1D series onto new positions.

    Args:
        x_in: Input positions, shape (n,).
        z_in: Input values, shape (n,).
        w_in: Input weights, shape (n,), or None for uniform weights.
        x_out: Output positions, shape (m,).
        h: Bandwidth, > 0.
        method: Local estimator or its name.
        options: Numerical options.

    Raises:
        InvalidBandwidthError: If h is not finite and positive.
        LengthMismatchError: If z_in or w_in do not match x_in.
        UnsupportedConfigurationError: If the method name is unknown.

    Returns:
        Smoothed values, shape (m,). NaN where no input point carries weight.
    """
    opts = options or SmoothOptions()
    meth = SmoothMethod.parse(method)
    bandwidth = float(check_bandwidth(h, 1)[0])

    x_arr = np.asarray(x_in, dtype=np.float64)
    out_arr = np.asarray(x_out, dtype=np.float64)
    for name, arr in (("x_in", x_arr), ("x_out", out_arr)):
        if arr.ndim != 1:
            raise ValueError(_X_1D_ERROR.format(name=name, ndim=arr.ndim))

    finite = np.isfinite(x_arr)
    z_clean, w_clean = clean_points(z_in, w_in, x_arr.shape[0], coords_finite=finite)
    x_clean = np.where(finite, x_arr, 0.0)
    values, _ = smooth_1d_weighted(x_clean, z_clean, w_clean, out_arr, bandwidth, meth, opts)
    return values
