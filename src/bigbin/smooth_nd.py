# bigbin/src/bigbin/smooth_nd.py
"""Smoothing of n-dimensional condensed grids.

Two strategies are available:

- Factored (default): one 1D smooth per dimension, in dimension order. Pass
  ``k`` smooths along dimension ``k`` only; an output point sees the input
  points whose other coordinates are exactly equal to its own. The output of
  one pass, together with its kernel-weight sums as point weights, is the
  input of the next pass on ``grid_out``. For MEAN with the Gaussian kernel
  this is exact when ``grid_out`` is a complete product grid containing the
  input coordinates. For REGRESSION it is an approximation that is exact
  only on uncorrelated (complete) grids; for ROBUST_REGRESSION it is a rough
  approximation. Neither is corrected.
- Joint (``factored=False``): a single pass with the kernel of the scaled
  Euclidean distance ``sqrt(sum_k ((x_k - x0_k) / h_k)^2)``. Only MEAN is
  available in this mode.

Dimension indices are zero-based throughout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .accumulators import COUNT
from .errors import LengthMismatchError, raise_unsupported_configuration
from .smoothing import (
    SmoothMethod,
    SmoothOptions,
    check_bandwidth,
    clean_points,
    fit_block,
    row_blocks,
    smooth_1d_weighted,
)
from .summary import CondensedTable

if TYPE_CHECKING:
    from collections.abc import Sequence

FloatArray = NDArray[np.float64]

_GRID_NDIM_ERROR = "{name} must be a 2D (n, d) array; got ndim={ndim}"
_GRID_COLS_ERROR = "grid_out has {got} columns but grid_in has {expected}"
_GRID_EMPTY_ERROR = "grid_out must contain at least one row"
_UNKNOWN_VAR_ERROR = "Unknown summary variable: {var}; available: {available}"


def _as_grid(grid: ArrayLike, name: str) -> FloatArray:
    arr = np.asarray(grid, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise ValueError(_GRID_NDIM_ERROR.format(name=name, ndim=arr.ndim))
    return arr


def _group_labels(
    grid_in: FloatArray,
    grid_out: FloatArray,
    dims: Sequence[int],
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """Integer labels identifying rows that share the coordinates in ``dims``."""
    stacked = np.vstack([grid_in[:, dims], grid_out[:, dims]])
    _, inverse = np.unique(stacked, axis=0, return_inverse=True)
    inverse = np.asarray(inverse, dtype=np.int64).reshape(-1)
    n_in = grid_in.shape[0]
    return inverse[:n_in], inverse[n_in:]


def _smooth_along(
    grid_in: FloatArray,
    z: FloatArray,
    w: FloatArray,
    grid_out: FloatArray,
    dim: int,
    h: float,
    method: SmoothMethod,
    options: SmoothOptions,
) -> tuple[FloatArray, FloatArray]:
    others = [k for k in range(grid_in.shape[1]) if k != dim]
    groups_in = groups_out = None
    if others:
        groups_in, groups_out = _group_labels(grid_in, grid_out, others)
    return smooth_1d_weighted(
        grid_in[:, dim],
        z,
        w,
        grid_out[:, dim],
        h,
        method,
        options,
        groups_in=groups_in,
        groups_out=groups_out,
    )


def _smooth_joint(
    grid_in: FloatArray,
    z: FloatArray,
    w: FloatArray,
    grid_out: FloatArray,
    h: FloatArray,
    options: SmoothOptions,
) -> FloatArray:
    m = grid_out.shape[0]
    values = np.empty(m, dtype=np.float64)
    scaled_in = grid_in / h
    scaled_out = grid_out / h
    for rows in row_blocks(m, grid_in.shape[0] * grid_in.shape[1], options.max_block_elements):
        diff = scaled_in[None, :, :] - scaled_out[rows, None, :]
        dist = np.sqrt(np.sum(diff * diff, axis=2))
        k = options.kernel.weights(dist) * w[None, :]
        values[rows], _ = fit_block(k, dist, z, SmoothMethod.MEAN, options)
    return values


def smooth_nd(
    grid_in: ArrayLike,
    z_in: ArrayLike,
    w_in: ArrayLike | None,
    grid_out: ArrayLike,
    h: ArrayLike,
    method: SmoothMethod | str = SmoothMethod.MEAN,
    *,
    factored: bool = True,
    options: SmoothOptions | None = None,
) -> FloatArray:
    """Kernel-smooth values on an n-d grid onto another n-d grid.

    Args:
        grid_in: Input coordinates, shape (n, d). A 1D array means d = 1.
        z_in: Input values, shape (n,).
        w_in: Input weights, shape (n,), or None for uniform weights.
        grid_out: Output coordinates, shape (m, d).
        h: Bandwidths, one per dimension; a scalar applies to all.
        method: Local estimator or its name.
        factored: Compose 1D smooths per dimension instead of one joint pass.
        options: Numerical options.

    Raises:
        UnsupportedConfigurationError: If ``factored`` is False and the
            method is not MEAN, or the method name is unknown.
        InvalidBandwidthError: If a bandwidth is invalid.
        LengthMismatchError: If values, weights or grid columns disagree.
        ValueError: If grid_out is empty.

    Returns:
        Smoothed values at each row of grid_out, shape (m,).
    """
    opts = options or SmoothOptions()
    meth = SmoothMethod.parse(method)
    if not factored and meth is not SmoothMethod.MEAN:
        raise_unsupported_configuration(
            f"factored=False with method={meth.value!r}",
            reason="Only factored approximations are available for methods other than mean",
        )

    g_in = _as_grid(grid_in, "grid_in")
    g_out = _as_grid(grid_out, "grid_out")
    n, d = g_in.shape
    if g_out.shape[1] != d:
        raise LengthMismatchError(_GRID_COLS_ERROR.format(got=g_out.shape[1], expected=d))
    if g_out.shape[0] == 0:
        raise ValueError(_GRID_EMPTY_ERROR)
    bandwidths = check_bandwidth(h, d)

    finite = np.all(np.isfinite(g_in), axis=1)
    z, w = clean_points(z_in, w_in, n, coords_finite=finite)
    g_in = np.where(finite[:, None], g_in, 0.0)

    if not factored:
        return _smooth_joint(g_in, z, w, g_out, bandwidths, opts)

    values = np.full(g_out.shape[0], np.nan)
    cur_grid = g_in
    for dim in range(d):
        values, wsum = _smooth_along(
            cur_grid, z, w, g_out, dim, float(bandwidths[dim]), meth, opts
        )
        # the next pass reads this one on grid_out, weighted by its kernel mass
        z, w = clean_points(values, wsum, g_out.shape[0])
        cur_grid = g_out
    return values


# =============================================================================
# Condensed-table front end
# =============================================================================


def complete_grid(table: CondensedTable) -> FloatArray:
    """Product grid of every grouping axis's bin labels.

    The sentinel slot is excluded. The first grouping variable varies fastest.

    Returns:
        Array of shape (prod(nbins_k), d).
    """
    cols = [axis.bins.left_edges() for axis in table.groups]
    mesh = np.meshgrid(*cols, indexing="ij")
    return np.column_stack([m.ravel(order="F") for m in mesh])


def smooth(
    table: CondensedTable,
    h: ArrayLike,
    var: str | None = None,
    grid: ArrayLike | None = None,
    method: SmoothMethod | str = SmoothMethod.MEAN,
    *,
    factor: bool = True,
    options: SmoothOptions | None = None,
) -> CondensedTable:
    """Smooth one summary column of a condensed table.

    Rows with a missing (sentinel) grouping coordinate never enter the
    smooth. When the table has a ``.count`` column and ``var`` is another
    column, the counts are the point weights, so denser bins pull harder.

    Args:
        table: Condensed summary.
        h: Bandwidths, one per grouping variable (a scalar applies to all).
        var: Column to smooth; defaults to the first summary column.
        grid: Output grid with one column per grouping variable. Defaults to
            the table's own non-sentinel rows. For factored smoothing it must
            be a superset of the table's coordinates. A custom grid only
            replaces the coordinate columns: the result keeps the input
            table's axes, so ``breaks()`` and ``axis()`` still describe the
            bins that were smoothed, not the output points.
        method: "mean", "regression" or "robust_regression", or a unique
            prefix of one of them.
        factor: Compute the n-d smooth as a sequence of 1D smooths.
        options: Numerical options.

    Raises:
        KeyError: If ``var`` is not a summary column.

    Returns:
        A new CondensedTable with the output grid and the smoothed column.

    Example:
        >>> import numpy as np
        >>> from bigbin.summary import summarise
        >>> table = summarise(np.linspace(0, 1, 101), binwidth=0.1)
        >>> smooth(table, 0.2)[".count"].shape
        (11,)
    """
    meth = SmoothMethod.parse(method)
    if not factor and meth is not SmoothMethod.MEAN:
        raise_unsupported_configuration(
            f"factor=False with method={meth.value!r}",
            reason="Only factored approximations are available for methods other than mean",
        )
    name = var if var is not None else table.summary_vars[0]
    if name not in table.columns:
        raise KeyError(_UNKNOWN_VAR_ERROR.format(var=name, available=list(table.columns)))

    full = table.grid()
    rows = np.all(np.isfinite(full), axis=1)
    grid_in = full[rows]
    z = table[name][rows]
    w = table[COUNT][rows] if name != COUNT and COUNT in table else None
    grid_out = grid_in if grid is None else _as_grid(grid, "grid")

    values = smooth_nd(grid_in, z, w, grid_out, h, meth, factored=factor, options=options)
    coords = {col: grid_out[:, i] for i, col in enumerate(table.group_vars)}
    return CondensedTable(
        groups=table.groups,
        coords=coords,
        columns={name: values},
        summary=table.summary,
    )
