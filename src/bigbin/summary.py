# bigbin/src/bigbin/summary.py
"""Binned summaries of large numeric vectors.

The summary engine streams ``(x, z, w)`` samples through a bin indexer and a
per-bin accumulator and returns a :class:`CondensedTable` with one row per
bin. Empty bins are always present, so the row order doubles as the x axis.

Table layout:
    Row 0 is the sentinel row. Its grouping coordinate is NaN and it collects
    the samples whose x is NaN. Row ``k >= 1`` is bin ``k - 1``, labelled by
    its left edge. Samples outside the partition are dropped.

For several grouping variables (:func:`summarise_nd`) every dimension gets
its own sentinel slot and rows enumerate the cross product of slots with the
first dimension varying fastest.

Entry points:
    - :func:`summarise_1d` / :func:`summarise_nd`: typed engine calls.
    - :func:`summarise`: name-based dispatch with default summary, origin and
      bin-spec selection.
"""

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from .accumulators import (
    COUNT,
    SUMMARIES,
    Sum,
    SummaryClass,
    SummaryKind,
    accepts_weights,
    make_accumulator,
    summary_class,
    summary_columns,
)
from .binning import MISSING, OUT_OF_RANGE, BinSpec, BreakBins, FixedBins, validate_bin_spec
from .errors import (
    LengthMismatchError,
    raise_length_mismatch,
    raise_unsupported_configuration,
    raise_unsupported_weighting,
)

_logger = logging.getLogger(__name__)

FloatArray = NDArray[np.float64]

_DEFAULT_CHUNK_SIZE: Final[int] = 1_000_000

_X_1D_ERROR = "{name} must be a 1D array; got ndim={ndim}"
_NO_GROUPS_ERROR = "at least one grouping variable is required"
_SPECS_KEYS_ERROR = "specs must provide exactly one BinSpec per column; missing {missing}"
_UNKNOWN_COLUMN_ERROR = "Unknown column: {name}"
_UNKNOWN_GROUP_ERROR = "Unknown grouping variable: {name}"
_CHUNK_SIZE_ERROR = "chunk_size must be a positive integer; got {chunk_size}"
_MEDIAN_WEIGHTS_IGNORED = "Uniform weights are ignored by the median summary."
_Z_REQUIRED_REASON = "z is required for every summary except count"


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True, slots=True)
class SummaryOptions:
    """Options for the summary engine.

    Attributes:
        chunk_size: Number of samples folded into the accumulators per batch.
            Bounds the scratch memory of a call; results do not depend on it
            apart from floating-point rounding of the moments.
    """

    chunk_size: int = _DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if int(self.chunk_size) != self.chunk_size or self.chunk_size <= 0:
            raise ValueError(_CHUNK_SIZE_ERROR.format(chunk_size=self.chunk_size))


# =============================================================================
# Condensed table
# =============================================================================


@dataclass(frozen=True, slots=True)
class GroupAxis:
    """One grouping variable of a condensed table.

    Attributes:
        name: Column name of the grouping coordinate.
        bins: Resolved bin specification used to build it.
    """

    name: str
    bins: BinSpec

    @property
    def n_slots(self) -> int:
        """Bins plus the sentinel slot."""
        return self.bins.n_bins + 1

    def labels(self) -> FloatArray:
        """Coordinate of every slot: NaN for the sentinel, then left edges."""
        return np.concatenate(([np.nan], self.bins.left_edges()))


def _frozen(arr: ArrayLike) -> FloatArray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.flags.writeable = False
    return out


@dataclass(frozen=True, eq=False)
class CondensedTable:
    """Ordered table of per-bin summaries.

    Attributes:
        groups: Grouping axes, in column order.
        coords: Grouping coordinates keyed by axis name.
        columns: Summary columns keyed by name (``.count``, ``.mean``, ...).
        summary: Summary class tag; decides how smoothing picks weights.
    """

    groups: tuple[GroupAxis, ...]
    coords: Mapping[str, FloatArray]
    columns: Mapping[str, FloatArray]
    summary: SummaryClass
    _n_rows: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        coords = {name: _frozen(v) for name, v in self.coords.items()}
        columns = {name: _frozen(v) for name, v in self.columns.items()}
        lengths = {len(v) for v in (*coords.values(), *columns.values())}
        if len(lengths) > 1:
            msg = f"All table columns must share one length; got {sorted(lengths)}"
            raise LengthMismatchError(msg)
        object.__setattr__(self, "coords", coords)
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "_n_rows", lengths.pop() if lengths else 0)

    @property
    def group_vars(self) -> tuple[str, ...]:
        return tuple(axis.name for axis in self.groups)

    @property
    def summary_vars(self) -> tuple[str, ...]:
        return tuple(self.columns)

    def __len__(self) -> int:
        return self._n_rows

    def __contains__(self, name: object) -> bool:
        return name in self.coords or name in self.columns

    def __getitem__(self, name: str) -> FloatArray:
        if name in self.coords:
            return self.coords[name]
        if name in self.columns:
            return self.columns[name]
        raise KeyError(_UNKNOWN_COLUMN_ERROR.format(name=name))

    def axis(self, name: str) -> GroupAxis:
        for axis in self.groups:
            if axis.name == name:
                return axis
        raise KeyError(_UNKNOWN_GROUP_ERROR.format(name=name))

    def grid(self) -> FloatArray:
        """Grouping coordinates as an ``(n_rows, n_groups)`` matrix."""
        return np.column_stack([self.coords[name] for name in self.group_vars])

    def breaks(self, name: str | None = None) -> FloatArray:
        """Reconstruct the bin boundaries of one grouping variable.

        Args:
            name: Grouping variable; defaults to the first one.

        Returns:
            The ``nbins + 1`` boundaries of that axis.
        """
        axis = self.groups[0] if name is None else self.axis(name)
        return axis.bins.boundaries()

    def to_frame(self) -> pd.DataFrame:
        """Return the table as a pandas DataFrame, grouping columns first."""
        data: dict[str, Any] = {name: self.coords[name] for name in self.group_vars}
        data.update(self.columns)
        frame = pd.DataFrame(data)
        frame.attrs["summary"] = self.summary
        return frame


# =============================================================================
# Engine
# =============================================================================


def _as_float_vector(values: ArrayLike, name: str) -> FloatArray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(_X_1D_ERROR.format(name=name, ndim=arr.ndim))
    return arr


def _check_paired(
    n: int,
    z: ArrayLike | None,
    weights: ArrayLike | None,
    kind: SummaryKind,
) -> tuple[FloatArray | None, FloatArray | None]:
    if z is None and kind != Sum(0):
        requested = next(k for k, v in SUMMARIES.items() if v == kind)
        raise_unsupported_configuration(
            f"summary={requested!r} without z",
            reason=_Z_REQUIRED_REASON,
        )
    z_arr = None if z is None else _as_float_vector(z, "z")
    w_arr = None if weights is None else _as_float_vector(weights, "weights")

    if z_arr is not None and z_arr.shape[0] != n:
        raise_length_mismatch(name="z", got=z_arr.shape[0], expected=n)
    if w_arr is not None and w_arr.shape[0] != n:
        raise_length_mismatch(name="weights", got=w_arr.shape[0], expected=n)

    if w_arr is not None and not accepts_weights(kind):
        if w_arr.size and not np.all(w_arr == w_arr[0]):
            raise_unsupported_weighting(
                "median",
                supported=[k for k, v in SUMMARIES.items() if accepts_weights(v)],
            )
        warnings.warn(_MEDIAN_WEIGHTS_IGNORED, RuntimeWarning, stacklevel=3)
        w_arr = None
    return z_arr, w_arr


def _slot_ids(bin_index: NDArray[np.int64]) -> NDArray[np.int64]:
    # slot 0 is the sentinel; OUT_OF_RANGE also lands there and is masked out
    slots = bin_index + 1
    slots[bin_index == MISSING] = 0
    return slots


def _accumulate(
    slot_ids: NDArray[np.int64],
    keep: NDArray[np.bool_],
    z: FloatArray | None,
    w: FloatArray | None,
    kind: SummaryKind,
    n_slots: int,
    chunk_size: int,
) -> dict[str, FloatArray]:
    acc = make_accumulator(kind, n_slots)
    n = slot_ids.shape[0]
    for start in range(0, n, chunk_size):
        stop = min(start + chunk_size, n)
        mask = keep[start:stop]
        acc.update(
            slot_ids[start:stop][mask],
            None if z is None else z[start:stop][mask],
            None if w is None else w[start:stop][mask],
        )
    return acc.finalize()


def summarise_1d(
    x: ArrayLike,
    z: ArrayLike | None = None,
    weights: ArrayLike | None = None,
    *,
    spec: BinSpec,
    kind: SummaryKind,
    name: str = "x",
    options: SummaryOptions | None = None,
) -> CondensedTable:
    """Summarise ``z`` (or just count ``x``) within the bins of ``spec``.

    Args:
        x: Grouping values.
        z: Values to summarise; may be None only for the count summary.
        weights: Per-sample weights; None means uniform.
        spec: Bin specification. A FixedBins without ``nbins`` is resolved
            from the largest finite x.
        kind: Summary to compute.
        name: Column name for the grouping coordinate.
        options: Engine options.

    Raises:
        InvalidBinSpecError: If ``spec`` is malformed.
        LengthMismatchError: If z or weights do not match x.
        UnsupportedWeightingError: If non-uniform weights are given to median.
        UnsupportedConfigurationError: If z is None for a summary other than
            the count.

    Returns:
        CondensedTable with ``nbins + 1`` rows.
    """
    return summarise_nd({name: x}, {name: spec}, z, weights, kind=kind, options=options)


def summarise_nd(
    columns: Mapping[str, ArrayLike],
    specs: Mapping[str, BinSpec],
    z: ArrayLike | None = None,
    weights: ArrayLike | None = None,
    *,
    kind: SummaryKind,
    options: SummaryOptions | None = None,
) -> CondensedTable:
    """Summarise over the cross product of several binned grouping variables.

    Args:
        columns: Grouping vectors keyed by name; all the same length.
        specs: One BinSpec per grouping vector.
        z: Values to summarise; may be None only for the count summary.
        weights: Per-sample weights; None means uniform.
        kind: Summary to compute.
        options: Engine options.

    Raises:
        InvalidBinSpecError: If a spec is malformed.
        LengthMismatchError: If any vector has the wrong length.
        UnsupportedWeightingError: If non-uniform weights are given to median.
        UnsupportedConfigurationError: If z is None for a summary other than
            the count.
        ValueError: If no grouping variable is given or specs do not match.

    Returns:
        CondensedTable with ``prod(nbins_k + 1)`` rows.
    """
    opts = options or SummaryOptions()
    if not columns:
        raise ValueError(_NO_GROUPS_ERROR)
    missing = sorted(set(columns) ^ set(specs))
    if missing:
        raise ValueError(_SPECS_KEYS_ERROR.format(missing=missing))

    names = list(columns)
    xs = [_as_float_vector(columns[name], name) for name in names]
    n = xs[0].shape[0]
    for name, x in zip(names[1:], xs[1:], strict=True):
        if x.shape[0] != n:
            raise_length_mismatch(name=name, got=x.shape[0], expected=n, reference=names[0])
    z_arr, w_arr = _check_paired(n, z, weights, kind)

    axes = tuple(
        GroupAxis(name, validate_bin_spec(specs[name]).resolve(x))
        for name, x in zip(names, xs, strict=True)
    )
    shape = tuple(axis.n_slots for axis in axes)
    n_slots = math.prod(shape)

    keep = np.ones(n, dtype=bool)
    per_dim: list[NDArray[np.int64]] = []
    for axis, x in zip(axes, xs, strict=True):
        idx = axis.bins.index_array(x)
        keep &= idx != OUT_OF_RANGE
        per_dim.append(_slot_ids(idx))
    # ravel in Fortran order so the first grouping variable varies fastest
    flat = np.ravel_multi_index(tuple(per_dim), shape, order="F")

    _logger.debug(
        "Summarising %d samples into %d slots; %d out of range",
        n,
        n_slots,
        int(n - keep.sum()),
    )
    values = _accumulate(flat, keep, z_arr, w_arr, kind, n_slots, opts.chunk_size)

    mesh = np.meshgrid(*(axis.labels() for axis in axes), indexing="ij")
    coords = {axis.name: m.ravel(order="F") for axis, m in zip(axes, mesh, strict=True)}
    return CondensedTable(
        groups=axes,
        coords=coords,
        columns={col: values[col] for col in summary_columns(kind)},
        summary=summary_class(kind),
    )


# =============================================================================
# Name-based dispatch
# =============================================================================


def find_origin(x: ArrayLike, binwidth: float) -> float:  # noqa: ARG001
    """Default origin: the smallest finite value of ``x`` (0.0 if there is none)."""
    x_arr = np.asarray(x, dtype=np.float64)
    finite = x_arr[np.isfinite(x_arr)]
    return float(finite.min()) if finite.size else 0.0


def resolve_summary(summary: str | None, *, has_z: bool) -> SummaryKind:
    """Map a summary name to its kind, defaulting to count or mean.

    Raises:
        UnsupportedConfigurationError: If the name is unknown.
    """
    if summary is None:
        summary = "mean" if has_z else "count"
        _logger.info("Summarising with %s", summary)
    if summary not in SUMMARIES:
        raise_unsupported_configuration(
            f"summary={summary!r}",
            reason=f"summary must be one of {sorted(SUMMARIES)}",
        )
    return SUMMARIES[summary]


def resolve_bin_spec(
    x: ArrayLike,
    *,
    binwidth: float | None = None,
    origin: float | None = None,
    breaks: Sequence[float] | None = None,
) -> BinSpec:
    """Build a BinSpec from exactly one of ``binwidth`` and ``breaks``.

    Raises:
        UnsupportedConfigurationError: If both or neither are supplied.
        InvalidBinSpecError: If the resulting spec is malformed.
    """
    if (binwidth is None) == (breaks is None):
        raise_unsupported_configuration(
            "binwidth/breaks",
            reason="You must specify exactly one of binwidth and breaks",
        )
    if breaks is not None:
        return BreakBins(tuple(breaks))
    width = float(binwidth)  # type: ignore[arg-type]
    start = find_origin(x, width) if origin is None else float(origin)
    return FixedBins(width=width, origin=start)


def summarise(
    x: ArrayLike,
    z: ArrayLike | None = None,
    summary: str | None = None,
    weights: ArrayLike | None = None,
    *,
    binwidth: float | None = None,
    origin: float | None = None,
    breaks: Sequence[float] | None = None,
    name: str = "x",
    options: SummaryOptions | None = None,
) -> CondensedTable:
    """Efficient binned 1d summaries, selected by name.

    Args:
        x: Numeric vector to group by.
        z: Numeric vector to summarise for each group. Optional for count.
        summary: One of count, sum, mean, sd or median. Defaults to mean if
            z is given, count otherwise.
        weights: Per-sample weights; not supported by median.
        binwidth: Fixed bin width. Exclusive with ``breaks``.
        origin: Left edge of the first fixed bin; defaults to ``min(x)``.
        breaks: Explicit bin boundaries. Exclusive with ``binwidth``.
        name: Column name for the grouping coordinate.
        options: Engine options.

    Returns:
        CondensedTable tagged with the summary class.

    Example:
        >>> import numpy as np
        >>> table = summarise(np.array([0.1, 0.2, 1.5]), binwidth=1.0, origin=0.0)
        >>> table[".count"].tolist()
        [0.0, 2.0, 1.0]
    """
    kind = resolve_summary(summary, has_z=z is not None)
    spec = resolve_bin_spec(x, binwidth=binwidth, origin=origin, breaks=breaks)
    return summarise_1d(x, z, weights, spec=spec, kind=kind, name=name, options=options)


__all__ = [
    "COUNT",
    "CondensedTable",
    "GroupAxis",
    "SummaryOptions",
    "find_origin",
    "resolve_bin_spec",
    "resolve_summary",
    "summarise",
    "summarise_1d",
    "summarise_nd",
]
