# bigbin/src/bigbin/binning.py
"""Bin specifications and value-to-bin indexing.

Two ways of partitioning the real line are supported:

- :class:`FixedBins`: bins of constant ``width`` starting at ``origin``. Bin
  ``i`` covers ``[origin + width*i, origin + width*(i+1))``. The number of
  bins is usually resolved from the data (see :meth:`FixedBins.resolve`).
- :class:`BreakBins`: explicit, strictly increasing boundaries. Bin ``i``
  covers ``[breaks[i], breaks[i+1])`` except for the last bin, which is also
  closed on the right.

Indexing returns a zero-based bin index, :data:`OUT_OF_RANGE` for values
that fall outside the partition, or :data:`MISSING` for NaN. Both the scalar
(:meth:`index`) and vectorised (:meth:`index_array`) forms are pure functions
of the immutable spec.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Final, TypeAlias

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import InvalidBinSpecError

OUT_OF_RANGE: Final[int] = -1
MISSING: Final[int] = -2

# Error / message constants -------------------------------------------------

_WIDTH_ERROR = "width must be a finite float > 0; got {width}"
_ORIGIN_ERROR = "origin must be a finite float; got {origin}"
_NBINS_ERROR = "nbins must be a non-negative integer; got {nbins}"
_BREAKS_LENGTH_ERROR = "breaks must contain at least 2 boundaries; got {n}"
_BREAKS_FINITE_ERROR = "breaks must all be finite"
_BREAKS_INCREASING_ERROR = "breaks must be strictly increasing"
_UNRESOLVED_ERROR = "FixedBins.nbins is unresolved; call resolve(x) first"
_SPEC_TYPE_ERROR = "Expected FixedBins or BreakBins; got {typ}"


@dataclass(frozen=True, slots=True)
class FixedBins:
    """Fixed-width partition anchored at ``origin``.

    Attributes:
        width: Bin width, strictly positive.
        origin: Left edge of bin 0.
        nbins: Number of bins, or None to derive it from the data.
    """

    width: float
    origin: float
    nbins: int | None = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.width) and self.width > 0):
            raise InvalidBinSpecError(_WIDTH_ERROR.format(width=self.width))
        if not math.isfinite(self.origin):
            raise InvalidBinSpecError(_ORIGIN_ERROR.format(origin=self.origin))
        if self.nbins is not None and (
            int(self.nbins) != self.nbins or self.nbins < 0
        ):
            raise InvalidBinSpecError(_NBINS_ERROR.format(nbins=self.nbins))

    @property
    def resolved(self) -> bool:
        """Whether the bin count is known."""
        return self.nbins is not None

    def resolve(self, x: ArrayLike) -> FixedBins:
        """Return a copy whose bin count covers the largest finite value of x.

        The count is ``floor((max(x) - origin) / width) + 1`` so that the
        maximum always lands in the last bin. Values below ``origin`` do not
        contribute; if nothing reaches the origin the count is zero.

        Args:
            x: Values that will be binned.

        Returns:
            A resolved FixedBins; ``self`` if already resolved.
        """
        if self.nbins is not None:
            return self
        x_arr = np.asarray(x, dtype=np.float64)
        finite = x_arr[np.isfinite(x_arr)]
        if finite.size == 0:
            return replace(self, nbins=0)
        top = float(finite.max())
        if top < self.origin:
            return replace(self, nbins=0)
        return replace(self, nbins=int(math.floor((top - self.origin) / self.width)) + 1)

    def _require_nbins(self) -> int:
        if self.nbins is None:
            raise InvalidBinSpecError(_UNRESOLVED_ERROR)
        return int(self.nbins)

    def index(self, x: float) -> int:
        """Return the bin index of a single value."""
        return int(self.index_array(np.array([x], dtype=np.float64))[0])

    def index_array(self, x: ArrayLike) -> NDArray[np.int64]:
        """Vectorised :meth:`index`.

        Args:
            x: Values to bin.

        Returns:
            int64 array of bin indices, OUT_OF_RANGE or MISSING.
        """
        nbins = self._require_nbins()
        x_arr = np.asarray(x, dtype=np.float64)
        out = np.full(x_arr.shape, OUT_OF_RANGE, dtype=np.int64)

        finite = np.isfinite(x_arr)
        raw = np.floor((x_arr[finite] - self.origin) / self.width)
        ok = (raw >= 0) & (raw < nbins)
        idx = np.full(raw.shape, OUT_OF_RANGE, dtype=np.int64)
        idx[ok] = raw[ok].astype(np.int64)
        out[finite] = idx
        out[np.isnan(x_arr)] = MISSING
        return out

    @property
    def n_bins(self) -> int:
        """Resolved number of bins."""
        return self._require_nbins()

    def left_edges(self) -> NDArray[np.float64]:
        """Left edge of every bin, in bin order."""
        return self.origin + self.width * np.arange(self._require_nbins(), dtype=np.float64)

    def boundaries(self) -> NDArray[np.float64]:
        """All ``nbins + 1`` boundaries of the partition."""
        return self.origin + self.width * np.arange(
            self._require_nbins() + 1, dtype=np.float64
        )


@dataclass(frozen=True, slots=True)
class BreakBins:
    """Partition defined by explicit boundaries.

    Attributes:
        breaks: Strictly increasing, finite boundaries; at least two.
    """

    breaks: tuple[float, ...]

    def __post_init__(self) -> None:
        values = tuple(float(b) for b in self.breaks)
        object.__setattr__(self, "breaks", values)
        if len(values) < 2:
            raise InvalidBinSpecError(_BREAKS_LENGTH_ERROR.format(n=len(values)))
        arr = np.asarray(values)
        if not np.all(np.isfinite(arr)):
            raise InvalidBinSpecError(_BREAKS_FINITE_ERROR)
        if np.any(np.diff(arr) <= 0):
            raise InvalidBinSpecError(_BREAKS_INCREASING_ERROR)

    @property
    def resolved(self) -> bool:
        return True

    def resolve(self, x: ArrayLike) -> BreakBins:  # noqa: ARG002
        return self

    @property
    def n_bins(self) -> int:
        return len(self.breaks) - 1

    def index(self, x: float) -> int:
        """Return the bin index of a single value."""
        return int(self.index_array(np.array([x], dtype=np.float64))[0])

    def index_array(self, x: ArrayLike) -> NDArray[np.int64]:
        """Vectorised :meth:`index` via binary search over the breaks."""
        x_arr = np.asarray(x, dtype=np.float64)
        edges = np.asarray(self.breaks)
        last = self.n_bins - 1

        idx = np.searchsorted(edges, x_arr, side="right").astype(np.int64) - 1
        # closed on the right at the final boundary only
        idx[x_arr == edges[-1]] = last
        idx[(idx < 0) | (idx > last)] = OUT_OF_RANGE
        idx[np.isnan(x_arr)] = MISSING
        return idx

    def left_edges(self) -> NDArray[np.float64]:
        return np.asarray(self.breaks[:-1], dtype=np.float64)

    def boundaries(self) -> NDArray[np.float64]:
        return np.asarray(self.breaks, dtype=np.float64)


BinSpec: TypeAlias = FixedBins | BreakBins


def validate_bin_spec(spec: object) -> BinSpec:
    """Check that ``spec`` is a well-formed bin specification.

    Construction already validates the fields; this re-checks the type and
    re-runs the field checks so that engines never trust a spec blindly.

    Args:
        spec: Candidate specification.

    Raises:
        InvalidBinSpecError: If spec is not a FixedBins/BreakBins or is malformed.

    Returns:
        The same spec, typed as BinSpec.
    """
    if not isinstance(spec, FixedBins | BreakBins):
        raise InvalidBinSpecError(_SPEC_TYPE_ERROR.format(typ=type(spec).__name__))
    spec.__post_init__()
    return spec
