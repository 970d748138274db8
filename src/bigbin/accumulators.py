# bigbin/src/bigbin/accumulators.py
"""Per-bin running statistics.

An accumulator owns the state of *every* bin of one summary call, stored as
flat arrays indexed by bin slot. Samples arrive in batches of
``(slot_ids, values, weights)``; each batch is reduced per bin with
``np.bincount`` and merged into the running state, so a long input can be
streamed through in chunks without ever materialising per-sample objects.

Summary kinds form a closed set:

- :class:`Sum`: weighted count (``power=0``) or weighted sum (``power=1``).
- :class:`Moments`: mean (``order=1``) or sample standard deviation
  (``order=2``) from a running count / mean / M2 triple.
- :class:`Median`: exact median; raw values are kept until finalize.

Empty bins finalize to count=0, sum=0 and NaN for mean, sd and median. A
NaN value makes the sum, mean, sd and median of its bin NaN alike.

Every kind except the count needs values; passing ``values=None`` to those
accumulators raises ``ValueError``.

Notes:
    Moments merge each batch into the running state with the pairwise
    update of Chan, Golub and LeVeque. Floating-point rounding therefore
    depends on how the input was chunked; the difference is in the last
    bits and is not corrected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal, Protocol, TypeAlias

import numpy as np
from numpy.typing import NDArray

FloatArray: TypeAlias = NDArray[np.float64]
IntArray: TypeAlias = NDArray[np.int64]

COUNT: Final[str] = ".count"
SUM: Final[str] = ".sum"
MEAN: Final[str] = ".mean"
SD: Final[str] = ".sd"
MEDIAN: Final[str] = ".median"

_POWER_ERROR = "Sum power must be 0 or 1; got {power}"
_ORDER_ERROR = "Moments order must be 1 or 2; got {order}"
_MEDIAN_WEIGHTS_ERROR = "MedianAccumulator does not accept weights"
_VALUES_REQUIRED_ERROR = "{name} needs values; only the count summary works without"


# =============================================================================
# Summary kinds
# =============================================================================


@dataclass(frozen=True, slots=True)
class Sum:
    """Weighted count (power 0) or weighted sum (power 1)."""

    power: Literal[0, 1] = 0

    def __post_init__(self) -> None:
        if self.power not in (0, 1):
            raise ValueError(_POWER_ERROR.format(power=self.power))


@dataclass(frozen=True, slots=True)
class Moments:
    """Mean (order 1) or sample standard deviation (order 2)."""

    order: Literal[1, 2] = 1

    def __post_init__(self) -> None:
        if self.order not in (1, 2):
            raise ValueError(_ORDER_ERROR.format(order=self.order))


@dataclass(frozen=True, slots=True)
class Median:
    """Exact median of the values in each bin."""


SummaryKind: TypeAlias = Sum | Moments | Median
SummaryClass: TypeAlias = Literal["sum", "moments", "median"]

SUMMARIES: Final[dict[str, SummaryKind]] = {
    "count": Sum(0),
    "sum": Sum(1),
    "mean": Moments(1),
    "sd": Moments(2),
    "median": Median(),
}


def summary_class(kind: SummaryKind) -> SummaryClass:
    """Return the table tag for a summary kind."""
    match kind:
        case Sum():
            return "sum"
        case Moments():
            return "moments"
        case Median():
            return "median"


def summary_columns(kind: SummaryKind) -> tuple[str, ...]:
    """Return the output column names produced by a summary kind, in order."""
    match kind:
        case Sum(power=0):
            return (COUNT,)
        case Sum():
            return (COUNT, SUM)
        case Moments(order=1):
            return (COUNT, MEAN)
        case Moments():
            return (COUNT, MEAN, SD)
        case Median():
            return (MEDIAN,)


def accepts_weights(kind: SummaryKind) -> bool:
    """Whether the accumulator for ``kind`` honours per-sample weights."""
    return not isinstance(kind, Median)


# =============================================================================
# Accumulators
# =============================================================================


class Accumulator(Protocol):
    """Interface shared by all accumulators."""

    n_bins: int

    def update(
        self,
        bin_ids: IntArray,
        values: FloatArray | None,
        weights: FloatArray | None,
    ) -> None:
        """Fold one batch of samples into the per-bin state."""
        ...

    def finalize(self) -> dict[str, FloatArray]:
        """Return the summary columns, one entry per bin."""
        ...


def _batch_weight(bin_ids: IntArray, weights: FloatArray | None) -> FloatArray:
    if weights is None:
        return np.ones(bin_ids.shape[0], dtype=np.float64)
    return np.asarray(weights, dtype=np.float64)


class SumAccumulator:
    """Running weighted count and weighted sum per bin."""

    def __init__(self, n_bins: int, power: Literal[0, 1] = 0) -> None:
        self.n_bins = int(n_bins)
        self.power = power
        self.count = np.zeros(self.n_bins, dtype=np.float64)
        self.total = np.zeros(self.n_bins, dtype=np.float64)

    def update(
        self,
        bin_ids: IntArray,
        values: FloatArray | None,
        weights: FloatArray | None,
    ) -> None:
        if self.power == 1 and values is None:
            raise ValueError(_VALUES_REQUIRED_ERROR.format(name="SumAccumulator(power=1)"))
        w = _batch_weight(bin_ids, weights)
        self.count += np.bincount(bin_ids, weights=w, minlength=self.n_bins)
        if self.power == 1:
            self.total += np.bincount(
                bin_ids, weights=np.asarray(values) * w, minlength=self.n_bins
            )

    def finalize(self) -> dict[str, FloatArray]:
        if self.power == 0:
            return {COUNT: self.count.copy()}
        return {COUNT: self.count.copy(), SUM: self.total.copy()}


class MomentsAccumulator:
    """Running weighted count, mean and M2 per bin.

    ``finalize`` reports the mean for order 1, and additionally the sample
    standard deviation ``sqrt(m2 / (count - 1))`` for order 2.
    """

    def __init__(self, n_bins: int, order: Literal[1, 2] = 1) -> None:
        self.n_bins = int(n_bins)
        self.order = order
        self.count = np.zeros(self.n_bins, dtype=np.float64)
        self.mean = np.zeros(self.n_bins, dtype=np.float64)
        self.m2 = np.zeros(self.n_bins, dtype=np.float64)

    def update(
        self,
        bin_ids: IntArray,
        values: FloatArray | None,
        weights: FloatArray | None,
    ) -> None:
        if values is None:
            raise ValueError(_VALUES_REQUIRED_ERROR.format(name="MomentsAccumulator"))
        z = np.asarray(values, dtype=np.float64)
        w = _batch_weight(bin_ids, weights)

        # Two-pass statistics of the batch, per bin.
        n_b = np.bincount(bin_ids, weights=w, minlength=self.n_bins)
        s_b = np.bincount(bin_ids, weights=w * z, minlength=self.n_bins)
        mean_b = np.divide(s_b, n_b, out=np.zeros_like(s_b), where=n_b > 0)
        resid = z - mean_b[bin_ids]
        m2_b = np.bincount(bin_ids, weights=w * resid * resid, minlength=self.n_bins)

        # Pairwise merge with the running state.
        n_new = self.count + n_b
        touched = n_b > 0
        delta = mean_b - self.mean
        frac = np.divide(n_b, n_new, out=np.zeros_like(n_b), where=touched)
        self.mean = np.where(touched, self.mean + delta * frac, self.mean)
        self.m2 = np.where(
            touched, self.m2 + m2_b + delta * delta * self.count * frac, self.m2
        )
        self.count = n_new

    def finalize(self) -> dict[str, FloatArray]:
        mean = np.where(self.count > 0, self.mean, np.nan)
        out = {COUNT: self.count.copy(), MEAN: mean}
        if self.order == 2:
            enough = self.count >= 2
            denom = np.where(enough, self.count - 1.0, 1.0)
            out[SD] = np.where(enough, np.sqrt(self.m2 / denom), np.nan)
        return out


class MedianAccumulator:
    """Exact per-bin median.

    Values are buffered per batch and laid out in one contiguous arena at
    finalize time: samples are sorted by ``(bin, value)`` and each bin's
    median is read from its slice using occupancy offsets.
    """

    def __init__(self, n_bins: int) -> None:
        self.n_bins = int(n_bins)
        self._ids: list[IntArray] = []
        self._values: list[FloatArray] = []

    def update(
        self,
        bin_ids: IntArray,
        values: FloatArray | None,
        weights: FloatArray | None,
    ) -> None:
        if weights is not None:
            raise ValueError(_MEDIAN_WEIGHTS_ERROR)
        if values is None:
            raise ValueError(_VALUES_REQUIRED_ERROR.format(name="MedianAccumulator"))
        self._ids.append(np.asarray(bin_ids, dtype=np.int64))
        self._values.append(np.asarray(values, dtype=np.float64))

    def finalize(self) -> dict[str, FloatArray]:
        median = np.full(self.n_bins, np.nan, dtype=np.float64)
        if not self._ids:
            return {MEDIAN: median}

        ids = np.concatenate(self._ids)
        values = np.concatenate(self._values)
        order = np.lexsort((values, ids))
        arena = values[order]

        occupancy = np.bincount(ids, minlength=self.n_bins)
        starts = np.concatenate(([0], np.cumsum(occupancy)[:-1]))
        filled = occupancy > 0
        lo = starts[filled] + (occupancy[filled] - 1) // 2
        hi = starts[filled] + occupancy[filled] // 2
        median[filled] = 0.5 * (arena[lo] + arena[hi])
        # lexsort puts NaN last, so the middle elements would skip it
        nan_count = np.bincount(
            ids,
            weights=np.isnan(values).astype(np.float64),
            minlength=self.n_bins,
        )
        median[nan_count > 0] = np.nan
        return {MEDIAN: median}


def make_accumulator(kind: SummaryKind, n_bins: int) -> Accumulator:
    """Allocate the accumulator for ``kind`` covering ``n_bins`` slots."""
    match kind:
        case Sum(power=power):
            return SumAccumulator(n_bins, power)
        case Moments(order=order):
            return MomentsAccumulator(n_bins, order)
        case Median():
            return MedianAccumulator(n_bins)
