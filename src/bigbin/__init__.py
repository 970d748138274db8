"""bigbin: binned summaries and kernel smoothing for large datasets."""

from __future__ import annotations

from .accumulators import (
    SUMMARIES,
    Median,
    MedianAccumulator,
    Moments,
    MomentsAccumulator,
    Sum,
    SumAccumulator,
    SummaryKind,
    make_accumulator,
    summary_class,
)
from .binning import MISSING, OUT_OF_RANGE, BinSpec, BreakBins, FixedBins
from .errors import (
    BigbinError,
    InvalidBandwidthError,
    InvalidBinSpecError,
    LengthMismatchError,
    UnsupportedConfigurationError,
    UnsupportedWeightingError,
)
from .smooth_nd import complete_grid, smooth, smooth_nd
from .smoothing import Kernel, SmoothMethod, SmoothOptions, smooth_1d
from .summary import (
    CondensedTable,
    GroupAxis,
    SummaryOptions,
    find_origin,
    summarise,
    summarise_1d,
    summarise_nd,
)

__all__ = [
    "MISSING",
    "OUT_OF_RANGE",
    "SUMMARIES",
    "BigbinError",
    "BinSpec",
    "BreakBins",
    "CondensedTable",
    "FixedBins",
    "GroupAxis",
    "InvalidBandwidthError",
    "InvalidBinSpecError",
    "Kernel",
    "LengthMismatchError",
    "Median",
    "MedianAccumulator",
    "Moments",
    "MomentsAccumulator",
    "SmoothMethod",
    "SmoothOptions",
    "Sum",
    "SumAccumulator",
    "SummaryKind",
    "SummaryOptions",
    "UnsupportedConfigurationError",
    "UnsupportedWeightingError",
    "complete_grid",
    "find_origin",
    "make_accumulator",
    "smooth",
    "smooth_1d",
    "smooth_nd",
    "summarise",
    "summarise_1d",
    "summarise_nd",
    "summary_class",
]

__version__ = "0.1.0"
