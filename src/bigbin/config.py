# bigbin/src/bigbin/config.py
"""Configuration models for driving bigbin from mappings (YAML, JSON, CLI).

This module defines pydantic-facing configuration objects and translates them
into the native option dataclasses and bin specifications. YAML files are
read with ruamel.yaml; a file holds a ``summarise`` section, a ``smooth``
section, or both.

Notes:
    - Unknown fields are ignored (``extra="ignore"``), so one document can
      carry both a summarise and a smooth section alongside other settings.
    - Cross-field rules (exactly one of binwidth/breaks) are checked when the
      model is converted, raising the same errors as the native API.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from ruamel.yaml import YAML

from .errors import raise_unsupported_configuration
from .smoothing import Kernel, SmoothMethod, SmoothOptions
from .smooth_nd import smooth
from .summary import (
    SummaryOptions,
    resolve_bin_spec,
    resolve_summary,
    summarise_1d,
)

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .accumulators import SummaryKind
    from .binning import BinSpec
    from .summary import CondensedTable

SummaryName = Literal["count", "sum", "mean", "sd", "median"]


class SummariseConfig(BaseModel):
    """Configuration schema for a binned 1d summary."""

    model_config = ConfigDict(extra="ignore")

    summary: SummaryName | None = Field(
        default=None,
        description="Summary statistic; defaults to mean with z, count without",
    )
    binwidth: float | None = Field(default=None, gt=0.0)
    origin: float | None = None
    breaks: list[float] | None = None
    name: str = "x"
    chunk_size: int = Field(default=1_000_000, gt=0)

    def to_bin_spec(self, x: ArrayLike) -> BinSpec:
        """Build the bin specification, defaulting the origin from ``x``."""
        return resolve_bin_spec(
            x, binwidth=self.binwidth, origin=self.origin, breaks=self.breaks
        )

    def to_summary_kind(self, *, has_z: bool) -> SummaryKind:
        return resolve_summary(self.summary, has_z=has_z)

    def to_summary_options(self) -> SummaryOptions:
        return SummaryOptions(chunk_size=self.chunk_size)


class SmoothConfig(BaseModel):
    """Configuration schema for smoothing a condensed table."""

    model_config = ConfigDict(extra="ignore")

    h: list[float] = Field(min_length=1, description="Bandwidth per grouping variable")
    var: str | None = None
    method: str = Field(default="mean", description="Method name or unique prefix")
    factor: bool = True
    kernel: str = "gaussian"
    robust_iterations: int = Field(default=3, ge=0)
    max_block_elements: int = Field(default=1 << 22, gt=0)

    @field_validator("h", mode="before")
    @classmethod
    def _scalar_bandwidth(cls, value: object) -> object:
        if isinstance(value, int | float):
            return [value]
        return value

    def to_method(self) -> SmoothMethod:
        return SmoothMethod.parse(self.method)

    def to_smooth_options(self) -> SmoothOptions:
        """Convert to the native SmoothOptions.

        Returns:
            Fully constructed SmoothOptions instance.
        """
        return SmoothOptions(
            kernel=Kernel.parse(self.kernel),
            robust_iterations=self.robust_iterations,
            max_block_elements=self.max_block_elements,
        )


def read_config(path: str | Path) -> dict[str, Any]:
    """Read a YAML configuration document.

    Args:
        path: Path to a YAML file whose top level is a mapping.

    Raises:
        UnsupportedConfigurationError: If the top level is not a mapping.

    Returns:
        The parsed document.
    """
    yaml = YAML(typ="safe")
    with Path(path).open("r", encoding="utf-8") as f:
        document = yaml.load(f)
    if not isinstance(document, dict):
        raise_unsupported_configuration(
            f"config file {path}",
            reason=f"top level must be a mapping; got {type(document).__name__}",
        )
    return document


def load_config(path: str | Path) -> tuple[SummariseConfig | None, SmoothConfig | None]:
    """Load the ``summarise`` and ``smooth`` sections of a YAML file.

    Either section may be absent, in which case None is returned in its place.
    Other top-level keys are ignored.
    """
    document = read_config(path)
    summarise_section = document.get("summarise")
    smooth_section = document.get("smooth")
    return (
        None if summarise_section is None else SummariseConfig.model_validate(summarise_section),
        None if smooth_section is None else SmoothConfig.model_validate(smooth_section),
    )


def summarise_from_config(
    x: ArrayLike,
    z: ArrayLike | None = None,
    weights: ArrayLike | None = None,
    *,
    config: SummariseConfig,
) -> CondensedTable:
    """Run the summary engine as described by ``config``."""
    return summarise_1d(
        x,
        z,
        weights,
        spec=config.to_bin_spec(x),
        kind=config.to_summary_kind(has_z=z is not None),
        name=config.name,
        options=config.to_summary_options(),
    )


def smooth_from_config(
    table: CondensedTable,
    *,
    config: SmoothConfig,
    grid: ArrayLike | None = None,
) -> CondensedTable:
    """Smooth ``table`` as described by ``config``."""
    return smooth(
        table,
        config.h,
        var=config.var,
        grid=grid,
        method=config.to_method(),
        factor=config.factor,
        options=config.to_smooth_options(),
    )
