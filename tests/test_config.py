"""Unit tests for bigbin.config.

This module verifies:
- Field validation and defaults of SummariseConfig and SmoothConfig.
- Conversion into bin specs, summary kinds and option dataclasses.
- That config-driven runs match the native API.
- Loading both sections from a YAML file.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from pydantic import ValidationError

from bigbin.accumulators import Median, Moments, Sum
from bigbin.binning import BreakBins, FixedBins
from bigbin.config import (
    SmoothConfig,
    SummariseConfig,
    load_config,
    read_config,
    smooth_from_config,
    summarise_from_config,
)
from bigbin.errors import UnsupportedConfigurationError
from bigbin.smooth_nd import smooth
from bigbin.smoothing import Kernel, SmoothMethod
from bigbin.summary import summarise

# -------------------------------------------------------------------
# SummariseConfig
# -------------------------------------------------------------------


def test_summarise_config_defaults_and_extra_keys() -> None:
    """Unknown keys are ignored and defaults are filled."""
    cfg = SummariseConfig.model_validate({"binwidth": 0.5, "smooth": {"h": 1}})
    assert cfg.summary is None
    assert cfg.name == "x"
    assert cfg.to_summary_options().chunk_size == 1_000_000
    assert cfg.to_summary_kind(has_z=False) == Sum(0)
    assert cfg.to_summary_kind(has_z=True) == Moments(1)


def test_summarise_config_field_validation() -> None:
    """Names, widths and chunk sizes are validated by pydantic."""
    with pytest.raises(ValidationError):
        SummariseConfig(summary="mode")  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        SummariseConfig(binwidth=0.0)
    with pytest.raises(ValidationError):
        SummariseConfig(binwidth=1.0, chunk_size=0)


def test_summarise_config_bin_spec() -> None:
    """Bin specs come from exactly one of binwidth and breaks."""
    x = [2.0, 3.5]
    assert SummariseConfig(binwidth=1.0).to_bin_spec(x) == FixedBins(1.0, 2.0)
    assert SummariseConfig(binwidth=1.0, origin=0.0).to_bin_spec(x) == FixedBins(1.0, 0.0)
    assert SummariseConfig(breaks=[0, 1, 4]).to_bin_spec(x) == BreakBins((0.0, 1.0, 4.0))
    with pytest.raises(UnsupportedConfigurationError):
        SummariseConfig().to_bin_spec(x)
    with pytest.raises(UnsupportedConfigurationError):
        SummariseConfig(binwidth=1.0, breaks=[0.0, 1.0]).to_bin_spec(x)


def test_summarise_from_config_matches_native(rng: np.random.Generator) -> None:
    """Config-driven summaries equal direct calls."""
    x = rng.uniform(0.0, 5.0, size=200)
    z = rng.normal(size=200)
    cfg = SummariseConfig(summary="median", binwidth=0.5, origin=0.0, name="age", chunk_size=17)
    table = summarise_from_config(x, z, config=cfg)
    native = summarise(x, z, summary="median", binwidth=0.5, origin=0.0, name="age")
    assert table.group_vars == ("age",)
    assert cfg.to_summary_kind(has_z=True) == Median()
    np.testing.assert_array_equal(table["age"], native["age"])
    np.testing.assert_array_equal(table[".median"], native[".median"])


# -------------------------------------------------------------------
# SmoothConfig
# -------------------------------------------------------------------


def test_smooth_config_scalar_bandwidth_and_options() -> None:
    """A scalar h becomes a one-element list; names become enums."""
    cfg = SmoothConfig.model_validate(
        {"h": 2, "method": "robust", "kernel": "tri", "robust_iterations": 1}
    )
    assert cfg.h == [2.0]
    assert cfg.to_method() is SmoothMethod.ROBUST_REGRESSION
    opts = cfg.to_smooth_options()
    assert opts.kernel is Kernel.TRICUBE
    assert opts.robust_iterations == 1


def test_smooth_config_validation() -> None:
    """Bandwidths are required and iteration counts non-negative."""
    with pytest.raises(ValidationError):
        SmoothConfig()  # type: ignore[call-arg]
    with pytest.raises(ValidationError):
        SmoothConfig(h=[])
    with pytest.raises(ValidationError):
        SmoothConfig(h=1.0, robust_iterations=-1)  # type: ignore[arg-type]
    with pytest.raises(UnsupportedConfigurationError):
        SmoothConfig(h=1.0, method="spline").to_method()  # type: ignore[arg-type]


def test_smooth_from_config_matches_native() -> None:
    """Config-driven smoothing equals the direct call."""
    table = summarise(np.linspace(0.0, 3.0, 61), np.linspace(0.0, 3.0, 61) ** 2, binwidth=0.5)
    cfg = SmoothConfig(h=[0.75], var=".mean", method="reg")
    out = smooth_from_config(table, config=cfg, grid=[0.25, 1.0])
    native = smooth(table, 0.75, var=".mean", grid=[0.25, 1.0], method="regression")
    np.testing.assert_allclose(out[".mean"], native[".mean"])
    np.testing.assert_array_equal(out["x"], [0.25, 1.0])


# -------------------------------------------------------------------
# YAML files
# -------------------------------------------------------------------


def test_load_config_reads_both_sections(tmp_path: Path) -> None:
    """Both sections are parsed into their models; other keys are ignored."""
    path = tmp_path / "bigbin.yml"
    path.write_text(
        "title: demo\n"
        "summarise:\n"
        "  summary: sd\n"
        "  binwidth: 0.25\n"
        "  origin: 0\n"
        "smooth:\n"
        "  h: [0.5]\n"
        "  method: reg\n",
        encoding="utf-8",
    )
    summarise_cfg, smooth_cfg = load_config(path)
    assert summarise_cfg is not None
    assert smooth_cfg is not None
    assert summarise_cfg.to_summary_kind(has_z=True) == Moments(2)
    assert summarise_cfg.to_bin_spec([1.0]) == FixedBins(0.25, 0.0)
    assert smooth_cfg.to_method() is SmoothMethod.REGRESSION


def test_load_config_missing_section(tmp_path: Path) -> None:
    """An absent section comes back as None."""
    path = tmp_path / "bigbin.yml"
    path.write_text("smooth:\n  h: 2\n", encoding="utf-8")
    summarise_cfg, smooth_cfg = load_config(path)
    assert summarise_cfg is None
    assert smooth_cfg is not None
    assert smooth_cfg.h == [2.0]


def test_read_config_requires_mapping(tmp_path: Path) -> None:
    """A YAML list at the top level is rejected."""
    path = tmp_path / "bigbin.yml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(UnsupportedConfigurationError, match="mapping"):
        read_config(path)
