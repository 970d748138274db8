# bigbin/examples/condense_and_smooth.py
"""Condense a million noisy samples and smooth the per-bin means.

This example demonstrates the core workflow:

- summarise(...) condenses (x, z) into one row per bin, empty bins included.
- smooth(...) kernel-smooths a summary column, using the bin counts as
  weights so sparse bins pull less than dense ones.
- Robust local regression shrugs off a cluster of gross outliers.

A second part condenses a 2D cloud with summarise_nd and smooths the counts
onto the complete product grid.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from bigbin import (
    FixedBins,
    Sum,
    complete_grid,
    smooth,
    summarise,
    summarise_nd,
)

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "condense"


def make_samples(n: int, *, seed: int = 7) -> tuple[np.ndarray, np.ndarray]:
    """Draw skewed x with a sinusoidal signal, plus a band of outliers.

    Args:
        n: Number of samples.
        seed: Generator seed.

    Returns:
        Tuple (x, z) of length-n vectors.
    """
    rng = np.random.default_rng(seed)
    x = rng.gamma(shape=2.0, scale=1.5, size=n)
    z = np.sin(x) + rng.normal(scale=0.4, size=n)
    # a narrow band of corrupted measurements
    band = (x > 4.0) & (x < 4.3)
    z[band] += 8.0
    return x, z


def save_smooth_plot(
    x: np.ndarray,
    series: dict[str, np.ndarray],
    *,
    title: str,
    out_path: Path,
) -> None:
    """Plot several smoothed series against bin positions and save to disk."""
    plt.figure(figsize=(8, 5))
    for label, values in series.items():
        plt.plot(x, values, label=label)
    plt.grid(visible=True)
    plt.legend()
    plt.title(title)
    plt.xlabel("x")
    plt.ylabel("z")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def save_density_plot(grid: np.ndarray, counts: np.ndarray, *, out_path: Path) -> None:
    """Scatter smoothed 2D counts on their grid and save to disk."""
    plt.figure(figsize=(6, 5))
    plt.scatter(grid[:, 0], grid[:, 1], c=counts, s=12, cmap="viridis")
    plt.colorbar(label="smoothed count")
    plt.xlabel("x")
    plt.ylabel("y")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def main() -> None:
    """Run the 1D and 2D walkthroughs."""
    x, z = make_samples(1_000_000)

    # ---------------------------------------------------------------------
    # (1) 1D: condense, then compare smoothing methods on the bin means
    # ---------------------------------------------------------------------
    table = summarise(x, z, summary="mean", binwidth=0.05, origin=0.0)
    print(f"condensed {x.size} samples into {len(table)} rows")

    series = {
        "raw bin mean": table[".mean"][1:],
        **{
            method: smooth(table, 0.3, var=".mean", method=method)[".mean"]
            for method in ("mean", "regression", "robust_regression")
        },
    }
    save_smooth_plot(
        table["x"][1:],
        series,
        title="Smoothed bin means (h = 0.3, counts as weights)",
        out_path=_OUTPUT_DIR / "smooth_1d_methods.png",
    )

    # ---------------------------------------------------------------------
    # (2) 2D: condense a correlated cloud and smooth the counts
    # ---------------------------------------------------------------------
    rng = np.random.default_rng(11)
    a = rng.normal(size=200_000)
    b = 0.6 * a + rng.normal(scale=0.8, size=200_000)
    cloud = summarise_nd(
        {"x": a, "y": b},
        {"x": FixedBins(0.2, -4.0), "y": FixedBins(0.2, -4.0)},
        kind=Sum(0),
    )
    grid = complete_grid(cloud)
    dense = smooth(cloud, [0.3, 0.3], grid=grid)
    save_density_plot(grid, dense[".count"], out_path=_OUTPUT_DIR / "smooth_2d_counts.png")


if __name__ == "__main__":
    main()
