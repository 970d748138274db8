"""Global pytest configuration and shared fixtures for bigbin."""

from __future__ import annotations

import numpy as np
import pytest

# -----------------------------------------------------------------------------
# Markers
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as exercising million-sample inputs",
    )


# -----------------------------------------------------------------------------
# Shared fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def rng() -> np.random.Generator:
    """Deterministic random generator."""
    return np.random.default_rng(20240611)


@pytest.fixture
def product_grid() -> np.ndarray:
    """Complete 5 x 4 product grid, first column varying fastest."""
    xs = np.arange(5, dtype=float)
    ys = np.array([0.0, 0.5, 1.0, 1.5])
    mesh = np.meshgrid(xs, ys, indexing="ij")
    return np.column_stack([m.ravel(order="F") for m in mesh])
