"""Unit tests for bigbin.errors."""

from __future__ import annotations

import pytest

from bigbin import errors


@pytest.mark.parametrize(
    "cls",
    [
        errors.InvalidBinSpecError,
        errors.LengthMismatchError,
        errors.UnsupportedWeightingError,
        errors.UnsupportedConfigurationError,
        errors.InvalidBandwidthError,
    ],
)
def test_error_hierarchy(cls: type[Exception]) -> None:
    """Every error is both a BigbinError and a ValueError."""
    assert issubclass(cls, errors.BigbinError)
    assert issubclass(cls, ValueError)


def test_raise_length_mismatch_names_both_vectors() -> None:
    """raise_length_mismatch should surface name, reference and both lengths."""
    with pytest.raises(errors.LengthMismatchError) as excinfo:
        errors.raise_length_mismatch(name="z", got=3, expected=5)

    msg = str(excinfo.value)
    assert msg.startswith("z must have the same length as x")
    assert "got 3 and 5" in msg


def test_raise_length_mismatch_custom_reference() -> None:
    """The reference vector name can be overridden."""
    with pytest.raises(errors.LengthMismatchError, match="as grid_in"):
        errors.raise_length_mismatch(name="weights", got=1, expected=2, reference="grid_in")


def test_raise_unsupported_weighting_lists_alternatives() -> None:
    """raise_unsupported_weighting names the summary and sorted alternatives."""
    with pytest.raises(errors.UnsupportedWeightingError) as excinfo:
        errors.raise_unsupported_weighting("median", supported=["sum", "count", "sd"])

    msg = str(excinfo.value)
    assert "'median'" in msg
    assert "count, sd, sum" in msg


def test_raise_unsupported_configuration_includes_reason() -> None:
    """raise_unsupported_configuration carries option and reason."""
    option = "factor=False with method='regression'"
    reason = "Only factored approximations are available"

    with pytest.raises(errors.UnsupportedConfigurationError) as excinfo:
        errors.raise_unsupported_configuration(option, reason=reason)

    msg = str(excinfo.value)
    assert option in msg
    assert f"Reason: {reason}" in msg
