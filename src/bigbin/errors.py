# bigbin/src/bigbin/errors.py
"""Error types and standardized raise helpers for bigbin.

This module centralizes:
- explicit error classes with actionable messages, and
- small helpers that build consistent messages for the common failure modes.

Every error derives from :class:`BigbinError` and from ``ValueError`` so that
callers can catch either the library-specific or the builtin family.

Validation errors are raised before any binning or smoothing work starts, so
a call either fails up front or returns a complete result.
"""

from __future__ import annotations

from typing import Final

_LENGTH_MISMATCH_MSG: Final[str] = (
    "{name} must have the same length as {reference}; got {got} and {expected}."
)
_UNSUPPORTED_WEIGHTING_MSG: Final[str] = (
    "The '{summary}' summary cannot honour non-uniform weights. "
    "Drop the weights or pick a summary from: {supported}."
)


class BigbinError(Exception):
    """Base exception for bigbin errors."""


class InvalidBinSpecError(BigbinError, ValueError):
    """Raised when a bin width, origin or break vector is malformed."""


class LengthMismatchError(BigbinError, ValueError):
    """Raised when paired vectors or grids have incompatible lengths."""


class UnsupportedWeightingError(BigbinError, ValueError):
    """Raised when weights are supplied to a summary that cannot use them."""


class UnsupportedConfigurationError(BigbinError, ValueError):
    """Raised when an option combination has no implementation."""


class InvalidBandwidthError(BigbinError, ValueError):
    """Raised when a smoothing bandwidth is not positive or has the wrong length."""


def raise_length_mismatch(
    *,
    name: str,
    got: int,
    expected: int,
    reference: str = "x",
) -> None:
    """Raise a standardized LengthMismatchError.

    Args:
        name: Name of the offending vector.
        got: Observed length.
        expected: Required length.
        reference: Name of the vector that fixes the expected length.

    Raises:
        LengthMismatchError: Always.
    """
    raise LengthMismatchError(
        _LENGTH_MISMATCH_MSG.format(
            name=name, reference=reference, got=got, expected=expected
        )
    )


def raise_unsupported_weighting(summary: str, *, supported: list[str]) -> None:
    """Raise a standardized UnsupportedWeightingError.

    Args:
        summary: Name of the summary that was requested.
        supported: Summaries that do accept weights.

    Raises:
        UnsupportedWeightingError: Always.
    """
    raise UnsupportedWeightingError(
        _UNSUPPORTED_WEIGHTING_MSG.format(
            summary=summary, supported=", ".join(sorted(supported))
        )
    )


def raise_unsupported_configuration(option: str, *, reason: str) -> None:
    """Raise a standardized UnsupportedConfigurationError.

    Args:
        option: The option or combination that was requested.
        reason: Human-readable reason it cannot run.

    Raises:
        UnsupportedConfigurationError: Always.
    """
    msg = f"Unsupported configuration: {option}.\nReason: {reason}"
    raise UnsupportedConfigurationError(msg)
