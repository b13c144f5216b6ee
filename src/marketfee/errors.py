"""Fee calculation errors.

All errors are ValueErrors describing bad input or bad configuration.
"""

from __future__ import annotations


class FeeCalculationError(ValueError):
    """Base error for fee calculation. Carries a stable machine-readable code."""

    code = "FEE_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidValueError(FeeCalculationError):
    """Project value is not strictly positive."""

    code = "INVALID_VALUE"


class NoMatchingStructureError(FeeCalculationError):
    """No active fee structure covers the requested user tier."""

    code = "NO_STRUCTURE"


class FeeConfigurationError(FeeCalculationError):
    """The fee policy (rule table) is structurally invalid."""

    code = "INVALID_CONFIG"
