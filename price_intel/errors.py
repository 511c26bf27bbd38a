"""Exceptions raised by the price intelligence engine.

Not having enough data is never an error: those cases come back as
result values (INSUFFICIENT_DATA, or an empty deal list with no hero).
"""


class PriceIntelError(Exception):
    """Base class for engine errors."""


class InvalidInputError(PriceIntelError, ValueError):
    """Caller supplied malformed input. Raised before any store query."""


class InvalidCaliberError(InvalidInputError):
    """Caliber is not a member of the canonical enumeration."""

    def __init__(self, caliber: str, allowed: list[str]):
        self.caliber = caliber
        self.allowed = allowed
        super().__init__(
            f"Invalid caliber: {caliber}. Must be one of: {', '.join(allowed)}"
        )


class UpstreamUnavailableError(PriceIntelError, RuntimeError):
    """The observation store failed or did not answer in time."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")
