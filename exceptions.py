from typing import Any


class VisitTrackerError(Exception):
    """Base class for errors raised by the visit counter store."""


class InvalidCountryCode(VisitTrackerError):
    """The supplied value is not a known ISO 3166-1 alpha-2 code."""

    def __init__(self, country_code: Any):
        self.country_code = country_code
        super().__init__(f"Invalid country code: {country_code}")


class BackendUnavailable(VisitTrackerError):
    """Redis could not be reached or answered with an error.

    The originating redis exception is chained as ``__cause__``.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Redis backend unavailable during {operation}")
