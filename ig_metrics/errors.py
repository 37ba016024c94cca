from __future__ import annotations


_DEFAULT_DETAILS = "Check the function logs for more information"


class DashboardError(RuntimeError):
    """Base class for failures that end a request with an error envelope."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = (details or "").strip() or _DEFAULT_DETAILS


class InputValidationError(DashboardError):
    """Raised when a request body is missing a required field."""


class ParseError(DashboardError):
    """Raised when a request or upstream body cannot be decoded."""


class ConfigError(DashboardError):
    """Raised when configuration is missing or invalid."""


class ApifyError(DashboardError):
    """Raised when an Apify Actor run or dataset read fails."""


class LaunchFailedError(ApifyError):
    """Raised when Apify rejects or never acknowledges an Actor start."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class JobFailedError(ApifyError):
    """Raised when an Actor run reaches a terminal status other than SUCCEEDED."""

    def __init__(self, status: object, *, details: str | None = None) -> None:
        name = getattr(status, "value", status)
        super().__init__(f"Run failed with status: {name}", details=details)
        self.status = status


class JobTimedOutError(ApifyError):
    """Raised when the poll budget runs out before the run reaches a terminal status."""

    def __init__(self, attempts: int, *, details: str | None = None) -> None:
        super().__init__(
            f"Timeout waiting for results after {attempts} status checks",
            details=details,
        )
        self.attempts = attempts


class DatasetFetchError(ApifyError):
    """Raised when the dataset of a finished run cannot be read."""


class AuthError(DashboardError):
    """Raised when the identity provider rejects a login or session check."""
