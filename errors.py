"""Error hierarchy for the country cache.

Every error knows its HTTP status and the JSON body it maps to, so the global
handlers in ``error_handlers`` can translate them without inspecting types.
Internal detail never reaches ``to_response()``; it belongs in the logs.
"""

from typing import Any, Optional


class CountryCacheError(Exception):
    """Base class for every error the service reports to callers."""

    http_status = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class UpstreamUnavailable(CountryCacheError):
    """One of the two external data sources failed or timed out."""

    http_status = 503

    def __init__(self, source: str):
        super().__init__(
            "External data source unavailable",
            f"Could not fetch data from {source}",
        )
        self.source = source


class ValidationError(CountryCacheError):
    """A caller-supplied query parameter is invalid."""

    http_status = 400

    def __init__(self, field: str, reason: str):
        super().__init__("Validation failed", {field: reason})
        self.field = field
        self.reason = reason


class NotFoundError(CountryCacheError):
    http_status = 404

    def __init__(self, message: str = "Country not found"):
        super().__init__(message)


class InternalError(CountryCacheError):
    """Anything unclassified. Carries no detail for the caller."""

    http_status = 500

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__("Internal server error")
        self.cause = cause
