from __future__ import annotations


class LeagueFeedError(Exception):
    """Base class for every error raised by the league feed services."""


class NetworkError(LeagueFeedError):
    pass


class UpstreamError(LeagueFeedError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailable(LeagueFeedError):
    """Raised once every retry of an upstream call has failed."""

    def __init__(self, url: str, last_error: Exception | None = None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Upstream unavailable for {url}{detail}")
        self.url = url
        self.last_error = last_error


class RateLimitExceeded(LeagueFeedError):
    # Internal only. The rate limiter always waits this out.
    def __init__(self, resource_class: str, retry_after: float) -> None:
        super().__init__(
            f"Rate limit for '{resource_class}' saturated, retry in {retry_after:.3f}s"
        )
        self.resource_class = resource_class
        self.retry_after = retry_after


class ConfigurationError(LeagueFeedError):
    pass


class DataInconsistency(LeagueFeedError):
    pass


class DataUnavailable(LeagueFeedError):
    def __init__(self, message: str = "Data temporarily unavailable") -> None:
        super().__init__(message)
