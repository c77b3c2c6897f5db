from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import requests
from loguru import logger

try:
    from leaguefeed.services.errors import (
        NetworkError,
        UpstreamError,
        UpstreamUnavailable,
    )
    from leaguefeed.services.rate_limit import RateLimiter
except ModuleNotFoundError:
    from services.errors import NetworkError, UpstreamError, UpstreamUnavailable
    from services.rate_limit import RateLimiter


def exponential_backoff(attempt: int) -> float:
    # attempt is 1-based: 1s, 2s, 4s, ...
    return float(2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff: Callable[[int], float] = field(default=exponential_backoff)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def with_retries(self, max_retries: int) -> RetryPolicy:
        return RetryPolicy(max_retries=max(0, max_retries), backoff=self.backoff)


class RateLimitedFetcher:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._sleep = sleep

    def _request_once(self, url: str, params: dict[str, Any] | None) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Malformed JSON from {url}: {exc}") from exc

    def fetch_json(
        self,
        url: str,
        resource_class: str,
        max_retries: int | None = None,
        params: dict[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> Any:
        """GET ``url`` as JSON, retrying with backoff.

        Once ``cancel`` is set no further attempt starts, and the call fails
        with ``UpstreamUnavailable`` carrying the last error seen.
        """
        policy = (
            self.retry_policy
            if max_retries is None
            else self.retry_policy.with_retries(max_retries)
        )
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            if cancel is not None and cancel.is_set():
                logger.info(f"Request to {url} cancelled before attempt {attempt + 1}")
                break
            if attempt > 0:
                delay = policy.backoff(attempt)
                logger.info(
                    "Retrying {} ({}/{}) in {:.1f}s after: {}",
                    url,
                    attempt,
                    policy.max_retries,
                    delay,
                    last_error,
                )
                self._sleep(delay)
                if cancel is not None and cancel.is_set():
                    logger.info(f"Request to {url} cancelled during backoff")
                    break

            self.rate_limiter.acquire(resource_class)
            try:
                return self._request_once(url, params)
            except (NetworkError, UpstreamError) as exc:
                last_error = exc

        logger.warning(f"Giving up on {url}: {last_error}")
        raise UpstreamUnavailable(url, last_error)

    def close(self) -> None:
        self.session.close()
