"""
Resilient remote caller.

Every upstream catalog request goes through ``RemoteCaller.get_json``:
  - bounded retries with exponential backoff
    (delay = base_delay * multiplier^(attempt-1))
  - 5xx, 429 and transport errors/timeouts are retried
  - any other 4xx aborts immediately
  - the outcome is an ``Ok(json)`` / ``Err(UPSTREAM_SERVICE_ERROR)`` result,
    never an exception

The caller owns neither the ``httpx.Client`` nor the sleep function; both
are injected so tests can drive it with ``httpx.MockTransport`` and a
no-op sleep.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MULTIPLIER = 2.0
DEFAULT_TIMEOUT_S = 10.0


def is_retryable(exc: BaseException) -> bool:
    """Retry on server errors, throttling and network failures; never on other 4xx."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, httpx.TransportError)


class RemoteCaller:
    def __init__(
        self,
        client: httpx.Client,
        service: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_s: float = DEFAULT_BASE_DELAY_S,
        multiplier: float = DEFAULT_MULTIPLIER,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.service = service
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.multiplier = multiplier
        self.timeout_s = timeout_s
        self._sleep = sleep

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay_s, exp_base=self.multiplier),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Result[Any]:
        attempts = 0

        def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            response = self.client.get(path, params=params, timeout=self.timeout_s)
            response.raise_for_status()
            return response

        try:
            response = self._retrying()(send)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(
                "[%s] GET %s failed with HTTP %d after %d attempt(s)",
                self.service, path, status, attempts,
            )
            return Err(
                ErrorKind.UPSTREAM_SERVICE_ERROR,
                f"{self.service} returned HTTP {status}",
                details={
                    "service": self.service,
                    "endpoint": path,
                    "status": status,
                    "retryable": is_retryable(e),
                    "attempts": attempts,
                },
            )
        except httpx.TransportError as e:
            logger.warning(
                "[%s] GET %s failed after %d attempt(s): %s",
                self.service, path, attempts, e,
            )
            return Err(
                ErrorKind.UPSTREAM_SERVICE_ERROR,
                f"{self.service} unreachable: {type(e).__name__}",
                details={
                    "service": self.service,
                    "endpoint": path,
                    "status": None,
                    "retryable": True,
                    "timeout": isinstance(e, httpx.TimeoutException),
                    "attempts": attempts,
                },
            )

        try:
            return Ok(response.json())
        except ValueError as e:
            logger.error("[%s] GET %s returned non-JSON body: %s", self.service, path, e)
            return Err(
                ErrorKind.UPSTREAM_SERVICE_ERROR,
                f"{self.service} returned an unreadable response",
                details={
                    "service": self.service,
                    "endpoint": path,
                    "status": response.status_code,
                    "retryable": False,
                    "attempts": attempts,
                },
            )
