"""JSON-over-HTTP reads with a fixed-delay retry budget."""

import asyncio
import logging
import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import requests

from stock_report.config import DEFAULT_SEC_USER_AGENT
from stock_report.errors import UpstreamFetchError

logger = logging.getLogger(__name__)

# Bounded concurrency for blocking HTTP calls
_max_workers = int(os.environ.get("HTTP_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)


def fetch_json(
    url: str,
    headers: dict[str, str] | None = None,
    timeout: float = 15.0,
) -> Any:
    """
    GET a URL and parse the body as JSON.

    The connection is released on every path, including timeouts and
    parse failures.

    Args:
        url: Absolute URL
        headers: Extra headers (merged over User-Agent and Accept defaults)
        timeout: Per-request timeout in seconds

    Returns:
        Parsed JSON body

    Raises:
        UpstreamFetchError: On non-2xx status, timeout, connection error or invalid JSON
    """
    request_headers = {
        "User-Agent": DEFAULT_SEC_USER_AGENT,
        "Accept": "application/json",
    }
    if headers:
        request_headers.update(headers)

    try:
        response = requests.get(url, headers=request_headers, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise UpstreamFetchError(f"Timeout after {timeout}s for {url}", url=url, last_error=e) from e
    except requests.exceptions.RequestException as e:
        raise UpstreamFetchError(f"Request failed for {url}: {e}", url=url, last_error=e) from e

    try:
        if not 200 <= response.status_code < 300:
            raise UpstreamFetchError(f"HTTP {response.status_code} for {url}", url=url)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFetchError(f"Invalid JSON from {url}: {e}", url=url, last_error=e) from e
    finally:
        response.close()


@dataclass
class RetryAttempt:
    """Record of a single attempt for provenance tracking."""

    attempt: int
    ok: bool
    error: str | None = None
    delay_s: float | None = None


@dataclass
class RetryResult:
    """Result of a retried operation with provenance tracking."""

    result: Any
    attempts: int
    total_delay_seconds: float
    retry_trace: list[RetryAttempt] = field(default_factory=list)

    def to_provenance(self) -> dict[str, Any]:
        """Convert to provenance fields for the source manifest."""
        prov: dict[str, Any] = {
            "attempts": self.attempts,
            "total_delay_seconds": self.total_delay_seconds,
        }
        # Only include the trace when a retry actually happened
        if len(self.retry_trace) > 1:
            prov["retry_trace"] = [
                {
                    "attempt": t.attempt,
                    "ok": t.ok,
                    **({"error": t.error} if t.error else {}),
                    **({"delay_s": t.delay_s} if t.delay_s else {}),
                }
                for t in self.retry_trace
            ]
        return prov


async def with_retry(
    operation_name: str,
    fn: Callable[[], Any],
    attempts: int = 2,
    delay: float = 0.5,
) -> RetryResult:
    """
    Run a blocking function in the worker pool, retrying with a fixed delay.

    There is no backoff and no jitter: attempt N+1 starts ``delay`` seconds
    after attempt N failed. Cancellation is never retried.

    Args:
        operation_name: Name for logging (e.g., "fetch_quotes(RKLB)")
        fn: Zero-argument synchronous callable
        attempts: Total attempt budget (at least 1)
        delay: Seconds to wait between attempts

    Returns:
        RetryResult with the value and attempt provenance

    Raises:
        UpstreamFetchError: The last error once the budget is exhausted
            (other exception types are wrapped)
    """
    attempts = max(1, attempts)
    retry_trace: list[RetryAttempt] = []
    last_error: Exception | None = None
    loop = asyncio.get_running_loop()

    for attempt in range(1, attempts + 1):
        try:
            result = await loop.run_in_executor(_executor, fn)
        except Exception as e:
            last_error = e
            retry_trace.append(RetryAttempt(attempt=attempt, ok=False, error=type(e).__name__))
            if attempt < attempts:
                retry_trace[-1].delay_s = delay
                logger.info(
                    f"{operation_name}: Attempt {attempt} failed ({e}). Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
            continue

        retry_trace.append(RetryAttempt(attempt=attempt, ok=True))
        return RetryResult(
            result=result,
            attempts=attempt,
            total_delay_seconds=round(delay * (attempt - 1), 2),
            retry_trace=retry_trace,
        )

    logger.warning(f"{operation_name}: Failed after {attempts} attempts. Last error: {last_error}")
    if isinstance(last_error, UpstreamFetchError):
        last_error.attempts = attempts
        raise last_error
    raise UpstreamFetchError(
        f"{operation_name}: failed after {attempts} attempts: {last_error}",
        last_error=last_error,
        attempts=attempts,
    ) from last_error


def shutdown_executor() -> None:
    """Shut down the worker pool."""
    _executor.shutdown(wait=False)
