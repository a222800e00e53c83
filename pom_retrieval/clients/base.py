"""Blocking JSON-over-HTTP plumbing shared by the embedding service clients."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import requests
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": "pom-retrieval",
    "Accept": "application/json",
}

# Ollama answers 503 while a model is still being loaded into memory.
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

MAX_ATTEMPTS = 3
_DETAIL_LIMIT = 200


class ClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(self, message: str, *, status: Optional[int] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail


class NotFoundError(ClientError):
    """HTTP 404: unknown endpoint, or a model the server has not pulled."""


class RateLimitedError(ClientError):
    """HTTP 429 persisting after every retry."""

    def __init__(self, message: str, *, retry_after: Optional[float] = None, detail: Optional[str] = None) -> None:
        super().__init__(message, status=429, detail=detail)
        self.retry_after = retry_after


class RequestRejectedError(ClientError):
    """Any other 4xx answer."""


class UpstreamError(ClientError):
    """The server failed with a 5xx or could not be reached after retries."""


class RetryableResponseError(Exception):
    """Carries a retryable response through tenacity."""

    def __init__(self, response: requests.Response) -> None:
        super().__init__(f"Retryable response ({response.status_code})")
        self.response = response


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait according to a ``Retry-After`` header (delta or HTTP date)."""

    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


_backoff = wait_exponential(multiplier=0.5, min=0.5, max=8)


def _wait_before_retry(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    if outcome is not None and outcome.failed:
        exc = outcome.exception()
        if isinstance(exc, RetryableResponseError):
            delay = parse_retry_after(exc.response.headers.get("Retry-After"))
            if delay is not None:
                return delay
    return _backoff(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    reason = outcome.exception() if outcome is not None else None
    logger.warning(
        "Retrying embedding request (attempt %d of %d): %s",
        retry_state.attempt_number,
        MAX_ATTEMPTS,
        reason,
    )


def error_detail(response: requests.Response) -> Optional[str]:
    """Extract the server's explanation: the ``error`` field of a JSON body, else the text."""

    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        text = payload["error"]
    else:
        text = response.text or ""
    return " ".join(text.split())[:_DETAIL_LIMIT] or None


def status_error(response: requests.Response) -> ClientError:
    """Map a failed response to the matching :class:`ClientError` subclass."""

    status = response.status_code
    detail = error_detail(response)
    suffix = f": {detail}" if detail else ""

    if status == 404:
        return NotFoundError(f"Not found ({response.url}){suffix}", status=status, detail=detail)
    if status == 429:
        return RateLimitedError(
            f"Rate limit exceeded{suffix}",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            detail=detail,
        )
    if status >= 500:
        return UpstreamError(f"Embedding service error ({status}){suffix}", status=status, detail=detail)
    return RequestRejectedError(f"Request rejected ({status}){suffix}", status=status, detail=detail)


class BaseHttpClient:
    """Send JSON requests relative to ``base_url`` with retries and error mapping."""

    BASE_URL = ""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        if session is None:
            session = requests.Session()
            session.headers.update(DEFAULT_HEADERS)
        self.session = session
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout

    @retry(
        reraise=True,
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=_wait_before_retry,
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout, RetryableResponseError)),
        before_sleep=_log_retry,
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableResponseError(response)
        return response

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._send("POST", url, json=payload)
        except RetryableResponseError as exc:
            response = exc.response
        except requests.RequestException as exc:
            raise UpstreamError(f"Could not reach {url}: {exc}") from exc

        if response.status_code >= 400:
            raise status_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from {url}", status=response.status_code) from exc


__all__ = [
    "BaseHttpClient",
    "ClientError",
    "NotFoundError",
    "RateLimitedError",
    "RequestRejectedError",
    "RetryableResponseError",
    "UpstreamError",
    "error_detail",
    "parse_retry_after",
    "status_error",
]
