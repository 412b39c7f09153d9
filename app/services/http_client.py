"""
Shared HTTP client with timeouts and optional retries for external APIs.
Used for Shopify, Mercury and the exchange-rate provider.
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 2
RETRY_BACKOFF_BASE = 1.0  # seconds


class UpstreamError(Exception):
    """An external API (Shopify, Mercury, rate provider) failed or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def _sleep_backoff(attempt: int) -> None:
    if attempt <= 0:
        return
    delay = RETRY_BACKOFF_BASE * (2 ** (attempt - 1))
    await asyncio.sleep(min(delay, 10.0))


async def request_with_retry(
    method: str,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    retry_on: tuple[int, ...] = (502, 503, 504),
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Perform HTTP request with timeout and optional retries for server/network errors.
    Retries only on retry_on status codes and on connection errors.
    """
    last_exc: Optional[Exception] = None
    resp: Optional[httpx.Response] = None
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                resp = await client.request(method, url, **kwargs)
            if attempt < max_retries and resp.status_code in retry_on:
                await _sleep_backoff(attempt + 1)
                continue
            return resp
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
            last_exc = e
            if attempt < max_retries:
                logger.warning("HTTP %s %s attempt %s failed: %s", method, url, attempt + 1, e)
                await _sleep_backoff(attempt + 1)
            else:
                raise
    if last_exc:
        raise last_exc
    return resp  # type: ignore


async def get_with_retry(
    url: str,
    *,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """GET with retries on 5xx and connection errors."""
    return await request_with_retry(
        "GET", url, params=params, headers=headers, timeout=timeout, max_retries=max_retries, transport=transport
    )


async def get_json(
    url: str,
    *,
    service: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[Any, httpx.Response]:
    """GET and decode JSON. Network failures and non-2xx statuses raise UpstreamError."""
    try:
        resp = await get_with_retry(
            url, params=params, headers=headers, timeout=timeout, max_retries=max_retries, transport=transport
        )
    except httpx.HTTPError as e:
        raise UpstreamError(f"{service} request failed: {e}") from e
    if resp.status_code >= 400:
        body = (resp.text or "")[:300]
        raise UpstreamError(f"{service} request failed: {resp.status_code} {body}", status_code=resp.status_code)
    try:
        return resp.json(), resp
    except ValueError as e:
        raise UpstreamError(f"{service} returned invalid JSON") from e


async def post_no_retry(
    url: str,
    *,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """POST with no retries (non-idempotent). Uses single attempt with timeout."""
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        return await client.post(url, json=json or {}, headers=headers or {})


async def post_json(
    url: str,
    *,
    service: str,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """POST once and decode JSON. Network failures and non-2xx statuses raise UpstreamError."""
    try:
        resp = await post_no_retry(url, json=json, headers=headers, timeout=timeout, transport=transport)
    except httpx.HTTPError as e:
        raise UpstreamError(f"{service} request failed: {e}") from e
    if resp.status_code >= 400:
        body = (resp.text or "")[:300]
        raise UpstreamError(f"{service} request failed: {resp.status_code} {body}", status_code=resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamError(f"{service} returned invalid JSON") from e
