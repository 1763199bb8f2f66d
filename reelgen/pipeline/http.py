"""
Shared HTTP plumbing for the generator adapters.

- One httpx.AsyncClient per orchestrator, every call bounded by a timeout.
- Idempotent reads (status polls, fetches) retry with exponential backoff
  on 429 / 5xx gateway errors and transport failures.
- Everything that still fails surfaces as UpstreamError / PipelineTimeout.
"""

import asyncio
import random
import logging
from typing import Optional

import httpx

from .errors import UpstreamError, PipelineTimeout

logger = logging.getLogger(__name__)

# ── Retry configuration ──────────────────────────────────────────────────────
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
MAX_RETRY_AFTER = 30  # seconds


def create_client(timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Build the shared async client. `transport` is injectable for tests."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    )


def _backoff_delay(attempt: int, base_delay: float, response: Optional[httpx.Response] = None) -> float:
    if response is not None:
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.isdigit():
            return min(int(retry_after), MAX_RETRY_AFTER)
    return base_delay * (2 ** attempt) + random.uniform(0, base_delay)


def _describe(response: httpx.Response) -> str:
    message = f"HTTP {response.status_code} from {response.request.url}"
    if response.content:
        message += f": {response.text[:300]}"
    return message


async def request_with_backoff(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    stage: str,
    retries: int = 0,
    base_delay: float = 1.0,
    **kwargs,
) -> httpx.Response:
    """
    Issue a request and return the successful (2xx) response.

    With retries=0 this is a single attempt, which is what non-idempotent
    calls (job submission, text generation, synthesis) use.
    """
    for attempt in range(retries + 1):
        last = attempt == retries
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            if last:
                raise PipelineTimeout(f"{method} {url} timed out: {e}", stage) from e
            delay = _backoff_delay(attempt, base_delay)
            logger.warning(
                f"{stage}: timeout on attempt {attempt + 1}/{retries + 1} "
                f"— retrying in {delay:.1f}s (url={url})"
            )
            await asyncio.sleep(delay)
            continue
        except httpx.TransportError as e:
            if last:
                raise UpstreamError(f"{method} {url} failed: {e}", stage) from e
            delay = _backoff_delay(attempt, base_delay)
            logger.warning(
                f"{stage}: request error on attempt {attempt + 1}/{retries + 1}: {e} "
                f"— retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
            continue

        if response.is_success:
            return response

        if response.status_code in RETRYABLE_STATUS_CODES and not last:
            delay = _backoff_delay(attempt, base_delay, response)
            logger.warning(
                f"{stage}: {response.status_code} on attempt {attempt + 1}/{retries + 1} "
                f"— retrying in {delay:.1f}s (url={url})"
            )
            await asyncio.sleep(delay)
            continue

        raise UpstreamError(_describe(response), stage, status_code=response.status_code)

    # range() always yields at least once and every path above returns or raises
    raise UpstreamError(f"{method} {url} failed after {retries + 1} attempts", stage)


async def download_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    stage: str,
    timeout: Optional[float] = None,
    retries: int = 0,
    base_delay: float = 1.0,
) -> bytes:
    """Stream a remote object into memory. Any non-2xx answer is fatal."""
    request_timeout = httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT

    for attempt in range(retries + 1):
        last = attempt == retries
        try:
            async with client.stream("GET", url, timeout=request_timeout) as response:
                if response.is_success:
                    buffer = bytearray()
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                    logger.info(f"{stage}: fetched {len(buffer)} bytes from {url}")
                    return bytes(buffer)

                if response.status_code in RETRYABLE_STATUS_CODES and not last:
                    delay = _backoff_delay(attempt, base_delay, response)
                    logger.warning(
                        f"{stage}: {response.status_code} fetching {url} "
                        f"— retrying in {delay:.1f}s"
                    )
                else:
                    raise UpstreamError(
                        f"HTTP {response.status_code} fetching {url}",
                        stage,
                        status_code=response.status_code,
                    )
        except httpx.TimeoutException as e:
            if last:
                raise PipelineTimeout(f"fetching {url} timed out: {e}", stage) from e
            delay = _backoff_delay(attempt, base_delay)
        except httpx.TransportError as e:
            if last:
                raise UpstreamError(f"fetching {url} failed: {e}", stage) from e
            delay = _backoff_delay(attempt, base_delay)

        await asyncio.sleep(delay)

    raise UpstreamError(f"fetching {url} failed after {retries + 1} attempts", stage)


def json_body(response: httpx.Response, stage: str) -> dict:
    """Decode a JSON object body or fail as an upstream error."""
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"invalid JSON from {response.request.url}: {e}", stage) from e
    if not isinstance(data, dict):
        raise UpstreamError(f"unexpected response shape from {response.request.url}: {data!r:.200}", stage)
    return data
