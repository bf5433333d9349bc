"""Shared httpx plumbing for the upstream clients.

- :func:`build_async_client` creates the process-wide ``httpx.AsyncClient``
  used by the API (one connection pool for both upstreams).
- :func:`post_once` issues a single POST under an overall deadline and turns
  transport failures into :class:`UpstreamError`.  There are no retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from fluxdrop import __version__
from fluxdrop.core.errors import UpstreamError

logger = logging.getLogger(__name__)

# Status codes reported when no upstream response exists.
TIMEOUT_STATUS = 504
UNREACHABLE_STATUS = 502


def build_async_client(timeout_seconds: float = 60.0) -> httpx.AsyncClient:
    """Create the shared async HTTP client.

    Args:
        timeout_seconds: Default timeout for calls that do not pass their own.

    Returns:
        A configured ``httpx.AsyncClient``.  The caller owns closing it.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        headers={"User-Agent": f"fluxdrop/{__version__}"},
    )


async def post_once(
    http: httpx.AsyncClient,
    url: str,
    *,
    service: str,
    timeout_seconds: float,
    error_prefix: str = "API error",
    **kwargs: Any,
) -> httpx.Response:
    """POST to an upstream exactly once.

    Args:
        http: Client to send through.
        url: Target URL.
        service: Upstream name used in errors and log lines.
        timeout_seconds: Deadline for the whole call, from connect to the
            last byte of the response.  httpx applies the same value to
            each phase as well.
        error_prefix: Message prefix for the raised :class:`UpstreamError`.
        **kwargs: Forwarded to ``httpx.AsyncClient.post`` (``json``,
            ``data``, ``headers``).

    Returns:
        The upstream response, whatever its status.

    Raises:
        UpstreamError: 504 on timeout, 502 when the upstream is unreachable.
    """
    try:
        return await asyncio.wait_for(
            http.post(url, timeout=httpx.Timeout(timeout_seconds), **kwargs),
            timeout=timeout_seconds,
        )
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        logger.error(f"{service} request timed out after {timeout_seconds}s")
        raise UpstreamError(
            service,
            TIMEOUT_STATUS,
            f"request timed out after {timeout_seconds}s",
            prefix=error_prefix,
        ) from e
    except httpx.TransportError as e:
        logger.error(f"{service} request failed: {e}")
        raise UpstreamError(service, UNREACHABLE_STATUS, str(e) or type(e).__name__, prefix=error_prefix) from e
