"""Resource downloader with bounded exponential backoff and jitter."""
from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator

import httpx

from datasoup.errors import FetchError, TransientFetchError
from datasoup.metrics import FETCH_ATTEMPTS_TOTAL, FETCH_LATENCY_SECONDS

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Errors raised before any byte leaves the process; retrying cannot help.
_NON_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.UnsupportedProtocol,
    httpx.LocalProtocolError,
    httpx.ProxyError,
)
_RETRYABLE_STATUSES = {408, 425, 429}


def backoff_delay(retry_index: int, initial: float, rng: random.Random) -> float:
    """Sleep before retry ``retry_index`` (0-based).

    Base delay doubles each retry; jitter is drawn from ``[0, base / 2)`` so
    concurrent downloads failing together do not retry in lockstep.
    """
    base = initial * (2 ** retry_index)
    return base + rng.random() * (base / 2)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 6
    initial_backoff: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff must be >= 0")

    def delays(self, rng: random.Random) -> Iterator[float]:
        """Sleep durations between attempts (``max_attempts - 1`` of them)."""
        for n in range(self.max_attempts - 1):
            yield backoff_delay(n, self.initial_backoff, rng)


async def fetch(client: httpx.AsyncClient, url: str, user_agent: str) -> bytes:
    """Download ``url`` and return the full body."""
    headers = {"User-Agent": user_agent}
    try:
        async with client.stream("GET", url, headers=headers, follow_redirects=True) as resp:
            status = resp.status_code
            if status >= 500 or status in _RETRYABLE_STATUSES:
                raise TransientFetchError(url, f"HTTP {status}")
            if status >= 400:
                raise FetchError(url, f"HTTP {status}")
            chunks = bytearray()
            async for chunk in resp.aiter_bytes():
                chunks.extend(chunk)
            return bytes(chunks)
    except httpx.InvalidURL as exc:
        raise FetchError(url, f"invalid URL: {exc}") from exc
    except _NON_TRANSIENT_TRANSPORT_ERRORS as exc:
        raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
    except (httpx.TooManyRedirects, httpx.DecodingError) as exc:
        # Redirect loops and corrupt content encodings repeat on every attempt.
        raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
    except httpx.RequestError as exc:
        # Premature close, read errors and timeouts all land here.
        raise TransientFetchError(url, f"{type(exc).__name__}: {exc}") from exc


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    user_agent: str,
    policy: RetryPolicy,
    *,
    rng: random.Random | None = None,
    sleep: Sleep = asyncio.sleep,
    mode: str = "update",
) -> bytes:
    """Fetch with retries on transient failure, up to ``policy.max_attempts``.

    Raises the last :class:`TransientFetchError` once attempts are exhausted;
    a non-transient :class:`FetchError` is raised immediately.
    """
    rng = rng or random.Random()
    delays = policy.delays(rng)
    attempt = 0
    while True:
        attempt += 1
        started = time.monotonic()
        try:
            body = await fetch(client, url, user_agent)
        except TransientFetchError as exc:
            FETCH_ATTEMPTS_TOTAL.labels(mode=mode, outcome="transient").inc()
            delay = next(delays, None)
            if delay is None:
                logger.warning(
                    "Giving up on %s after %d attempt(s): %s", url, attempt, exc.reason,
                    extra={"url": url, "attempts": attempt},
                )
                raise
            logger.info(
                "Retrying %s after backoff %.1fs (attempt %d failed: %s)",
                url, delay, attempt, exc.reason,
                extra={"url": url, "attempt": attempt, "backoff_s": round(delay, 3)},
            )
            await sleep(delay)
            continue
        except FetchError:
            FETCH_ATTEMPTS_TOTAL.labels(mode=mode, outcome="error").inc()
            raise
        FETCH_ATTEMPTS_TOTAL.labels(mode=mode, outcome="ok").inc()
        FETCH_LATENCY_SECONDS.labels(mode=mode).observe(max(time.monotonic() - started, 0.0))
        return body
