"""
RESILIENT DOWNLOADER
---------------------------------------------------------------------------

Fetches EDGAR URLs to local files under the SEC fair access policy.

SEC EDGAR Requirements:
---------------------------------------------------------------------------
    - User-Agent header with a name and contact email (no default here)
    - Max 10 requests per second across the whole client, not per worker
    - Throttled clients get 429/503 or, sometimes, a 200 page announcing an
      "Undeclared Automated Tool" / "Request Rate Threshold Exceeded"

Guarantees:
-----------------------------
1. A destination that already exists with non-zero size is never fetched
   again (AlreadyCached, zero network access).
2. Every request goes through one process-wide RateLimiter.
3. Transient failures are retried with delay min(max_backoff, 2 ** attempt).
4. No partial file is ever left at the destination.

Usage:
---------------------------------------------
    from filings.downloader import EdgarDownloader

    async with EdgarDownloader(user_agent="Jane Doe jane@example.com") as dl:
        outcome = await dl.fetch(url, Path("data/master.gz"))
        print(outcome.status)
"""

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from configs.config import settings, EdgarSettings
from filings.exceptions import (
    ConfigurationError,
    FatalNetworkError,
    TransientNetworkError,
)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 503})

# Banners SEC serves (sometimes with status 200) to throttled clients
SOFT_BLOCK_MARKERS = (
    b"undeclared automated tool",
    b"request rate threshold exceeded",
)
SOFT_BLOCK_SCAN_BYTES = 64 * 1024

# Data Models


class DownloadStatus(str, Enum):
    """Outcome of a fetch. Values are the labels used in result tables."""

    SUCCESS = "Download success"
    ALREADY_CACHED = "Already exists"
    TRANSIENT_FAILURE = "Transient failure"
    FATAL_FAILURE = "Download error"


@dataclass(frozen=True)
class DownloadOutcome:
    """
    Result of one fetch call.

    Attributes:
        status: What happened
        bytes_written: Size of the file written by this call (0 if none)
        error: Last error message for failed fetches
    """

    status: DownloadStatus
    bytes_written: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Is the file available locally after this call?"""
        return self.status in (DownloadStatus.SUCCESS, DownloadStatus.ALREADY_CACHED)


# Helpers


def backoff_delay(attempt: int, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based): min(max_delay, 2 ** attempt)."""
    return float(min(max_delay, 2 ** attempt))


def is_soft_block(head: bytes) -> bool:
    """Does the start of a response body look like a throttling banner?"""
    lowered = head.lower()
    return any(marker in lowered for marker in SOFT_BLOCK_MARKERS)


def is_cached(path: Path) -> bool:
    """A cache hit is an existing file with non-zero size."""
    return path.is_file() and path.stat().st_size > 0


def build_user_agent(user_agent: Optional[str]) -> str:
    """
    Validate the caller identification and format the User-Agent header.

    Raises:
        ConfigurationError: when no identification is supplied
    """
    if user_agent is None or not str(user_agent).strip():
        raise ConfigurationError(
            "You must provide a valid user agent in the form of "
            "'Your Name Contact@domain.com'. "
            "Visit https://www.sec.gov/os/accessing-edgar-data for more information"
        )
    return f"Mozilla/5.0 ({str(user_agent).strip()})"


def build_proxy(config: EdgarSettings) -> Optional[httpx.Proxy]:
    """Proxy for the HTTP client, or None when proxying is disabled."""
    if not config.use_proxy:
        return None
    if not (config.proxy_url and config.proxy_user and config.proxy_pass):
        raise ConfigurationError(
            "When use_proxy is enabled, proxy_url, proxy_user and proxy_pass "
            "must all be provided."
        )
    return httpx.Proxy(config.proxy_url, auth=(config.proxy_user, config.proxy_pass))


# Rate Limiter


class RateLimiter:
    """
    Sliding-window request limiter shared by every worker in the process.

    At most `capacity` acquisitions are granted within any interval of
    `window` seconds. The bookkeeping is guarded by a thread lock and the
    waiting happens in asyncio.sleep, so one instance is safe to share
    across tasks, threads and successive event loops.
    """

    def __init__(
        self,
        capacity: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1 or window <= 0:
            raise ConfigurationError("Rate limit capacity and window must be positive")
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._stamps: deque[float] = deque()
        self._mutex = threading.Lock()

    async def acquire(self) -> float:
        """Wait for a free slot; returns the timestamp the slot was granted at."""
        while True:
            with self._mutex:
                now = self._clock()
                while self._stamps and now - self._stamps[0] >= self.window:
                    self._stamps.popleft()
                if len(self._stamps) < self.capacity:
                    self._stamps.append(now)
                    return now
                wait = self.window - (now - self._stamps[0])
            await asyncio.sleep(wait)


_shared_limiter: Optional[RateLimiter] = None
_shared_limiter_lock = threading.Lock()


def shared_rate_limiter(config: Optional[EdgarSettings] = None) -> RateLimiter:
    """
    The process-wide limiter, created on first use.

    The ceiling is server-wide, so later callers share the first limiter
    even if their settings differ.
    """
    global _shared_limiter
    config = config or settings.edgar
    with _shared_limiter_lock:
        if _shared_limiter is None:
            if config.use_proxy:
                capacity, window = config.proxy_rate_limit_capacity, config.proxy_rate_limit_window
            else:
                capacity, window = config.rate_limit_capacity, config.rate_limit_window
            _shared_limiter = RateLimiter(capacity, window)
            logger.debug(f"Shared rate limiter: {capacity} requests / {window}s")
        return _shared_limiter


# Downloader


class EdgarDownloader:
    """
    Throttled, retrying downloader for EDGAR archive URLs.

    Example:
    -----------------------------------
        async with EdgarDownloader(user_agent="Jane Doe jane@example.com") as dl:
            outcome = await dl.fetch(
                "https://www.sec.gov/Archives/edgar/full-index/2006/QTR1/master.gz",
                Path("data/edgar_MasterIndex/2006QTR1master.gz"),
            )
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        config: Optional[EdgarSettings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the downloader.

        Args:
            user_agent: Caller identification. Falls back to
                        settings.edgar.user_agent; required either way.
            config: EDGAR settings (retry, timeout, proxy, rate limit)
            rate_limiter: Limiter to use. Defaults to the process-wide one.
            transport: Custom httpx transport (tests use httpx.MockTransport)

        Raises:
            ConfigurationError: missing user agent or proxy credentials
        """
        self.config = config or settings.edgar
        self.user_agent = build_user_agent(user_agent or self.config.user_agent)
        self.proxy = build_proxy(self.config)
        self.rate_limiter = rate_limiter or shared_rate_limiter(self.config)
        self._transport = transport

        # HTTP client (created in __aenter__)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry - create HTTP client."""
        options = {
            "headers": {"User-Agent": self.user_agent, "Connection": "keep-alive"},
            "timeout": httpx.Timeout(self.config.request_timeout),
            "follow_redirects": True,
        }
        if self._transport is not None:
            options["transport"] = self._transport
        if self.proxy is not None:
            options["proxy"] = self.proxy
        self._client = httpx.AsyncClient(**options)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError(
                "HTTP client not initialized. Use 'async with EdgarDownloader() as dl:'"
            )
        return self._client

    def _wait(self, retry_state) -> float:
        return backoff_delay(retry_state.attempt_number, self.config.max_backoff)

    def _log_retry(self, retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.config.max_attempts} failed: "
            f"{error}. Retrying in {retry_state.next_action.sleep:.1f}s"
        )

    async def fetch(
        self,
        url: str,
        destination: Path,
        headers: Optional[dict] = None,
    ) -> DownloadOutcome:
        """
        Download `url` to `destination`.

        Args:
            url: Absolute URL
            destination: Target file; its parent directories are created
            headers: Extra request headers (the User-Agent is always sent)

        Returns:
            DownloadOutcome. Failures are reported, never raised.
        """
        destination = Path(destination)

        if is_cached(destination):
            logger.debug(f"Already cached: {destination}")
            return DownloadOutcome(DownloadStatus.ALREADY_CACHED)

        destination.parent.mkdir(parents=True, exist_ok=True)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=self._wait,
                retry=retry_if_exception_type(TransientNetworkError),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    written = await self._attempt(url, destination, headers)
        except TransientNetworkError as e:
            logger.error(
                f"Giving up on {url} after {self.config.max_attempts} attempts: {e}"
            )
            return DownloadOutcome(DownloadStatus.FATAL_FAILURE, error=str(e))
        except FatalNetworkError as e:
            logger.error(f"Failed to download {url}: {e}")
            return DownloadOutcome(DownloadStatus.FATAL_FAILURE, error=str(e))

        logger.debug(f"Downloaded {url} ({written:,} bytes)")
        return DownloadOutcome(DownloadStatus.SUCCESS, bytes_written=written)

    async def _attempt(
        self,
        url: str,
        destination: Path,
        headers: Optional[dict],
    ) -> int:
        """
        One throttled request, streamed to a .part sibling then renamed.

        Raises:
            TransientNetworkError: retry-eligible failure
            FatalNetworkError: anything else
        """
        partial = destination.with_name(destination.name + ".part")
        completed = False

        await self.rate_limiter.acquire()
        logger.debug(f"Fetching: {url}")

        try:
            async with self.client.stream("GET", url, headers=headers) as response:
                if response.status_code in TRANSIENT_STATUS_CODES:
                    raise TransientNetworkError(
                        f"HTTP {response.status_code} for {url}",
                        status_code=response.status_code,
                    )
                if response.status_code != 200:
                    raise FatalNetworkError(
                        f"HTTP {response.status_code} for {url}",
                        status_code=response.status_code,
                    )

                written = 0
                head = b""
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        if len(head) < SOFT_BLOCK_SCAN_BYTES:
                            head += chunk[: SOFT_BLOCK_SCAN_BYTES - len(head)]
                        f.write(chunk)
                        written += len(chunk)

            if is_soft_block(head):
                raise TransientNetworkError(
                    f"Soft block page returned for {url}", status_code=200
                )
            if written == 0:
                raise FatalNetworkError(f"Empty response body for {url}", status_code=200)

            partial.replace(destination)
            completed = True
            return written

        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"Timeout fetching {url}: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Transport error fetching {url}: {e}") from e
        except httpx.HTTPError as e:
            raise FatalNetworkError(f"HTTP error fetching {url}: {e}") from e
        finally:
            if not completed:
                partial.unlink(missing_ok=True)
