"""
Base client for all external data source clients.

Provides: shared caching, shared per-source rate limiting, retry with
exponential backoff, a single retry on HTTP 429, structured logging, and
graceful degradation.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
from pydantic import BaseModel

from trial_navigator.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    RATE_LIMIT_RETRY_DELAY,
)
from trial_navigator.utils.cache import ResponseCache, cache_key
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("trial_navigator.data_sources")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RetryConfig(BaseModel):
    """Retry behaviour for failed requests."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    backoff_factor: float = 2.0
    retryable_status_codes: set[int] = {500, 502, 503, 504}
    rate_limit_delay: float = RATE_LIMIT_RETRY_DELAY  # used when 429 has no Retry-After


class ClientConfig(BaseModel):
    """Per-source transport settings."""

    retry: RetryConfig = RetryConfig()
    timeout_seconds: float = DEFAULT_TIMEOUT
    requests_per_second: int = 5
    cache_ttl_seconds: int = 86400


# ---------------------------------------------------------------------------
# Request context (for structured logging)
# ---------------------------------------------------------------------------


class RequestContext(BaseModel):
    """Metadata attached to every outgoing request for logging."""

    source: str  # e.g. "clinical_trials", "pubmed"
    method: str  # e.g. "search_studies"
    params: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DataSourceError(Exception):
    """Base exception for data source failures."""

    def __init__(self, source: str, message: str, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"[{source}] {message}")


class RateLimitError(DataSourceError):
    """Raised when the upstream keeps answering 429 after the single retry."""

    pass


class ResponseParseError(DataSourceError):
    """Raised when an upstream payload does not have the expected shape."""

    pass


# ---------------------------------------------------------------------------
# Partial result wrapper
# ---------------------------------------------------------------------------


class PartialResult(BaseModel):
    """
    Wraps a response that may be incomplete due to errors or timeouts.

    Callers check `is_complete` and `errors` to decide how much to trust
    the data.
    """

    data: Any
    is_complete: bool = True
    errors: list[str] = []
    cached: bool = False
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Base client
# ---------------------------------------------------------------------------


class BaseClient(ABC):
    """
    Abstract base for the ClinicalTrials.gov, openFDA, PubMed and ICD-10
    clients.

    The rate limiter and cache are injected so that every client in a process
    (and every concurrent pipeline run) shares the same windows and entries.
    Subclasses implement `_source_name` and their own typed methods that call
    `_rest_get()` / `_rest_get_xml()` (raise on failure) or `_request()`
    (degrade to a PartialResult).
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        max_retries: int | None = None,
    ):
        self.config = config or ClientConfig()
        if max_retries is not None:
            self.config = self.config.model_copy(
                update={
                    "retry": self.config.retry.model_copy(
                        update={"max_retries": max_retries}
                    )
                }
            )
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.cache = cache or ResponseCache()
        self.calls_made = 0
        self._session: aiohttp.ClientSession | None = None

    @property
    @abstractmethod
    def _source_name(self) -> str:
        """Identifier for this data source, e.g. 'clinical_trials'."""
        ...

    # -- Session management --------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # -- Core request with retry + cache + rate limiting ---------------------

    def _backoff(self, attempt: int) -> float:
        return min(
            self.config.retry.base_delay * (self.config.retry.backoff_factor**attempt),
            self.config.retry.max_delay,
        )

    async def _fetch(
        self,
        url: str,
        params: dict[str, Any],
        *,
        as_text: bool = False,
        cache_namespace: str | None = None,
        cache_ttl: int | None = None,
        context: RequestContext | None = None,
    ) -> Any:
        """
        GET `url` with caching, rate limiting and retry.

        Parameters
        ----------
        url : str
            Full URL.
        params : dict
            Query string parameters; also the cache key parameters.
        as_text : bool
            Return the body as text (XML endpoints) instead of parsed JSON.
        cache_namespace : str, optional
            Cache key namespace. If None, caching is skipped.
        cache_ttl : int, optional
            Override the client's cache TTL for this request.
        context : RequestContext, optional
            Logging context.

        Raises
        ------
        DataSourceError
            On a non-retryable HTTP error, or once retries are exhausted.
        """
        ctx = context or RequestContext(source=self._source_name, method="unknown")
        ttl = cache_ttl if cache_ttl is not None else self.config.cache_ttl_seconds
        key = None
        if cache_namespace:
            key = cache_key(f"{self._source_name}:{cache_namespace}", params)

        # --- Check cache first ---
        if key is not None:
            cached = self.cache.get(key, ttl)
            if cached is not None:
                logger.debug("Cache hit [%s.%s]", ctx.source, ctx.method)
                return cached

        last_error: DataSourceError | None = None
        rate_limit_retried = False
        start = time.monotonic()
        max_retries = self.config.retry.max_retries

        attempt = 0
        while attempt <= max_retries:
            try:
                await self.rate_limiter.wait_if_needed(
                    self._source_name, self.config.requests_per_second
                )
                session = await self._get_session()

                logger.info(
                    "Request [%s.%s] attempt=%d url=%s",
                    ctx.source,
                    ctx.method,
                    attempt + 1,
                    url,
                )
                self.calls_made += 1
                resp = await session.get(url, params=params)

                # --- 429: wait and retry exactly once ---
                if resp.status == 429:
                    last_error = RateLimitError(
                        ctx.source, "HTTP 429: rate limited", status_code=429
                    )
                    if rate_limit_retried:
                        break
                    rate_limit_retried = True
                    retry_after = resp.headers.get("Retry-After")
                    delay = self.config.retry.rate_limit_delay
                    if retry_after:
                        try:
                            delay = float(retry_after)
                        except ValueError:
                            logger.debug("Non-numeric Retry-After %r", retry_after)
                    logger.warning(
                        "Rate limited [%s.%s], retrying once in %.1fs",
                        ctx.source,
                        ctx.method,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue

                # --- Retryable server errors ---
                if resp.status in self.config.retry.retryable_status_codes:
                    logger.warning(
                        "Retryable %d from %s.%s",
                        resp.status,
                        ctx.source,
                        ctx.method,
                    )
                    last_error = DataSourceError(
                        ctx.source,
                        f"HTTP {resp.status}",
                        status_code=resp.status,
                    )

                elif resp.status >= 400:
                    body = await resp.text()
                    raise DataSourceError(
                        ctx.source,
                        f"HTTP {resp.status}: {body[:500]}",
                        status_code=resp.status,
                    )

                else:
                    # --- Success ---
                    if as_text:
                        data = await resp.text()
                    else:
                        data = await resp.json(content_type=None)
                    elapsed = time.monotonic() - start

                    logger.info(
                        "Success [%s.%s] elapsed=%.2fs cached=False",
                        ctx.source,
                        ctx.method,
                        elapsed,
                    )

                    if key is not None and data is not None:
                        self.cache.set(key, data)
                    return data

            except asyncio.TimeoutError:
                elapsed = time.monotonic() - start
                last_error = DataSourceError(
                    ctx.source, f"Timeout after {elapsed:.1f}s"
                )
                logger.warning(
                    "Timeout [%s.%s] attempt=%d elapsed=%.1fs",
                    ctx.source,
                    ctx.method,
                    attempt + 1,
                    elapsed,
                )

            except aiohttp.ClientError as e:
                last_error = DataSourceError(ctx.source, f"Connection error: {e}")
                logger.warning(
                    "Connection error [%s.%s] attempt=%d: %s",
                    ctx.source,
                    ctx.method,
                    attempt + 1,
                    e,
                )

            # Exponential backoff before next attempt
            if attempt < max_retries:
                await asyncio.sleep(self._backoff(attempt))
            attempt += 1

        elapsed = time.monotonic() - start
        logger.error(
            "All retries exhausted [%s.%s] after %.1fs: %s",
            ctx.source,
            ctx.method,
            elapsed,
            last_error,
        )
        raise last_error or DataSourceError(ctx.source, "Request failed")

    async def _request(
        self,
        url: str,
        params: dict[str, Any],
        *,
        cache_namespace: str | None = None,
        cache_ttl: int | None = None,
        context: RequestContext | None = None,
    ) -> PartialResult:
        """Like `_fetch`, but degrade to an incomplete PartialResult on failure."""
        start = time.monotonic()
        try:
            data = await self._fetch(
                url,
                params,
                cache_namespace=cache_namespace,
                cache_ttl=cache_ttl,
                context=context,
            )
        except DataSourceError as e:
            logger.warning("Degraded result from %s: %s", self._source_name, e)
            return PartialResult(
                data=None,
                is_complete=False,
                errors=[str(e)],
                elapsed_seconds=time.monotonic() - start,
            )
        return PartialResult(data=data, elapsed_seconds=time.monotonic() - start)

    # -- Convenience methods for subclasses ----------------------------------

    async def _rest_get(
        self,
        url: str,
        params: dict[str, Any],
        *,
        cache_namespace: str | None = None,
        cache_ttl: int | None = None,
        context: RequestContext | None = None,
    ) -> Any:
        """REST GET returning parsed JSON; raises DataSourceError on failure."""
        return await self._fetch(
            url,
            params,
            cache_namespace=cache_namespace,
            cache_ttl=cache_ttl,
            context=context,
        )

    async def _rest_get_xml(
        self,
        url: str,
        params: dict[str, Any],
        *,
        cache_namespace: str | None = None,
        cache_ttl: int | None = None,
        context: RequestContext | None = None,
    ) -> str:
        """REST GET returning the raw body text (PubMed efetch)."""
        return await self._fetch(
            url,
            params,
            as_text=True,
            cache_namespace=cache_namespace,
            cache_ttl=cache_ttl,
            context=context,
        )
