"""Base collector and shared HTTP client management.

Each rate source has one collector. A collector owns an ordered list of
endpoints, each paired with a parser that extracts a percentage from the JSON
body. Endpoints are tried in order with retries; the first one that parses
wins. When every endpoint fails the source's static fallback rate is returned,
so ``collect()`` always yields exactly one observation.

A shared httpx.AsyncClient is used across all collectors to avoid connection
overhead.

.. code-block:: python

    def parse_rate(data):
        return first_numeric_field(data, ("rate", "apy"))

    @register_collector
    class MyCollector(SourceCollector):
        source_id = RateSourceId.TESR
        ENDPOINTS = [Endpoint("https://api.example.com/rate", parse_rate)]
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from ..RateSource import RateObservation, RateSourceId, percent_to_bps
from ..RetryExecutor import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

# Parser contract: JSON body in, percentage out (None if not present).
RateParser = Callable[[Any], "float | None"]


class CollectorError(Exception):
    """Base exception for collector errors."""

    pass


class CollectorHTTPError(CollectorError):
    """Raised when an HTTP request returns a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class CollectorParseError(CollectorError):
    """Raised when a response does not contain a usable rate."""

    pass


def to_finite_float(value: Any) -> float | None:
    """Convert a JSON value to a finite float.

    :param value: Number or numeric string.
    :returns: The float, or None if missing, non-numeric, NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def first_numeric_field(data: Any, fields: Iterable[str]) -> float | None:
    """Return the first finite numeric value among known field names.

    A top-level ``data`` object is searched as well, since several APIs wrap
    their payload in it.

    :param data: Decoded JSON body.
    :param fields: Field names to try, in order.
    :returns: The first finite value found, or None.
    """
    candidates = [data]
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        candidates.append(data["data"])

    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        for name in fields:
            value = to_finite_float(candidate.get(name))
            if value is not None:
                return value
    return None


@dataclass(frozen=True)
class Endpoint:
    """A candidate URL and the parser for its response.

    :ivar url: Endpoint URL.
    :ivar parser: Function extracting a percentage from the JSON body.
    :ivar params: Optional query parameters.
    """

    url: str
    parser: RateParser
    params: dict | None = None

    @property
    def host(self) -> str:
        """Hostname used as the observation origin."""
        return httpx.URL(self.url).host


class SourceCollector:
    """Collects one rate observation for a single source.

    Subclasses set ``source_id`` and ``ENDPOINTS``.

    :cvar source_id: Source this collector produces observations for.
    :cvar ENDPOINTS: Default ordered endpoint list (primary first).
    :ivar endpoints: Endpoints used by this instance.
    :ivar timeout: Per-request timeout in seconds.
    :ivar retry_policy: Retry parameters per endpoint.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    source_id: ClassVar[RateSourceId]
    ENDPOINTS: ClassVar[list[Endpoint]] = []

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_MAX_RETRY_DELAY = 10.0

    def __init__(
        self,
        endpoints: list[Endpoint] | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the collector.

        :param endpoints: Override the default endpoint list.
        :param timeout: Request timeout in seconds (default: 10).
        :param retry_policy: Override the per-endpoint retry policy
            (default: 3 attempts, 1s base delay, doubling, 10s cap).
        :param client: Optional HTTP client; the shared client is used if None.
        """
        self.endpoints = list(self.ENDPOINTS if endpoints is None else endpoints)
        self.timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=3,
            base_delay=1.0,
            max_delay=self.DEFAULT_MAX_RETRY_DELAY,
            multiplier=2.0,
        )
        self._client = client

    @property
    def name(self) -> str:
        """Display name of the collected source."""
        return self.source_id.display_name

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        # Stored on the base class so every collector subclass shares it
        if (
            SourceCollector._shared_client is None
            or SourceCollector._shared_client.is_closed
        ):
            SourceCollector._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return SourceCollector._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = SourceCollector._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        SourceCollector._shared_client = None

    async def collect(self) -> RateObservation:
        """Collect the current rate, falling back to the static value.

        :returns: Live observation from the first endpoint that answers, or
            the source's fallback observation.
        """
        for endpoint in self.endpoints:
            try:
                percent = await with_retry(
                    lambda: self._fetch_endpoint(endpoint),
                    self.retry_policy,
                )
            except CollectorError as e:
                logger.warning(f"[{self.name}] {endpoint.host} failed: {e}")
                continue

            observation = RateObservation(
                source_id=self.source_id,
                rate_bps=percent_to_bps(percent),
                origin=endpoint.host,
                is_live=True,
            )
            logger.info(
                f"[{self.name}] {observation.rate_bps / 100:.2f}% from {endpoint.host}"
            )
            return observation

        fallback = RateObservation.fallback(self.source_id)
        logger.warning(
            f"[{self.name}] All endpoints failed, using fallback "
            f"{fallback.rate_bps / 100:.2f}%"
        )
        return fallback

    async def _fetch_endpoint(self, endpoint: Endpoint) -> float:
        """Fetch and parse one endpoint.

        :param endpoint: Endpoint to query.
        :returns: Parsed percentage.
        :raises CollectorError: On network, HTTP or parse failure.
        """
        response = await self._get(endpoint.url, params=endpoint.params)
        try:
            percent = endpoint.parser(response.json())
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise CollectorParseError(f"Failed to parse response: {e}") from e

        percent = to_finite_float(percent)
        if percent is None:
            raise CollectorParseError("No finite rate in response")
        return percent

    async def _get(self, url: str, *, params: dict | None = None) -> httpx.Response:
        """Make an HTTP GET request.

        :param url: Request URL.
        :param params: Optional query parameters.
        :returns: httpx.Response object.
        :raises CollectorHTTPError: On non-2xx response.
        :raises CollectorError: On network/timeout errors.
        """
        client = self._client or self.get_shared_client()
        try:
            response = await client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise CollectorError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise CollectorError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise CollectorHTTPError(response.status_code, response.text[:200])
        return response


# Registry of available collectors (populated by subclass imports)
COLLECTOR_REGISTRY: dict[RateSourceId, type[SourceCollector]] = {}


def register_collector(cls: type[SourceCollector]) -> type[SourceCollector]:
    """Decorator to register a collector class in the global registry.

    :param cls: Collector class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the collector has no source id or endpoints.
    """
    if getattr(cls, "source_id", None) is None:
        raise ValueError(f"Collector {cls.__name__} must define 'source_id'")
    if not cls.ENDPOINTS:
        raise ValueError(f"Collector {cls.__name__} must define at least one endpoint")
    COLLECTOR_REGISTRY[cls.source_id] = cls
    return cls


def get_collector(source_id: RateSourceId, **kwargs: Any) -> SourceCollector:
    """Get a collector instance by source id.

    :param source_id: Source to collect.
    :param kwargs: Passed to the collector constructor.
    :returns: Collector instance.
    :raises ValueError: If no collector is registered for the source.
    """
    if source_id not in COLLECTOR_REGISTRY:
        raise ValueError(f"No collector registered for {source_id.name}")
    return COLLECTOR_REGISTRY[source_id](**kwargs)


def get_all_collectors(**kwargs: Any) -> list[SourceCollector]:
    """Instantiate one collector per registered source, in source id order.

    :param kwargs: Passed to every collector constructor.
    :returns: List of collector instances.
    """
    return [get_collector(sid, **kwargs) for sid in sorted(COLLECTOR_REGISTRY)]
