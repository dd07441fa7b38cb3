"""
Async client for the opportunity/safety computation engine.

Optimized for the edge request path with:
- Connection pooling and keep-alive
- Fast JSON parsing with orjson
- Per-request timeouts with exponential-backoff retries
- A circuit breaker that short-circuits calls to a failing engine
"""

import asyncio
import logging
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError as PydanticValidationError

from arbedge.config.constants import (
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_RESET_TIMEOUT_MS,
    DEFAULT_ENGINE_RETRIES,
    DEFAULT_ENGINE_RETRY_DELAY,
    DEFAULT_ENGINE_TIMEOUT,
    ENDPOINT_HEALTH,
    ENDPOINT_OPPORTUNITIES,
    ENDPOINT_TOKEN_HOLDERS,
    ENDPOINT_TOKEN_LIQUIDITY,
    ENDPOINT_TOKEN_RUGPULL,
    ENDPOINT_TOKEN_VERIFICATION,
    ENDPOINT_TOKEN_VOLUME,
    HEALTH_CHECK_TIMEOUT,
    USER_AGENT,
)
from arbedge.core.errors import CircuitOpenError, UpstreamError
from arbedge.core.models import CheckResult, Opportunity, RugpullResult
from arbedge.engine.models import OpportunitiesResponse, parse_check_map, parse_rugpull_map
from arbedge.utils.time import Clock, SystemClock


logger = logging.getLogger(__name__)


class EngineAPIError(UpstreamError):
    """Engine answered with an error status."""

    def __init__(self, message: str, http_status: int) -> None:
        super().__init__(message, details={"status": http_status})
        self.http_status = http_status


class CircuitBreaker:
    """
    Closed / open / half-open breaker around engine calls.

    Opens after ``threshold`` consecutive failures; after ``reset_timeout_ms``
    a single trial call is let through (half-open) and closes the breaker on
    success.
    """

    def __init__(
        self,
        threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        reset_timeout_ms: int = CIRCUIT_RESET_TIMEOUT_MS,
        clock: Clock | None = None,
    ) -> None:
        self._threshold = threshold
        self._reset_timeout_ms = reset_timeout_ms
        self._clock = clock or SystemClock()
        self._failures = 0
        self._last_failure_ms = 0
        self._state = "closed"

    def before_call(self) -> None:
        """Raise if calls are currently short-circuited."""
        if self._state != "open":
            return
        if self._clock.now_ms() - self._last_failure_ms > self._reset_timeout_ms:
            self._state = "half-open"
            return
        raise CircuitOpenError("Engine circuit breaker is open")

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_ms = self._clock.now_ms()
        if self._state == "half-open" or self._failures >= self._threshold:
            if self._state != "open":
                logger.warning(f"Engine circuit breaker opened after {self._failures} failures")
            self._state = "open"

    @property
    def state(self) -> str:
        return self._state

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self._state,
            "failures": self._failures,
            "last_failure_ms": self._last_failure_ms,
        }


class EngineClient:
    """
    Async engine REST client.

    Features:
    - Single session with connection pooling
    - orjson for fast JSON parsing
    - Retries with exponential backoff
    - Circuit breaker shared by all calls
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_ENGINE_TIMEOUT,
        retries: int = DEFAULT_ENGINE_RETRIES,
        retry_delay: float = DEFAULT_ENGINE_RETRY_DELAY,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        """
        Initialize the engine client.

        Args:
            base_url: Engine base URL, without trailing slash.
            timeout: Total timeout per attempt in seconds.
            retries: Retries after the first failed attempt.
            retry_delay: Base backoff delay in seconds.
            breaker: Optional circuit breaker instance.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retries = retries
        self._retry_delay = retry_delay
        self._breaker = breaker or CircuitBreaker()
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=50,
                keepalive_timeout=30,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Make an engine request through the breaker, with retries.

        Args:
            method: HTTP method (GET, POST).
            endpoint: Engine endpoint path.
            params: Query parameters.
            payload: JSON body.
            timeout: Override of the per-attempt timeout.

        Returns:
            Parsed JSON response.

        Raises:
            CircuitOpenError: While the breaker is open.
            UpstreamError: After all attempts failed.
        """
        self._breaker.before_call()

        url = f"{self._base_url}{endpoint}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout)
        last_error: Exception | None = None

        for attempt in range(self._retries + 1):
            try:
                session = await self._get_session()
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    timeout=client_timeout,
                ) as response:
                    data = await self._handle_response(response)
                self._breaker.record_success()
                return data
            except (aiohttp.ClientError, asyncio.TimeoutError, UpstreamError) as e:
                last_error = e
                if attempt < self._retries:
                    delay = self._retry_delay * (2**attempt)
                    logger.debug(f"Engine {method} {endpoint} failed ({e}), retrying in {delay:.2f}s")
                    await asyncio.sleep(delay)

        self._breaker.record_failure()
        if isinstance(last_error, UpstreamError):
            raise last_error
        raise UpstreamError(f"Engine request failed: {last_error}") from last_error

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        """Parse and validate response."""
        if response.status >= 400:
            raise EngineAPIError(f"Engine error HTTP {response.status}", response.status)

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise UpstreamError(
                f"Unexpected engine content type: {content_type or 'none'}",
                code="BAD_UPSTREAM_TYPE",
            )

        body = await response.read()
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise UpstreamError(f"Invalid JSON from engine: {e}", code="INVALID_UPSTREAM_JSON") from e

    # =========================================================================
    # Opportunities
    # =========================================================================

    async def fetch_opportunities(self, params: dict[str, str] | None = None) -> list[Opportunity]:
        """
        Fetch live opportunities.

        Args:
            params: Query parameters forwarded to the engine.

        Returns:
            Validated opportunities; malformed records are dropped.
        """
        data = await self._request("GET", ENDPOINT_OPPORTUNITIES, params=params)
        if isinstance(data, list):
            data = {"opportunities": data}
        try:
            return OpportunitiesResponse.model_validate(data).parsed()
        except PydanticValidationError as e:
            raise UpstreamError("Unexpected engine opportunities payload", code="INVALID_UPSTREAM_JSON") from e

    # =========================================================================
    # Token Checks
    # =========================================================================

    async def _check(
        self,
        endpoint: str,
        addresses: list[str],
        chain_id: int | None,
        timeout: float,
    ) -> Any:
        payload: dict[str, Any] = {"addresses": addresses}
        if chain_id is not None:
            payload["chainId"] = chain_id
        return await self._request("POST", endpoint, payload=payload, timeout=timeout)

    async def check_liquidity(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return parse_check_map(await self._check(ENDPOINT_TOKEN_LIQUIDITY, addresses, chain_id, 8.0))

    async def check_verification(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return parse_check_map(await self._check(ENDPOINT_TOKEN_VERIFICATION, addresses, chain_id, 5.0))

    async def check_holders(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return parse_check_map(await self._check(ENDPOINT_TOKEN_HOLDERS, addresses, chain_id, 8.0))

    async def check_volume(self, addresses: list[str], chain_id: int | None = None) -> dict[str, CheckResult]:
        return parse_check_map(await self._check(ENDPOINT_TOKEN_VOLUME, addresses, chain_id, 8.0))

    async def check_rugpull(self, addresses: list[str], chain_id: int | None = None) -> dict[str, RugpullResult]:
        return parse_rugpull_map(await self._check(ENDPOINT_TOKEN_RUGPULL, addresses, chain_id, 10.0))

    # =========================================================================
    # Utility Methods
    # =========================================================================

    async def health_check(self) -> bool:
        """Check the engine's health endpoint; never raises."""
        try:
            session = await self._get_session()
            async with session.get(
                f"{self._base_url}{ENDPOINT_HEALTH}",
                timeout=aiohttp.ClientTimeout(total=HEALTH_CHECK_TIMEOUT),
            ) as response:
                return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Engine health check failed: {e}")
            return False

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def __aenter__(self) -> "EngineClient":
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
