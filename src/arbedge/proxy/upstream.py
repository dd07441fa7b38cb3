"""
Path-restricted upstream proxy.

Forwards GET/POST requests under ``/api/proxy`` to the first configured
upstream base, subject to an allow-list of path prefixes and an optional
per-client token bucket. Configuration comes from JSON arrays; with no
allowed paths or no upstream, every request is denied. Upstream payloads are
passed through untransformed; failures surface as typed errors and are never
retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import orjson

from arbedge.config.constants import RATE_LIMIT_HEADER, RATE_REMAINING_HEADER
from arbedge.config.settings import Settings
from arbedge.core.errors import ProxyError
from arbedge.core.types import RateRule
from arbedge.edge.rate_limiter import TokenBucketLimiter
from arbedge.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)

ERROR_NOT_CONFIGURED = "proxy_not_configured_arrays"
ERROR_RATE_LIMITED = "rate_limited"
ERROR_FORBIDDEN_PATH = "forbidden_path"
ERROR_BAD_UPSTREAM_TYPE = "bad_upstream_type"
ERROR_INVALID_JSON = "invalid_json_upstream"
ERROR_UNREACHABLE = "upstream_unreachable"


@dataclass(slots=True, frozen=True)
class ProxyPolicy:
    """Allow-list, upstreams, rate rule and extra headers for the proxy."""

    allow_paths: tuple[str, ...] = ()
    upstreams: tuple[str, ...] = ()
    rate_rule: RateRule | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProxyPolicy":
        return cls.from_arrays(
            allow_paths=settings.proxy_allow_paths,
            upstreams=settings.proxy_upstreams,
            rate_rules=settings.proxy_rate_limits,
            extra_headers=settings.proxy_extra_headers,
        )

    @classmethod
    def from_arrays(
        cls,
        allow_paths: list[Any],
        upstreams: list[Any],
        rate_rules: list[Any] | None = None,
        extra_headers: list[Any] | None = None,
    ) -> "ProxyPolicy":
        headers: dict[str, str] = {}
        for item in extra_headers or []:
            if isinstance(item, dict) and isinstance(item.get("key"), str) and isinstance(item.get("value"), str):
                headers[item["key"]] = item["value"]
        return cls(
            allow_paths=tuple(p for p in allow_paths if isinstance(p, str) and p),
            upstreams=tuple(u for u in upstreams if isinstance(u, str) and u),
            rate_rule=RateRule.from_config(rate_rules or []),
            extra_headers=headers,
        )

    @property
    def configured(self) -> bool:
        return bool(self.allow_paths) and bool(self.upstreams)

    def allows(self, path: str) -> bool:
        """Exact match, or a sub-path of an allowed prefix."""
        return any(path == p or path.startswith(p + "/") for p in self.allow_paths)


@dataclass(slots=True)
class ProxyResponse:
    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


class UpstreamProxy:
    """Forwards allowed requests to the upstream and relays its JSON."""

    def __init__(
        self,
        policy: ProxyPolicy,
        limiter: TokenBucketLimiter,
        timeout: float = 10.0,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._policy = policy
        self._limiter = limiter
        self._timeout = timeout
        self._metrics = metrics
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def forward(
        self,
        method: str,
        path: str,
        query_string: str,
        body: bytes | None,
        client: str,
    ) -> ProxyResponse:
        """
        Proxy one request.

        Args:
            method: GET or POST.
            path: Path below the proxy mount, starting with ``/``.
            query_string: Raw query string (without ``?``).
            body: Raw request body, forwarded on POST.
            client: Rate-limit identity of the caller.

        Returns:
            Upstream status and JSON body.

        Raises:
            ProxyError: On configuration, policy, or upstream failures.
        """
        policy = self._policy
        if not policy.configured:
            raise ProxyError(ERROR_NOT_CONFIGURED, 503)

        rate_headers: dict[str, str] = {}
        if policy.rate_rule is not None:
            if not self._limiter.consume(client, policy.rate_rule):
                logger.info(f"Proxy rate limit hit for {client}")
                self._count(ERROR_RATE_LIMITED)
                raise ProxyError(ERROR_RATE_LIMITED, 429)
            rate_headers = {
                RATE_LIMIT_HEADER: str(policy.rate_rule.tokens),
                RATE_REMAINING_HEADER: str(self._limiter.remaining(client, policy.rate_rule)),
            }

        path = path or "/"
        if not policy.allows(path):
            self._count(ERROR_FORBIDDEN_PATH)
            raise ProxyError(ERROR_FORBIDDEN_PATH, 403)

        target = policy.upstreams[0].rstrip("/") + path
        if query_string:
            target = f"{target}?{query_string}"

        headers = {"Accept": "application/json", **policy.extra_headers}
        data = body if method.upper() == "POST" else None

        try:
            session = await self._get_session()
            async with session.request(
                method.upper(),
                target,
                headers=headers,
                data=data,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                content_type = response.headers.get("Content-Type", "")
                if "application/json" not in content_type:
                    logger.warning(f"Proxy upstream {target} returned {content_type or 'no content type'}")
                    self._count(ERROR_BAD_UPSTREAM_TYPE)
                    raise ProxyError(ERROR_BAD_UPSTREAM_TYPE, 502)
                payload = await response.read()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Proxy upstream {target} unreachable: {e}")
            self._count(ERROR_UNREACHABLE)
            raise ProxyError(ERROR_UNREACHABLE, 502) from e

        try:
            orjson.loads(payload)
        except orjson.JSONDecodeError:
            logger.warning(f"Proxy upstream {target} returned invalid JSON")
            payload = orjson.dumps({"error": ERROR_INVALID_JSON})

        self._count("forwarded")
        return ProxyResponse(status=status, body=payload, headers=rate_headers)

    def _count(self, outcome: str) -> None:
        if self._metrics:
            self._metrics.increment_counter(f"proxy_{outcome}")

    @property
    def policy(self) -> ProxyPolicy:
        return self._policy
