"""
Integration tests for the engine client.

Runs the client against a local aiohttp server standing in for the engine.
"""

from collections.abc import AsyncIterator

import pytest
from aiohttp import test_utils, web

from arbedge.core.errors import CircuitOpenError, UpstreamError
from arbedge.engine.client import CircuitBreaker, EngineAPIError, EngineClient
from tests.mocks import ManualClock
from tests.mocks.data import make_opportunity


class FakeEngineServer:
    """Scriptable engine HTTP endpoints."""

    def __init__(self) -> None:
        self.hits: dict[str, int] = {}
        self.bodies: list[dict[str, object]] = []
        self.last_query: dict[str, str] = {}
        self.opportunities_status = 200
        self.opportunities_payload: object = {
            "opportunities": [
                make_opportunity("live-1").model_dump(by_alias=True),
                {"id": "broken"},
            ]
        }

    def _hit(self, name: str) -> None:
        self.hits[name] = self.hits.get(name, 0) + 1

    async def opportunities(self, request: web.Request) -> web.Response:
        self._hit("opportunities")
        self.last_query = dict(request.query)
        return web.json_response(self.opportunities_payload, status=self.opportunities_status)

    async def liquidity(self, request: web.Request) -> web.Response:
        self._hit("liquidity")
        self.bodies.append(await request.json())
        return web.json_response({"0xa": {"passed": True, "score": 90, "usd": 12000}})

    async def text(self, request: web.Request) -> web.Response:
        self._hit("text")
        return web.Response(text="<html>maintenance</html>", content_type="text/html")

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/opportunities", self.opportunities)
        app.router.add_post("/api/tokens/liquidity", self.liquidity)
        app.router.add_post("/api/tokens/verification", self.text)
        app.router.add_get("/health", self.health)
        return app


@pytest.fixture
def fake_engine() -> FakeEngineServer:
    return FakeEngineServer()


@pytest.fixture
async def server(fake_engine: FakeEngineServer) -> AsyncIterator[test_utils.TestServer]:
    server = test_utils.TestServer(fake_engine.app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
async def client(server: test_utils.TestServer, clock: ManualClock) -> AsyncIterator[EngineClient]:
    breaker = CircuitBreaker(threshold=2, reset_timeout_ms=30_000, clock=clock)
    async with EngineClient(
        base_url=str(server.make_url("/")),
        timeout=2.0,
        retries=1,
        retry_delay=0.0,
        breaker=breaker,
    ) as client:
        yield client


class TestEngineClient:
    """Tests for EngineClient against a live HTTP server."""

    async def test_fetch_opportunities_drops_malformed(
        self, client: EngineClient, fake_engine: FakeEngineServer
    ) -> None:
        opportunities = await client.fetch_opportunities({"chainId": "1"})

        assert [o.id for o in opportunities] == ["live-1"]
        assert fake_engine.last_query == {"chainId": "1"}

    async def test_fetch_opportunities_accepts_bare_list(
        self, client: EngineClient, fake_engine: FakeEngineServer
    ) -> None:
        fake_engine.opportunities_payload = [make_opportunity("x").model_dump(by_alias=True)]

        opportunities = await client.fetch_opportunities()

        assert [o.id for o in opportunities] == ["x"]

    async def test_non_collection_payload_is_upstream_error(
        self, client: EngineClient, fake_engine: FakeEngineServer
    ) -> None:
        fake_engine.opportunities_payload = "maintenance"

        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_opportunities()

        assert exc_info.value.code == "INVALID_UPSTREAM_JSON"

    async def test_error_status_retried_then_raised(
        self, client: EngineClient, fake_engine: FakeEngineServer
    ) -> None:
        fake_engine.opportunities_status = 500

        with pytest.raises(EngineAPIError) as exc_info:
            await client.fetch_opportunities()

        assert exc_info.value.http_status == 500
        assert fake_engine.hits["opportunities"] == 2

    async def test_breaker_opens_after_failed_requests(
        self, client: EngineClient, fake_engine: FakeEngineServer
    ) -> None:
        fake_engine.opportunities_status = 503
        for _ in range(2):
            with pytest.raises(EngineAPIError):
                await client.fetch_opportunities()

        with pytest.raises(CircuitOpenError):
            await client.fetch_opportunities()

        assert fake_engine.hits["opportunities"] == 4
        assert client.breaker.state == "open"

    async def test_non_json_response(self, client: EngineClient) -> None:
        with pytest.raises(UpstreamError) as exc_info:
            await client.check_verification(["0xa"])

        assert exc_info.value.code == "BAD_UPSTREAM_TYPE"

    async def test_check_posts_addresses(self, client: EngineClient, fake_engine: FakeEngineServer) -> None:
        results = await client.check_liquidity(["0xa"], chain_id=137)

        assert results["0xa"].score == 90
        assert fake_engine.bodies == [{"addresses": ["0xa"], "chainId": 137}]

    async def test_health_check(self, client: EngineClient) -> None:
        assert await client.health_check() is True

    async def test_health_check_unreachable(self) -> None:
        async with EngineClient(base_url="http://127.0.0.1:1", retries=0) as client:
            assert await client.health_check() is False

    async def test_unreachable_raises_upstream_error(self) -> None:
        async with EngineClient(base_url="http://127.0.0.1:1", retries=0, timeout=1.0) as client:
            with pytest.raises(UpstreamError):
                await client.fetch_opportunities()
