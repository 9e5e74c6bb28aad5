"""Tests for the admin HTTP endpoints."""

from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp import test_utils

from proxyrelay.core.config import ProxyConfig
from proxyrelay.server.acceptor import ProxyServer
from proxyrelay.server.admin import AdminServer
from tests.fakes import FakeConnector, make_downstream


@pytest.fixture
def proxy():
    return ProxyServer(ProxyConfig(), "127.0.0.1", 0, connector=FakeConnector())


@pytest_asyncio.fixture
async def client(proxy):
    admin = AdminServer(proxy, "127.0.0.1:0")
    async with test_utils.TestClient(test_utils.TestServer(admin.create_app())) as client:
        yield client


class TestAdminServer:
    """Tests for /health, /stats and /metrics."""

    def test_bind_is_parsed(self, proxy):
        admin = AdminServer(proxy, "0.0.0.0:9888")
        assert (admin.host, admin.port) == ("0.0.0.0", 9888)

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status == 200
        assert await response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_stats(self, client, proxy):
        proxy.accept(make_downstream()[0])

        response = await client.get("/stats")
        assert response.status == 200
        stats = await response.json()
        assert stats["active_sessions"] == 1
        assert stats["sessions"][0]["state"] == "awaiting_request"

    @pytest.mark.asyncio
    async def test_metrics(self, client, proxy):
        proxy.accept(make_downstream()[0])

        response = await client.get("/metrics")
        assert response.status == 200
        assert response.headers["Content-Type"].startswith("text/plain")
        body = await response.text()
        assert "proxyrelay_sessions_total" in body
        assert "proxyrelay_active_sessions 1.0" in body
