"""Tests for the acceptor and session registry."""

from __future__ import annotations

import pytest

from proxyrelay.core.config import ProxyConfig
from proxyrelay.proxy.pump import RelayEndpoint, Side
from proxyrelay.proxy.session import SessionState
from proxyrelay.server.acceptor import ProxyServer
from tests.fakes import FakeConnector, FakeSocket, FakeTransport, make_downstream, settle


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def server(connector):
    return ProxyServer(ProxyConfig(), "127.0.0.1", 0, connector=connector)


def accept_client(server: ProxyServer, sock: FakeSocket | None = None):
    endpoint = server._create_protocol()
    transport = FakeTransport(sock=sock)
    endpoint.connection_made(transport)
    return endpoint, transport


class TestAccept:
    """Tests for adopting inbound connections."""

    def test_accept_registers_session(self, server):
        endpoint, transport = accept_client(server)

        assert server.session_count == 1
        session = server._sessions.get(1)
        assert session is not None
        assert session.downstream is endpoint
        assert session.state is SessionState.AWAITING_REQUEST
        assert transport.closed is False

    def test_ids_are_monotonic(self, server):
        sessions = [server.accept(make_downstream()[0]) for _ in range(3)]
        assert [s.id for s in sessions] == [1, 2, 3]
        assert server.session_count == 3

    def test_ids_are_not_reused(self, server):
        first = server.accept(make_downstream()[0])
        first.terminate()
        second = server.accept(make_downstream()[0])
        assert second.id == 2

    def test_nodelay_is_set(self, server):
        sock = FakeSocket()
        accept_client(server, sock)
        assert sock.options and sock.options[0][2] == 1

    def test_broken_socket_is_dropped(self, server):
        """Test that a socket that cannot be configured never enters the registry."""
        endpoint, transport = accept_client(server, FakeSocket(broken=True))

        assert server.session_count == 0
        assert transport.closed is True

    def test_endpoint_without_transport_is_dropped(self, server):
        assert server.accept(RelayEndpoint(Side.DOWNSTREAM)) is None
        assert server.session_count == 0


class TestRegistry:
    """Tests for removal on termination."""

    def test_terminate_removes_session(self, server):
        session = server.accept(make_downstream()[0])
        session.terminate()

        assert server.session_count == 0
        assert server._sessions.get(session.id) is None
        assert session.downstream.subscribed is False

    def test_unknown_id_is_ignored(self, server):
        server.accept(make_downstream()[0])
        server.on_terminate(999)
        assert server.session_count == 1

    def test_repeated_id_is_ignored(self, server):
        session = server.accept(make_downstream()[0])
        server.on_terminate(session.id)
        server.on_terminate(session.id)
        assert server.session_count == 0

    def test_other_sessions_survive(self, server):
        first = server.accept(make_downstream()[0])
        second = server.accept(make_downstream()[0])
        first.terminate()

        assert server.session_count == 1
        assert server._sessions.get(second.id) is second
        assert second.alive is True

    @pytest.mark.asyncio
    async def test_failed_request_removes_session(self, server, connector):
        endpoint, transport = accept_client(server)
        endpoint.data_received(b"GET /path HTTP/1.1\r\n\r\n")
        await settle()

        assert server.session_count == 0
        assert connector.resolve_calls == []
        assert transport.closed is True


class TestStats:
    """Tests for the registry snapshot."""

    @pytest.mark.asyncio
    async def test_get_stats(self, server):
        idle, _ = accept_client(server)
        tunnel, _ = accept_client(server)
        tunnel.data_received(b"CONNECT example.com:443 HTTP/1.1\r\n\r\n")
        await settle()

        stats = server.get_stats()

        assert stats["address"] == "127.0.0.1"
        assert stats["active_sessions"] == 2
        assert stats["sessions_by_state"]["awaiting_request"] == 1
        assert stats["sessions_by_state"]["tunneling"] == 1
        assert "terminated" not in stats["sessions_by_state"]
        targets = {s["id"]: s["target"] for s in stats["sessions"]}
        assert targets == {1: None, 2: "example.com:443"}

    def test_empty_stats(self, server):
        stats = server.get_stats()
        assert stats["active_sessions"] == 0
        assert stats["sessions"] == []
        assert stats["port"] == 0
