"""
Tests for the WebSocket bridge client: message handling and connection release.
"""

import asyncio
import json

import pytest
import websockets

from wagate.automation.base import ClientOptions
from wagate.automation.bridge import (
    BridgeBrowser,
    BridgeClient,
    BridgeError,
    BridgePage,
    bridge_client_factory,
)

from tests.fakes import build_stack, settle


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    async def close(self):
        self.closed = True


class TestBridgeClient:
    def setup_method(self):
        self.client = BridgeClient(
            ClientOptions("alice", "/data"), bridge_url="ws://bridge.test", call_timeout=0.05
        )
        self.socket = FakeSocket()
        self.client._ws = self.socket

    def reply(self, request, success=True, result=None, error=None):
        self.client._handle_bridge_message(json.dumps({
            "type": "result",
            "id": request["id"],
            "success": success,
            "result": result,
            "error": error,
        }))

    def event(self, name, *args):
        self.client._handle_bridge_message(json.dumps({"type": "event", "event": name, "args": list(args)}))

    @pytest.mark.asyncio
    async def test_call_resolves_result(self):
        task = asyncio.create_task(self.client.get_state())
        await settle()

        request = self.socket.sent[-1]
        assert request["type"] == "call"
        assert request["method"] == "getState"
        self.reply(request, result="CONNECTED")

        assert await task == "CONNECTED"
        assert self.client._pending == {}

    @pytest.mark.asyncio
    async def test_call_failure_raises_bridge_error(self):
        task = asyncio.create_task(self.client.logout())
        await settle()
        self.reply(self.socket.sent[-1], success=False, error="not logged in")

        with pytest.raises(BridgeError, match="not logged in"):
            await task

    @pytest.mark.asyncio
    async def test_call_timeout(self):
        with pytest.raises(TimeoutError):
            await self.client.get_state()

    @pytest.mark.asyncio
    async def test_call_without_connection(self):
        self.client._ws = None
        with pytest.raises(BridgeError):
            await self.client.get_state()

    @pytest.mark.asyncio
    async def test_send_seen_and_download_params(self):
        seen = asyncio.create_task(self.client.send_seen("111@c.us"))
        media = asyncio.create_task(self.client.download_media({"id": {"_serialized": "msg-1"}}))
        await settle()

        assert self.socket.sent[0]["params"] == {"chatId": "111@c.us"}
        assert self.socket.sent[1]["params"] == {"messageId": "msg-1"}
        for request in self.socket.sent:
            self.reply(request)
        await asyncio.gather(seen, media)

    def test_page_ready_attaches_handles(self):
        assert self.client.page is None
        self.event("page.ready", "main")

        assert isinstance(self.client.page, BridgePage)
        assert isinstance(self.client.browser, BridgeBrowser)
        assert self.client.browser.is_connected()
        assert not self.client.page.is_closed()

    def test_page_close_emits_once(self):
        self.event("page.ready", "main")
        closes = []
        self.client.page.on("close", lambda: closes.append(True))

        self.event("page.close", "main")
        self.event("page.close", "main")

        assert self.client.page.is_closed()
        assert closes == [True]

    def test_page_error_emitted(self):
        self.event("page.ready", "main")
        errors = []
        self.client.page.on("error", errors.append)

        self.event("page.error", "main", "renderer crashed")

        assert errors == ["renderer crashed"]

    def test_session_events_forwarded(self):
        received = []
        self.client.on("qr", received.append)

        self.event("qr", "2@abc")

        assert received == ["2@abc"]

    def test_invalid_json_ignored(self):
        self.client._handle_bridge_message("{broken")

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending_and_closes_pages(self):
        self.event("page.ready", "main")
        page = self.client.page
        task = asyncio.create_task(self.client.get_state())
        await settle()

        self.client._on_disconnect()

        with pytest.raises(BridgeError):
            await task
        assert page.is_closed()
        assert not self.client.browser.is_connected()
        assert not self.client.connected


class LocalBridge:
    """Minimal bridge server answering every call and announcing the main page on initialize."""

    def __init__(self):
        self.connections = set()
        self.methods = []

    async def handler(self, ws, *args):
        self.connections.add(ws)
        try:
            async for raw in ws:
                message = json.loads(raw)
                if message.get("type") != "call":
                    continue
                method = message["method"]
                self.methods.append(method)
                if method == "initialize":
                    await ws.send(json.dumps({"type": "event", "event": "page.ready", "args": ["main"]}))
                result = {"getState": "CONNECTED", "browser.pages": ["main"], "page.evaluate": 1}.get(method)
                await ws.send(json.dumps({
                    "type": "result",
                    "id": message["id"],
                    "success": True,
                    "result": result,
                }))
        except websockets.ConnectionClosed:
            pass
        finally:
            self.connections.discard(ws)

    async def wait_idle(self, timeout=1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.connections and loop.time() < deadline:
            await asyncio.sleep(0.01)
        return len(self.connections)


async def wait_for_page(client, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while client.page is None and loop.time() < deadline:
        await asyncio.sleep(0.01)
    assert client.page is not None


class TestBridgeConnectionRelease:
    @pytest.mark.asyncio
    async def test_close_releases_socket_and_reader(self):
        bridge = LocalBridge()
        async with websockets.serve(bridge.handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            client = BridgeClient(ClientOptions("alice", "/data"), bridge_url=f"ws://127.0.0.1:{port}")

            await client.initialize()
            assert client.connected
            assert bridge.connections

            await client.close()
            await client.close()

            assert not client.connected
            assert client._reader_task is None
            assert await bridge.wait_idle() == 0

    @pytest.mark.asyncio
    async def test_close_delivers_pending_kill(self):
        bridge = LocalBridge()
        async with websockets.serve(bridge.handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            client = BridgeClient(ClientOptions("alice", "/data"), bridge_url=f"ws://127.0.0.1:{port}")
            await client.initialize()

            client.browser.kill()
            await client.close()

            assert await bridge.wait_idle() == 0
            assert "browser.kill" in bridge.methods

    @pytest.mark.asyncio
    async def test_restart_and_terminate_leave_no_open_connections(self, config):
        bridge = LocalBridge()
        async with websockets.serve(bridge.handler, "127.0.0.1", 0) as server:
            config.automation.bridge_url = f"ws://127.0.0.1:{server.sockets[0].getsockname()[1]}"
            config.automation.call_timeout = 1.0
            make_client = bridge_client_factory(config)
            created = []

            def factory(options):
                client = make_client(options)
                created.append(client)
                return client

            stack = build_stack(config, factory)

            await stack.lifecycle.setup("alice")
            await wait_for_page(created[0])
            await stack.lifecycle.restart("alice")
            await wait_for_page(created[1])
            validation = await stack.validator.validate("alice")
            result = await stack.lifecycle.terminate("alice", validation)

            assert result.success
            assert len(created) == 2
            assert not any(client.connected for client in created)
            assert all(client.listener_count("qr") == 0 for client in created)
            assert await bridge.wait_idle() == 0
