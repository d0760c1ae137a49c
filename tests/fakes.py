"""
In-memory fakes for the automation layer and webhook delivery.
"""

import asyncio
from types import SimpleNamespace

from wagate.automation.base import (
    STATE_CONNECTED,
    AutomationClient,
    BrowserHandle,
    ClientOptions,
    PageHandle,
)
from wagate.config.schema import Config, SessionsConfig, WebhookConfig
from wagate.relay.relay import EventRelay
from wagate.relay.webhook import WebhookTrigger
from wagate.service import SessionService
from wagate.session.folders import FolderGuard
from wagate.session.health import HealthValidator
from wagate.session.lifecycle import SessionLifecycle
from wagate.session.registry import SessionRegistry
from wagate.session.supervisor import BulkSupervisor

HOOK_URL = "http://hook.test/wh"


async def hang():
    await asyncio.Event().wait()


async def settle(rounds: int = 10):
    """Let pending background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakePage(PageHandle):
    def __init__(self, mode="ok"):
        super().__init__()
        self.mode = mode
        self.closed = False
        self.evaluate_calls = 0

    def is_closed(self):
        return self.closed

    async def evaluate(self, expression):
        self.evaluate_calls += 1
        if self.mode == "hang":
            await hang()
        if self.mode == "fail":
            raise RuntimeError("Target closed")
        return 1

    async def close(self):
        self.closed = True


class FakeBrowser(BrowserHandle):
    def __init__(self, pages, close_mode="ok", on_check=None):
        self._pages = pages
        self.close_mode = close_mode
        self.on_check = on_check
        self.connected = True
        self.sticky = False
        self.checks = 0
        self.closed = False
        self.killed = False

    async def pages(self):
        return list(self._pages)

    async def close(self):
        if self.close_mode == "hang":
            await hang()
        if self.close_mode == "fail":
            raise RuntimeError("close failed")
        self.closed = True
        self.connected = False

    def is_connected(self):
        self.checks += 1
        if self.on_check:
            self.on_check()
        return self.connected

    def disconnect(self):
        if not self.sticky:
            self.connected = False

    def kill(self):
        self.killed = True
        self.connected = False


class FakeClient(AutomationClient):
    """
    Fake automation client.

    init_mode: "ready" attaches page and browser, "pending" never does,
    "fail" raises from initialize.
    """

    def __init__(self, options, init_mode="ready", state=STATE_CONNECTED, log=None):
        super().__init__(options)
        self.init_mode = init_mode
        self.state = state
        self.log = log if log is not None else []
        self.logout_mode = "ok"
        self.destroy_mode = "ok"
        self.downloaded = []
        self.seen = []
        self.media_mode = "ok"
        self.closed = False

    def attach(self, page_mode="ok", close_mode="ok"):
        self.page = FakePage(page_mode)
        self.browser = FakeBrowser([self.page], close_mode, lambda: self._record("is_connected"))

    def _record(self, action):
        self.log.append((action, self.options.client_id))

    async def initialize(self):
        self._record("initialize")
        if self.init_mode == "fail":
            raise RuntimeError("browser failed to launch")
        if self.init_mode == "ready":
            self.attach()

    async def get_state(self):
        return self.state

    async def logout(self):
        self._record("logout")
        if self.logout_mode == "fail":
            raise RuntimeError("logout failed")
        if self.browser:
            self.browser.disconnect()

    async def destroy(self):
        self._record("destroy")
        if self.destroy_mode == "hang":
            await hang()
        if self.destroy_mode == "fail":
            raise RuntimeError("destroy failed")
        if self.browser:
            self.browser.disconnect()

    async def close(self):
        self._record("close")
        self.closed = True

    async def download_media(self, message):
        self.downloaded.append(message["id"])
        if self.media_mode == "fail":
            raise RuntimeError("download failed")
        return {"mimetype": "image/jpeg", "data": "aGk=", "filename": None, "filesize": 2}

    async def send_seen(self, chat_id):
        self.seen.append(chat_id)


class FakeClientFactory:
    """Client factory that remembers every client it built."""

    def __init__(self, init_mode="ready", state=STATE_CONNECTED):
        self.init_mode = init_mode
        self.state = state
        self.created: list[FakeClient] = []
        self.log: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    def __call__(self, options: ClientOptions) -> FakeClient:
        if self.fail_with:
            raise self.fail_with
        client = FakeClient(options, self.init_mode, self.state, self.log)
        self.created.append(client)
        return client

    def clients_for(self, session_id):
        return [c for c in self.created if c.options.client_id == session_id]


class RecordingWebhook(WebhookTrigger):
    """Records every delivery instead of posting it."""

    def __init__(self):
        super().__init__(enabled=True)
        self.sent: list[dict] = []

    def trigger(self, url, session_id, data_type, data=None):
        self.sent.append({"url": url, "sessionId": session_id, "dataType": data_type, "data": data})
        return None

    def types(self):
        return [s["dataType"] for s in self.sent]


def make_config(tmp_path, **sessions) -> Config:
    return Config(
        sessions=SessionsConfig(folder_path=str(tmp_path / "sessions"), **sessions),
        webhook=WebhookConfig(base_url=HOOK_URL),
    )


def build_stack(config: Config, factory: FakeClientFactory | None = None) -> SimpleNamespace:
    """Wire every component with short timeouts."""
    factory = factory or FakeClientFactory()
    root = config.storage_root
    registry = SessionRegistry()
    webhook = RecordingWebhook()
    relay = EventRelay(config, webhook, page_wait_timeout_s=0.5)
    folders = FolderGuard(root)
    validator = HealthValidator(registry, probe_timeout_s=0.05, probe_attempts=3)
    lifecycle = SessionLifecycle(
        config,
        registry,
        relay,
        folders,
        factory,
        browser_close_timeout_s=0.05,
        teardown_timeout_s=0.05,
        disconnect_poll_interval_s=0.01,
        disconnect_max_polls=3,
    )
    supervisor = BulkSupervisor(lifecycle, validator, root)
    service = SessionService(registry, validator, lifecycle, supervisor, webhook, page_wait_timeout_s=0.5)
    return SimpleNamespace(
        config=config,
        root=root,
        factory=factory,
        registry=registry,
        webhook=webhook,
        relay=relay,
        folders=folders,
        validator=validator,
        lifecycle=lifecycle,
        supervisor=supervisor,
        service=service,
    )
