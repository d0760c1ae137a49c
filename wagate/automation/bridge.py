"""
WebSocket 桥接客户端实现 - 通过 Node.js 桥接服务驱动 WhatsApp Web 浏览器。

本模块实现了 AutomationClient 的默认版本：
- 每个会话建立一条到桥接服务的 WebSocket 连接
- 生命周期调用（initialize/getState/logout/destroy）以 RPC 形式发送，按 request_id 等待结果
- 桥接服务推送的会话事件（qr、message 等）转成 EventEmitter 事件
- 页面/浏览器状态事件（page.ready、page.close、page.error）维护本地句柄

架构特点：
- 桥接模式：Python <-> WebSocket <-> Node.js Bridge <-> Chromium <-> WhatsApp Web
- 连接断开视为浏览器进程死亡：所有页面被标记为关闭并发出 close 事件，
  从而触发会话的崩溃恢复逻辑

消息协议（Python <-> Bridge）：
- auth：发送认证令牌
- call：{"type": "call", "id": "<uuid>", "method": "...", "params": {...}}
- result：{"type": "result", "id": "<uuid>", "success": true, "result": ..., "error": null}
- event：{"type": "event", "event": "<name>", "args": [...]}
- error：桥接服务报告的错误

依赖：
- websockets：Python WebSocket 客户端库
- 外部 Node.js 桥接服务（需独立部署运行）
"""

import asyncio
import json
import uuid
from typing import Any, Callable

from loguru import logger

from wagate.automation.base import AutomationClient, BrowserHandle, ClientOptions, PageHandle
from wagate.config.schema import Config

MAIN_PAGE_ID = "main"


class BridgeError(RuntimeError):
    """桥接服务返回失败结果或连接不可用。"""


class BridgePage(PageHandle):
    """桥接服务中的一个浏览器标签页。"""

    def __init__(self, client: "BridgeClient", page_id: str = MAIN_PAGE_ID):
        super().__init__()
        self._client = client
        self.page_id = page_id
        self._closed = False

    def is_closed(self) -> bool:
        return self._closed

    async def evaluate(self, expression: str) -> Any:
        return await self._client.call(
            "page.evaluate", {"pageId": self.page_id, "expression": expression}
        )

    async def close(self) -> None:
        await self._client.call("page.close", {"pageId": self.page_id})
        self.mark_closed()

    def mark_closed(self) -> None:
        """标记页面已关闭并发出 close 事件（只发一次）。"""
        if self._closed:
            return
        self._closed = True
        self.emit("close")


class BridgeBrowser(BrowserHandle):
    """桥接服务托管的浏览器进程。"""

    def __init__(self, client: "BridgeClient"):
        self._client = client
        self._connected = True

    async def pages(self) -> list[PageHandle]:
        page_ids = await self._client.call("browser.pages") or []
        return [self._client.page_for(page_id) for page_id in page_ids]

    async def close(self) -> None:
        await self._client.call("browser.close")
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._client.connected

    def kill(self) -> None:
        """发送强杀指令，不等待结果。"""
        self._connected = False
        self._client.fire("browser.kill", {"signal": 9})

    def mark_disconnected(self) -> None:
        self._connected = False


class BridgeClient(AutomationClient):
    """
    基于 WebSocket 桥接的自动化客户端。

    属性:
        bridge_url: 桥接服务地址
        bridge_token: 桥接认证令牌（可选）
        call_timeout: 普通 RPC 调用的超时（秒）
    """

    def __init__(
        self,
        options: ClientOptions,
        bridge_url: str,
        bridge_token: str = "",
        call_timeout: float = 30.0,
    ):
        super().__init__(options)
        self.bridge_url = bridge_url
        self.bridge_token = bridge_token
        self.call_timeout = call_timeout
        self._ws = None  # WebSocket 连接对象
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}  # 等待结果的 RPC 调用 {request_id: Future}
        self._pages: dict[str, BridgePage] = {}
        self._background: set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def initialize(self) -> None:
        """
        连接桥接服务并启动浏览器。

        流程：
        1. 建立 WebSocket 连接
        2. 发送认证令牌（如果配置了）
        3. 启动消息读取循环
        4. 发送 initialize 调用；认证可能需要等待扫码，因此不设超时
        """
        import websockets

        logger.info(f"Connecting session '{self.options.client_id}' to bridge at {self.bridge_url}...")
        self._ws = await websockets.connect(self.bridge_url)
        if self.bridge_token:
            await self._ws.send(json.dumps({"type": "auth", "token": self.bridge_token}))
        self._reader_task = asyncio.create_task(self._read_loop(self._ws))
        await self._request("initialize", self.options.to_payload(), timeout=None)

    async def get_state(self) -> str | None:
        return await self.call("getState")

    async def logout(self) -> None:
        await self.call("logout")

    async def destroy(self) -> None:
        try:
            await self.call("destroy")
        finally:
            await self._close_socket()

    async def close(self) -> None:
        """等待尚未发出的单向指令（如 browser.kill）送达后关闭连接并停止读取任务。"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self._close_socket()

    async def download_media(self, message: dict[str, Any]) -> dict[str, Any] | None:
        message_id = (message.get("id") or {}).get("_serialized")
        return await self.call("downloadMedia", {"messageId": message_id})

    async def send_seen(self, chat_id: str) -> None:
        await self.call("sendSeen", {"chatId": chat_id})

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """发起一次带超时的 RPC 调用。"""
        return await self._request(method, params, timeout=self.call_timeout)

    def fire(self, method: str, params: dict[str, Any] | None = None) -> None:
        """发出一条单向指令，不等待结果（桥接的应答会被当作未知请求丢弃），失败只记录日志。"""
        if self._ws is None:
            logger.warning(f"Bridge not connected, dropping '{method}'")
            return
        task = asyncio.create_task(self._send_call(str(uuid.uuid4()), method, params))
        self._background.add(task)
        task.add_done_callback(self._on_fire_done)

    def page_for(self, page_id: str) -> BridgePage:
        """获取（或创建）指定 ID 的页面句柄。"""
        page = self._pages.get(page_id)
        if page is None:
            page = BridgePage(self, page_id)
            self._pages[page_id] = page
        return page

    async def _request(
        self, method: str, params: dict[str, Any] | None, timeout: float | None
    ) -> Any:
        """
        发送 RPC 调用并等待 result 消息。

        参数:
            method: 方法名
            params: 参数字典
            timeout: 超时秒数，None 表示不限时

        异常:
            BridgeError: 未连接或桥接返回失败
            TimeoutError: 超时未响应
        """
        if self._ws is None:
            raise BridgeError(f"Bridge not connected, cannot call '{method}'")

        request_id = str(uuid.uuid4())
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send_call(request_id, method, params)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Bridge did not respond to '{method}' within {timeout}s"
            ) from None
        finally:
            self._pending.pop(request_id, None)

    async def _send_call(
        self, request_id: str, method: str, params: dict[str, Any] | None
    ) -> None:
        if self._ws is None:
            raise BridgeError(f"Bridge not connected, cannot call '{method}'")
        await self._ws.send(json.dumps({
            "type": "call",
            "id": request_id,
            "method": method,
            "params": params or {},
        }))

    async def _read_loop(self, ws) -> None:
        """持续读取桥接消息，连接断开时进入断连处理。"""
        try:
            async for raw in ws:
                try:
                    self._handle_bridge_message(raw)
                except Exception as e:
                    logger.error(f"Error handling bridge message: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Bridge connection error for '{self.options.client_id}': {e}")
        finally:
            self._on_disconnect()

    def _handle_bridge_message(self, raw: str) -> None:
        """
        处理从桥接服务收到的消息。

        根据消息类型（type 字段）分发处理：
        - result：RPC 调用结果，唤醒对应的 Future
        - event：会话或页面事件
        - error：桥接服务报告的错误
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from bridge: {raw[:100]}")
            return

        msg_type = data.get("type")

        if msg_type == "result":
            future = self._pending.get(data.get("id"))
            if future is None or future.done():
                logger.debug(f"Dropping result for unknown request_id: {data.get('id')}")
                return
            if data.get("success", False):
                future.set_result(data.get("result"))
            else:
                future.set_exception(BridgeError(data.get("error") or "Bridge call failed"))

        elif msg_type == "event":
            self._dispatch_event(data.get("event", ""), data.get("args") or [])

        elif msg_type == "error":
            logger.error(f"Bridge error for '{self.options.client_id}': {data.get('error')}")

        else:
            logger.warning(f"Unknown message type '{msg_type}' from bridge")

    def _dispatch_event(self, event: str, args: list[Any]) -> None:
        """页面/浏览器事件维护本地句柄，其余事件原样转发给订阅者。"""
        page_id = args[0] if args and isinstance(args[0], str) else MAIN_PAGE_ID

        if event == "page.ready":
            self.page = self.page_for(page_id)
            if self.browser is None:
                self.browser = BridgeBrowser(self)
        elif event == "page.close":
            self.page_for(page_id).mark_closed()
        elif event == "page.error":
            self.page_for(page_id).emit("error", *args[1:])
        elif event == "browser.disconnected":
            if isinstance(self.browser, BridgeBrowser):
                self.browser.mark_disconnected()
        else:
            self.emit(event, *args)

    def _on_disconnect(self) -> None:
        """连接断开：失败所有等待中的调用，并把浏览器和页面标记为已关闭。"""
        self._ws = None
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BridgeError("Bridge connection closed"))
        self._pending.clear()

        if isinstance(self.browser, BridgeBrowser):
            self.browser.mark_disconnected()
        for page in list(self._pages.values()):
            page.mark_closed()

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing bridge socket: {e}")
        if self._reader_task:
            await asyncio.gather(self._reader_task, return_exceptions=True)
            self._reader_task = None

    def _on_fire_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Bridge call failed: {task.exception()}")


def bridge_client_factory(config: Config) -> Callable[[ClientOptions], AutomationClient]:
    """根据配置创建 BridgeClient 工厂函数，供 SessionLifecycle 注入使用。"""

    def factory(options: ClientOptions) -> AutomationClient:
        return BridgeClient(
            options,
            bridge_url=config.automation.bridge_url,
            bridge_token=config.automation.bridge_token,
            call_timeout=config.automation.call_timeout,
        )

    return factory
