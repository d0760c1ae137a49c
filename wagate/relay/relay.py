"""
事件转发器 - 将自动化客户端的会话事件转发到会话的 Webhook。

本模块负责两类订阅：

1. Webhook 事件订阅（wire）
   遍历 EVENT_CATALOG，对每个启用的事件在客户端上安装一个处理器。
   未启用的事件根本不订阅，开销为零。处理器的副作用：
   - 普通事件：转发 {dataType, data, sessionId}
   - 收到/发出的消息：转发后，若附带小于上限的媒体则下载并额外转发一个 media 事件；
     若开启了"标记已读"，再把所在聊天标记为已读。下载和已读互不影响，也不影响转发
   - qr 事件：先把配对码同步缓存到会话条目上，再转发
   - authenticated/ready 事件：清空缓存的配对码，再转发

2. 崩溃恢复订阅（watch_crash）
   仅在开启恢复时生效，与 Webhook 事件目录无关。等待页面句柄就绪后，
   在页面的 close/error 信号上安装一次性处理器，触发生命周期管理器的恢复流程。
   订阅以 RecoverySubscription 对象返回，生命周期管理器在重启/终止前取消它，
   避免自身的拆除动作误触发恢复。

【Java 开发者类比】
- wire() 相当于批量注册 ApplicationListener
- RecoverySubscription 相当于 java.util.concurrent.Future 风格的可取消句柄
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from wagate.automation.base import AutomationClient, PageHandle
from wagate.config.schema import Config
from wagate.relay.events import (
    EVENT_CATALOG,
    MEDIA_DATA_TYPE,
    EventKind,
    EventSpec,
    message_chat_id,
    message_media_size,
)
from wagate.relay.webhook import WebhookTrigger
from wagate.utils.helpers import wait_for_attr

if TYPE_CHECKING:
    from wagate.session.registry import SessionEntry

CrashCallback = Callable[[str, AutomationClient], Awaitable[None]]


class RecoverySubscription:
    """
    页面 close/error 信号上的一次性恢复订阅。

    两个信号中任意一个先到达就触发回调，随后另一个监听器立即移除，
    保证每个订阅最多触发一次恢复。
    """

    def __init__(
        self,
        page: PageHandle,
        session_id: str,
        on_signal: Callable[[], Awaitable[None]],
    ):
        self.page = page
        self.session_id = session_id
        self._on_signal = on_signal
        self._fired = False
        self._cancelled = False
        page.once("close", self._on_close)
        page.once("error", self._on_error)

    @property
    def active(self) -> bool:
        return not (self._fired or self._cancelled)

    def cancel(self) -> None:
        """取消订阅（移除页面上的两个监听器）。"""
        self._cancelled = True
        self._detach()

    def _on_close(self, *args: Any) -> Awaitable[None] | None:
        if self.active:
            logger.info(f"Browser page closed for {self.session_id}. Restoring")
        return self._fire()

    def _on_error(self, *args: Any) -> Awaitable[None] | None:
        if self.active:
            logger.info(f"Error occurred on browser page for {self.session_id}. Restoring")
        return self._fire()

    def _fire(self) -> Awaitable[None] | None:
        if not self.active:
            return None
        self._fired = True
        self._detach()
        return self._on_signal()

    def _detach(self) -> None:
        self.page.off("close", self._on_close)
        self.page.off("error", self._on_error)


class EventRelay:
    """
    会话事件转发器。

    属性:
        config: 全局配置（事件启用判断、附件大小上限、已读开关、恢复开关）
        webhook: Webhook 投递器
        page_wait_timeout_s: 安装恢复订阅前等待页面句柄的最长时间（秒）
    """

    def __init__(self, config: Config, webhook: WebhookTrigger, page_wait_timeout_s: float = 10.0):
        self.config = config
        self.webhook = webhook
        self.page_wait_timeout_s = page_wait_timeout_s

    def wire(self, entry: SessionEntry) -> list[EventKind]:
        """
        在会话客户端上安装所有启用事件的处理器。

        参数:
            entry: 会话条目

        返回:
            实际订阅的事件列表
        """
        installed = []
        for spec in EVENT_CATALOG:
            if not self.config.is_event_enabled(spec.kind.value):
                continue
            entry.client.on(spec.kind.value, self._make_handler(entry, spec))
            installed.append(spec.kind)
        logger.debug(f"Wired {len(installed)} events for session '{entry.session_id}'")
        return installed

    async def watch_crash(
        self, entry: SessionEntry, on_crash: CrashCallback
    ) -> RecoverySubscription | None:
        """
        等待页面就绪后安装崩溃恢复订阅。

        参数:
            entry: 会话条目
            on_crash: 恢复回调，参数为 (会话 ID, 发出信号的客户端)

        返回:
            恢复订阅；未开启恢复或等待页面超时时返回 None
        """
        if not self.config.sessions.recover_sessions:
            return None

        client = entry.client
        try:
            page = await wait_for_attr(client, "page", timeout=self.page_wait_timeout_s)
        except TimeoutError as e:
            logger.error(f"Error waiting for page of session '{entry.session_id}': {e}")
            return None

        return RecoverySubscription(page, entry.session_id, lambda: on_crash(entry.session_id, client))

    def _make_handler(self, entry: SessionEntry, spec: EventSpec) -> Callable[..., Any]:
        """为单个事件生成处理器闭包。"""
        if spec.downloads_media or spec.marks_seen:
            async def message_handler(*args: Any) -> None:
                await self._handle_message_event(entry, spec, args)
            return message_handler

        def handler(*args: Any) -> None:
            # 配对码缓存是同步、本地的副作用，必须先于转发完成
            if spec.caches_qr:
                entry.qr = args[0] if args else None
            if spec.clears_qr:
                entry.qr = None
            self._forward(entry, spec.webhook_type, spec.build_payload(args))

        return handler

    def _forward(self, entry: SessionEntry, data_type: str, data: dict[str, Any] | None) -> None:
        self.webhook.trigger(entry.webhook_url, entry.session_id, data_type, data)

    async def _handle_message_event(
        self, entry: SessionEntry, spec: EventSpec, args: tuple[Any, ...]
    ) -> None:
        """
        处理消息类事件。

        顺序：转发 → （可选）下载媒体并转发 media 事件 → （可选）标记已读。
        后两步的失败只记录日志。
        """
        self._forward(entry, spec.webhook_type, spec.build_payload(args))

        message = args[0] if args and isinstance(args[0], dict) else None
        if message is None:
            return

        if spec.downloads_media and self._should_download(message):
            try:
                media = await entry.client.download_media(message)
                self._forward(entry, MEDIA_DATA_TYPE, {"messageMedia": media, "message": message})
            except Exception as e:
                logger.error(f"Download media error for session '{entry.session_id}': {e}")

        if spec.marks_seen and self.config.sessions.set_messages_as_seen:
            chat_id = message_chat_id(message)
            if not chat_id:
                return
            try:
                await entry.client.send_seen(chat_id)
            except Exception as e:
                logger.error(f"Mark as seen error for session '{entry.session_id}': {e}")

    def _should_download(self, message: dict[str, Any]) -> bool:
        """消息带媒体且大小已知并小于上限时才自动下载。"""
        if not message.get("hasMedia"):
            return False
        size = message_media_size(message)
        return size is not None and size < self.config.sessions.max_attachment_size
