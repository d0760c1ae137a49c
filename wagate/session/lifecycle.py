"""
会话生命周期管理 - 编排会话的创建、崩溃恢复、重启与终止。

每个会话 ID 的状态机：
    absent → initializing → live → (restarting | terminating) → absent

本模块组合了注册表、事件转发器、目录守卫三个组件：
- setup：构造客户端 → 后台初始化 → 立即注册 → 订阅事件 → 后台等待页面并安装崩溃恢复
- crash_recover：页面 close/error 信号触发；注销 → 有界销毁旧客户端 → 释放 → 重新 setup
- restart：取消恢复订阅 → 关闭所有页面与浏览器（5 秒超时，失败则强杀进程）→ 注销 → 释放 → 重新 setup
- terminate：取消恢复订阅 → 登出或销毁 → 等待浏览器断开（最多 10 秒）→ 删除目录 → 注销 → 释放

"释放"指解除旧客户端上的全部事件监听并关闭它的传输连接（见 AutomationClient.close）。

关键顺序约束：
- 替换会话时总是"先注销，后创建"，不会出现同一 ID 两个存活客户端的窗口
- 终止时"先删目录，后注销"：拆除中途崩溃的会话仍然可以在注册表中被发现，而不是悄然消失

【Java 开发者类比】
- SessionLifecycle 相当于一个带状态机的 Spring @Service
- 后台初始化任务相当于 CompletableFuture.runAsync，异常只记录日志
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from wagate.automation.base import AutomationClient, ClientOptions
from wagate.config.schema import Config
from wagate.relay.relay import EventRelay
from wagate.session.folders import FolderGuard
from wagate.session.health import (
    REASON_INITIALIZING,
    REASON_NOT_CONNECTED,
    REASON_NOT_FOUND,
    ValidationResult,
)
from wagate.session.registry import SessionEntry, SessionRegistry

ClientFactory = Callable[[ClientOptions], AutomationClient]

SETUP_OK = "Session initiated successfully"
RESTART_OK = "Restarted successfully"
TERMINATE_OK = "Logged out successfully"


@dataclass
class SessionResult:
    """生命周期操作结果：成功标志 + 机器可读的消息。"""

    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


@dataclass
class SetupResult(SessionResult):
    """setup 的结果，额外携带会话的客户端（新建的或已存在的）。"""

    client: AutomationClient | None = None


class SessionLifecycle:
    """
    会话生命周期管理器。

    属性:
        config: 全局配置
        registry: 会话注册表
        relay: 事件转发器
        folders: 会话目录守卫
        client_factory: 根据 ClientOptions 构造自动化客户端的工厂函数
        browser_close_timeout_s: 重启时关闭浏览器的超时（秒）
        teardown_timeout_s: 登出/销毁调用的超时（秒）
        disconnect_poll_interval_s: 终止时轮询浏览器连接状态的间隔（秒）
        disconnect_max_polls: 终止时轮询浏览器连接状态的最大次数
    """

    def __init__(
        self,
        config: Config,
        registry: SessionRegistry,
        relay: EventRelay,
        folders: FolderGuard,
        client_factory: ClientFactory,
        browser_close_timeout_s: float = 5.0,
        teardown_timeout_s: float = 10.0,
        disconnect_poll_interval_s: float = 1.0,
        disconnect_max_polls: int = 10,
    ):
        self.config = config
        self.registry = registry
        self.relay = relay
        self.folders = folders
        self.client_factory = client_factory
        self.browser_close_timeout_s = browser_close_timeout_s
        self.teardown_timeout_s = teardown_timeout_s
        self.disconnect_poll_interval_s = disconnect_poll_interval_s
        self.disconnect_max_polls = disconnect_max_polls

    def build_options(self, session_id: str) -> ClientOptions:
        """构造客户端参数：本地持久化认证（登出不删目录）+ 浏览器参数 + Web 版本缓存。"""
        automation = self.config.automation
        return ClientOptions(
            client_id=session_id,
            data_path=str(self.folders.root),
            keep_on_logout=True,
            executable_path=self.config.executable_path,
            headless=automation.headless,
            user_agent=automation.user_agent,
            web_version=automation.web_version or None,
            web_version_cache=self.config.web_version_cache(),
        )

    async def setup(self, session_id: str) -> SetupResult:
        """
        创建会话（幂等）。

        已存在时返回现有客户端并附带 "already exists" 信号（success=False，不视为错误）。
        客户端初始化在后台进行，失败只记录日志，之后可以通过健康检查观察到。

        参数:
            session_id: 会话 ID

        返回:
            SetupResult
        """
        existing = self.registry.get(session_id)
        if existing is not None:
            return SetupResult(False, f"Session already exists for: {session_id}", existing)

        try:
            client = self.client_factory(self.build_options(session_id))
        except Exception as e:
            logger.error(f"Failed to create client for session '{session_id}': {e}")
            return SetupResult(False, str(e), None)

        entry = SessionEntry(
            session_id=session_id,
            client=client,
            webhook_url=self.config.webhook_url_for(session_id),
        )
        # 从这里到 wire 结束之间没有 await，注册与状态切换是原子的
        entry.init_task = asyncio.create_task(self._initialize(entry))
        self.registry.put(entry)
        self.relay.wire(entry)
        entry.watch_task = asyncio.create_task(self._watch(entry))

        logger.info(f"Session '{session_id}' initiated")
        return SetupResult(True, SETUP_OK, client)

    async def crash_recover(self, session_id: str, client: AutomationClient) -> None:
        """
        页面关闭/出错后的自动恢复。

        只由恢复订阅触发。信号来自已经被替换的旧客户端时直接忽略。
        """
        entry = self.registry.entry(session_id)
        if entry is None or entry.client is not client:
            logger.debug(f"Ignoring stale crash signal for session '{session_id}'")
            return

        self.detach_recovery(session_id)
        self._cancel_init(entry)
        self.registry.remove(session_id)
        await self._bounded(session_id, "destroy", client.destroy)
        await self._release(entry)
        await self.setup(session_id)

    async def restart(self, session_id: str) -> SessionResult:
        """
        重启会话（保留持久化目录和浏览器缓存）。

        参数:
            session_id: 会话 ID

        返回:
            SessionResult；会话不存在时返回 session_not_found 且不做任何操作
        """
        entry = self.registry.entry(session_id)
        if entry is None:
            return SessionResult(False, REASON_NOT_FOUND)

        self.detach_recovery(session_id)
        self._cancel_init(entry)
        await self._close_browser(entry)
        self.registry.remove(session_id)
        await self._release(entry)

        result = await self.setup(session_id)
        if not result.success:
            return SessionResult(False, result.message)
        return SessionResult(True, RESTART_OK)

    async def terminate(self, session_id: str, validation: ValidationResult) -> SessionResult:
        """
        终止会话并删除其持久化目录。

        根据健康检查结果选择拆除方式：
        - 已连接 → 登出
        - 已注册但未连接（或仍在初始化）→ 销毁
        - 其他（页面已关闭/无响应）→ 不调用客户端，直接等待断开并删除目录

        参数:
            session_id: 会话 ID
            validation: 调用方刚刚得到的健康检查结果

        返回:
            SessionResult；会话不存在时为空操作

        异常:
            PathTraversalError / OSError: 目录删除失败（此时会话仍保留在注册表中）
        """
        entry = self.registry.entry(session_id)
        if entry is None or validation.reason == REASON_NOT_FOUND:
            return SessionResult(True, REASON_NOT_FOUND)

        client = entry.client
        self.detach_recovery(session_id)
        self._cancel_init(entry)

        if validation.connected:
            logger.info(f"Logging out session {session_id}")
            await self._bounded(session_id, "logout", client.logout)
        elif validation.reason in (REASON_NOT_CONNECTED, REASON_INITIALIZING):
            logger.info(f"Destroying session {session_id}")
            await self._bounded(session_id, "destroy", client.destroy)

        await self._wait_for_disconnect(entry)
        await self.folders.safe_delete(session_id)

        self.registry.remove(session_id)
        await self._release(entry)
        logger.info(f"Session '{session_id}' terminated")
        return SessionResult(True, TERMINATE_OK)

    def detach_recovery(self, session_id: str) -> None:
        """取消会话的崩溃恢复订阅（包括仍在等待页面就绪的安装任务）。"""
        entry = self.registry.entry(session_id)
        if entry is None:
            return
        if entry.watch_task and not entry.watch_task.done():
            entry.watch_task.cancel()
        if entry.recovery:
            entry.recovery.cancel()
            entry.recovery = None

    async def _initialize(self, entry: SessionEntry) -> None:
        """后台初始化客户端，失败只记录日志（会话保持注册，停留在 initializing 状态）。"""
        try:
            await entry.client.initialize()
        except Exception as e:
            logger.error(f"Initialize error for session '{entry.session_id}': {e}")

    async def _watch(self, entry: SessionEntry) -> None:
        """等待页面就绪并安装崩溃恢复订阅。"""
        subscription = await self.relay.watch_crash(entry, self.crash_recover)
        if subscription is None:
            return
        if self.registry.entry(entry.session_id) is entry:
            entry.recovery = subscription
        else:
            subscription.cancel()

    async def _close_browser(self, entry: SessionEntry) -> None:
        """关闭所有页面和浏览器；超时或失败时强杀浏览器进程。"""
        session_id = entry.session_id
        browser = entry.client.browser
        if browser is None:
            # 浏览器尚未启动完成，只能销毁客户端
            await self._bounded(session_id, "destroy", entry.client.destroy)
            return

        try:
            pages = await asyncio.wait_for(browser.pages(), self.browser_close_timeout_s)
            await asyncio.wait_for(
                asyncio.gather(*(page.close() for page in pages)),
                self.browser_close_timeout_s,
            )
            await asyncio.wait_for(browser.close(), self.browser_close_timeout_s)
        except Exception as e:
            logger.warning(
                f"Browser close failed for session '{session_id}', killing process: "
                f"{type(e).__name__}: {e}"
            )
            try:
                browser.kill()
            except Exception as kill_error:
                logger.error(f"Failed to kill browser for session '{session_id}': {kill_error}")

    async def _wait_for_disconnect(self, entry: SessionEntry) -> None:
        """轮询浏览器连接状态，直到断开或达到最大轮询次数。"""
        browser = entry.client.browser
        if browser is None:
            return
        polls = 0
        while browser.is_connected():
            if polls >= self.disconnect_max_polls:
                logger.warning(f"Browser for session '{entry.session_id}' still connected, deleting folder anyway")
                return
            await asyncio.sleep(self.disconnect_poll_interval_s)
            polls += 1

    async def _bounded(
        self, session_id: str, action: str, call: Callable[[], Awaitable[Any]]
    ) -> None:
        """带超时执行一次拆除调用；失败或超时只记录日志。"""
        try:
            await asyncio.wait_for(call(), self.teardown_timeout_s)
        except Exception as e:
            logger.error(f"Error during {action} of session '{session_id}': {type(e).__name__}: {e}")

    def _cancel_init(self, entry: SessionEntry) -> None:
        """取消仍在运行的初始化任务。"""
        if entry.init_task and not entry.init_task.done():
            entry.init_task.cancel()

    async def _release(self, entry: SessionEntry) -> None:
        """
        已注销条目的收尾：解除事件订阅并释放客户端连接。

        旧客户端之后再发出的事件不会再转发到该会话的 Webhook。
        """
        entry.client.remove_all_listeners()
        await self._bounded(entry.session_id, "close", entry.client.close)
