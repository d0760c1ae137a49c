"""
自动化客户端基类模块 - 定义浏览器自动化客户端的统一接口。

本模块是 wagate 与底层浏览器自动化引擎之间的"契约层"。
会话监管逻辑（健康检查、崩溃恢复、销毁）只依赖这里定义的抽象，
不关心引擎到底是通过 WebSocket 桥接、本地子进程还是测试替身实现的。

【核心抽象】
- EventEmitter：轻量事件分发器（on/once/off/emit），协程监听器会被调度为后台任务
- PageHandle：浏览器标签页句柄，提供 is_closed/evaluate/close 以及 close/error 事件
- BrowserHandle：浏览器进程句柄，提供 pages/close/is_connected/kill
- AutomationClient：单个会话的自动化客户端，提供状态查询、登出、销毁等生命周期调用
- ClientOptions：创建客户端时传入的参数（认证策略、浏览器参数、Web 版本缓存）

【Java 开发者类比】
- AutomationClient 相当于 Java 的 interface + abstract class
- EventEmitter 相当于简化版的 java.beans.PropertyChangeSupport
- ClientOptions 相当于 Builder 模式构造出的不可变配置对象
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

Listener = Callable[..., Any]

# 浏览器启动参数（容器环境下必需）
DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
]

# 协议层"已完全连接"状态值
STATE_CONNECTED = "CONNECTED"


class EventEmitter:
    """
    事件分发器 - 按事件名管理监听器列表。

    监听器可以是普通函数或协程函数：
    - 普通函数在 emit() 中同步调用
    - 协程函数的返回值会被包装成 asyncio.Task 在后台执行，
      emit() 不会等待它完成（与 Node.js EventEmitter 的语义一致）

    单个监听器抛出的异常只记录日志，不影响其他监听器。
    """

    def __init__(self) -> None:
        # {事件名: [(监听器, 是否一次性), ...]}
        self._listeners: dict[str, list[tuple[Listener, bool]]] = {}
        self._listener_tasks: set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """订阅事件（持续有效）。"""
        self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event: str, listener: Listener) -> None:
        """订阅事件（触发一次后自动移除）。"""
        self._listeners.setdefault(event, []).append((listener, True))

    def off(self, event: str, listener: Listener) -> None:
        """取消某个监听器的订阅。"""
        entries = self._listeners.get(event)
        if not entries:
            return
        # 绑定方法每次取值都是新对象，这里按相等而不是按身份比较
        self._listeners[event] = [e for e in entries if e[0] != listener]

    def remove_all_listeners(self, event: str | None = None) -> None:
        """移除某个事件（或全部事件）的所有监听器。"""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        """返回某个事件当前的监听器数量。"""
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        触发事件，依次调用所有监听器。

        参数:
            event: 事件名
            *args: 传给监听器的参数

        返回:
            True 表示至少有一个监听器被调用
        """
        entries = list(self._listeners.get(event, []))
        if not entries:
            return False

        # 先移除一次性监听器，避免监听器内部再次 emit 时重复触发
        fired_once = [e for e in entries if e[1]]
        if fired_once:
            self._listeners[event] = [
                e for e in self._listeners.get(event, []) if e not in fired_once
            ]

        for listener, _ in entries:
            try:
                result = listener(*args)
            except Exception as e:
                logger.error(f"Error in '{event}' listener: {e}")
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.create_task(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._on_listener_done)
        return True

    def _on_listener_done(self, task: asyncio.Task) -> None:
        """后台监听器任务结束回调：清理引用并记录异常。"""
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async listener failed: {exc}")

    async def drain(self) -> None:
        """等待所有仍在运行的协程监听器完成（用于关闭流程和测试）。"""
        while self._listener_tasks:
            await asyncio.gather(*list(self._listener_tasks), return_exceptions=True)


class PageHandle(EventEmitter, ABC):
    """
    浏览器标签页句柄。

    事件:
        close: 页面被关闭（包括浏览器进程意外退出）
        error: 页面崩溃
    """

    @abstractmethod
    def is_closed(self) -> bool:
        """页面是否已关闭。"""
        pass

    @abstractmethod
    async def evaluate(self, expression: str) -> Any:
        """在页面中执行一段脚本表达式并返回结果。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """关闭页面。"""
        pass


class BrowserHandle(ABC):
    """浏览器进程句柄。"""

    @abstractmethod
    async def pages(self) -> list[PageHandle]:
        """返回浏览器当前打开的所有页面。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """优雅关闭浏览器（可能挂起，调用方需自行加超时）。"""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """与浏览器进程的连接是否仍然存在。"""
        pass

    @abstractmethod
    def kill(self) -> None:
        """强制杀死浏览器进程（SIGKILL）。"""
        pass


class AutomationClient(EventEmitter, ABC):
    """
    会话自动化客户端抽象基类。

    每个会话 ID 对应一个客户端实例。客户端在 initialize() 过程中异步启动浏览器，
    page/browser 句柄在浏览器就绪后才会被赋值，之前为 None。

    客户端通过 EventEmitter 接口发出会话事件（qr、ready、message 等），
    事件名与 wagate.relay.events.EventKind 一一对应。

    属性:
        options: 创建客户端时使用的参数
        page: 主页面句柄（未就绪时为 None）
        browser: 浏览器句柄（未就绪时为 None）
    """

    def __init__(self, options: "ClientOptions"):
        super().__init__()
        self.options = options
        self.page: PageHandle | None = None
        self.browser: BrowserHandle | None = None

    @abstractmethod
    async def initialize(self) -> None:
        """启动浏览器并开始认证流程。"""
        pass

    @abstractmethod
    async def get_state(self) -> str | None:
        """查询协议层连接状态（如 "CONNECTED"、"OPENING"、"UNPAIRED"）。"""
        pass

    @abstractmethod
    async def logout(self) -> None:
        """从远端登出当前设备。"""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """销毁客户端并关闭浏览器（不登出）。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        释放客户端自身占用的传输资源（连接、后台读取任务）。

        不登出、不关闭浏览器，可以重复调用。会话条目从注册表移除后必须调用一次。
        """
        pass

    @abstractmethod
    async def download_media(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """下载消息附带的媒体，返回 {mimetype, data, filename, filesize}。"""
        pass

    @abstractmethod
    async def send_seen(self, chat_id: str) -> None:
        """将某个聊天标记为已读。"""
        pass


@dataclass
class ClientOptions:
    """
    自动化客户端创建参数。

    认证策略固定为"本地持久化"：凭据保存在 data_path/session-<client_id> 中。
    keep_on_logout=True 表示登出时不删除凭据目录，目录删除统一由
    FolderGuard 负责，确保删除前一定经过路径校验。
    """

    client_id: str
    data_path: str
    keep_on_logout: bool = True
    executable_path: str | None = None
    headless: bool = True
    browser_args: list[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    user_agent: str | None = None
    web_version: str | None = None
    web_version_cache: dict[str, str] | None = None

    def to_payload(self) -> dict[str, Any]:
        """转换为发给自动化引擎的 camelCase 参数字典。"""
        payload: dict[str, Any] = {
            "authStrategy": {
                "type": "local",
                "clientId": self.client_id,
                "dataPath": self.data_path,
                "keepOnLogout": self.keep_on_logout,
            },
            "puppeteer": {
                "executablePath": self.executable_path,
                "headless": self.headless,
                "args": self.browser_args,
            },
        }
        if self.user_agent:
            payload["userAgent"] = self.user_agent
        if self.web_version:
            payload["webVersion"] = self.web_version
            payload["webVersionCache"] = self.web_version_cache or {"type": "none"}
        return payload
