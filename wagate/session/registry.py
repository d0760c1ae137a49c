"""
会话注册表 - 会话 ID 到存活自动化客户端的唯一权威映射。

注册表是"会话是否存在"的唯一判断依据：
- 文件系统中可能残留已经不在注册表里的会话目录（例如进程崩溃后），这不是错误
- 反过来，注册表中存在但目录已被删除的会话视为异常状态，不做自动修复

注册表以显式对象的形式注入到各个组件中，而不是模块级全局变量，
便于测试隔离以及在同一进程中运行多个独立的监管器。
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wagate.automation.base import AutomationClient

if TYPE_CHECKING:
    from wagate.relay.relay import RecoverySubscription


@dataclass
class SessionEntry:
    """
    注册表中的单个会话条目。

    属性:
        session_id: 会话 ID
        client: 会话独占的自动化客户端
        webhook_url: 会话创建时解析出的 Webhook 地址（之后不再变化）
        qr: 最近一次收到的配对码（认证成功后清空）
        recovery: 崩溃恢复订阅（由生命周期管理器持有并在重启/终止前取消）
        init_task: 客户端初始化的后台任务
        watch_task: 等待页面就绪并安装崩溃恢复订阅的后台任务
    """

    session_id: str
    client: AutomationClient
    webhook_url: str = ""
    qr: str | None = None
    recovery: "RecoverySubscription | None" = None
    init_task: asyncio.Task | None = field(default=None, repr=False)
    watch_task: asyncio.Task | None = field(default=None, repr=False)


class SessionRegistry:
    """
    会话注册表。

    所有修改操作都发生在事件循环线程中，同一会话 ID 上的生命周期操作由调用方串行化，
    因此这里不需要额外加锁。
    """

    def __init__(self):
        self._entries: dict[str, SessionEntry] = {}

    def exists(self, session_id: str) -> bool:
        return session_id in self._entries

    def get(self, session_id: str) -> AutomationClient | None:
        """获取会话的自动化客户端，不存在时返回 None。"""
        entry = self._entries.get(session_id)
        return entry.client if entry else None

    def entry(self, session_id: str) -> SessionEntry | None:
        return self._entries.get(session_id)

    def put(self, entry: SessionEntry) -> None:
        """
        注册一个会话条目。

        异常:
            ValueError: 该会话 ID 已存在（同一 ID 同时只允许一个存活客户端）
        """
        if entry.session_id in self._entries:
            raise ValueError(f"Session already registered: {entry.session_id}")
        self._entries[entry.session_id] = entry

    def remove(self, session_id: str) -> SessionEntry | None:
        """移除会话条目并返回它；不存在时返回 None。"""
        return self._entries.pop(session_id, None)

    def ids(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries
