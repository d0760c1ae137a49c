"""
会话健康检查 - 判断会话当前是否存活、是否已连接。

检查分两步：
1. 响应性探测：在页面上执行一个平凡表达式（"1"），每次最多等待 1 秒，最多尝试 3 次。
   这一步用来发现挂死/崩溃的浏览器进程。协议层自己的状态查询在这种情况下也可能挂住，
   所以探测必须有独立于调用方的超时。
2. 协议状态查询：询问自动化客户端当前的连接状态，只有 CONNECTED 才算已连接。

"未连接"是常见的正常结果，因此所有失败都以 ValidationResult 返回，而不是抛出异常。
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from loguru import logger

from wagate.automation.base import STATE_CONNECTED
from wagate.session.registry import SessionRegistry

# 健康检查结果的原因码（同时也是对外响应中的 message 字段）
REASON_NOT_FOUND = "session_not_found"
REASON_INITIALIZING = "session_initializing"
REASON_TAB_CLOSED = "browser tab closed"
REASON_UNRESPONSIVE = "session closed"
REASON_NOT_CONNECTED = "session_not_connected"
REASON_CONNECTED = "session_connected"

PROBE_EXPRESSION = "1"


@dataclass
class ValidationResult:
    """
    健康检查结果。

    属性:
        connected: 是否已完全连接
        state: 协议层状态（未查询到时为 None）
        reason: 机器可读的原因码

    原因码沿用对外的状态消息集合（session_not_found、browser tab closed、session closed、
    session_not_connected、session_connected），另外扩展了 session_initializing：会话已注册但页面句柄尚未就绪。
    """

    connected: bool
    state: str | None
    reason: str

    def to_dict(self) -> dict[str, Any]:
        """转换为对外响应格式：{success, state, message}。"""
        return {"success": self.connected, "state": self.state, "message": self.reason}


class HealthValidator:
    """
    会话健康检查器。

    属性:
        registry: 会话注册表
        probe_timeout_s: 单次响应性探测的超时（秒）
        probe_attempts: 响应性探测的最大尝试次数
    """

    def __init__(
        self,
        registry: SessionRegistry,
        probe_timeout_s: float = 1.0,
        probe_attempts: int = 3,
    ):
        self.registry = registry
        self.probe_timeout_s = probe_timeout_s
        self.probe_attempts = probe_attempts

    async def validate(self, session_id: str) -> ValidationResult:
        """
        检查会话的存活与连接状态。

        流程：
        1. 会话不在注册表中 → session_not_found（不做任何探测）
        2. 页面句柄尚未就绪 → session_initializing
        3. 页面已关闭 → browser tab closed（不做探测）
        4. 响应性探测全部失败 → session closed
        5. 协议状态不是 CONNECTED → session_not_connected
        6. 否则 → session_connected

        参数:
            session_id: 会话 ID

        返回:
            ValidationResult（从不抛出异常）
        """
        client = self.registry.get(session_id)
        if client is None:
            return ValidationResult(False, None, REASON_NOT_FOUND)

        try:
            page = client.page
            if page is None:
                return ValidationResult(False, None, REASON_INITIALIZING)
            if page.is_closed():
                return ValidationResult(False, None, REASON_TAB_CLOSED)

            if not await self._probe(session_id, page):
                return ValidationResult(False, None, REASON_UNRESPONSIVE)

            state = await client.get_state()
            if state != STATE_CONNECTED:
                return ValidationResult(False, state, REASON_NOT_CONNECTED)

            return ValidationResult(True, state, REASON_CONNECTED)
        except Exception as e:
            logger.error(f"Validation of session '{session_id}' failed: {e}")
            return ValidationResult(False, None, str(e))

    async def _probe(self, session_id: str, page) -> bool:
        """在页面上执行平凡表达式，带超时与重试。任意一次成功即返回 True。"""
        for attempt in range(1, self.probe_attempts + 1):
            try:
                await asyncio.wait_for(page.evaluate(PROBE_EXPRESSION), self.probe_timeout_s)
                return True
            except Exception as e:
                logger.debug(
                    f"Probe {attempt}/{self.probe_attempts} for session '{session_id}' failed: "
                    f"{type(e).__name__}: {e}"
                )
        return False
