"""
Webhook 投递 - 将会话事件以 HTTP POST 的方式推送给外部系统。

投递是"发射后不管"（fire-and-forget）的：
- trigger() 只负责创建后台任务，立即返回，不等待 HTTP 响应
- 投递失败只记录日志，永远不会影响自动化客户端或会话状态

请求格式：
    POST <webhook_url>
    x-api-key: <api_key>（如果配置了）
    {"dataType": "<事件类型>", "data": {...}, "sessionId": "<会话 ID>"}

依赖：
- httpx：异步 HTTP 客户端（类似 Java 的 OkHttp/WebClient）
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from wagate.utils.helpers import truncate_string


class WebhookTrigger:
    """
    Webhook 投递器。

    使用一个共享的 httpx.AsyncClient 发送所有请求，
    并跟踪尚未完成的投递任务，关闭时可以等待它们结束。

    属性:
        enabled: 总开关，关闭时只记录调试日志
        api_key: x-api-key 请求头
        timeout: 单次请求超时（秒）
    """

    def __init__(self, enabled: bool = True, api_key: str = "", timeout: float = 10.0):
        self.enabled = enabled
        self.api_key = api_key
        self.timeout = timeout
        self._http: httpx.AsyncClient | None = None
        self._pending: set[asyncio.Task] = set()

    def trigger(
        self,
        url: str,
        session_id: str,
        data_type: str,
        data: dict[str, Any] | None = None,
    ) -> asyncio.Task | None:
        """
        创建一个后台投递任务并立即返回。

        参数:
            url: 目标 Webhook 地址
            session_id: 会话 ID
            data_type: 事件类型
            data: 事件负载

        返回:
            后台任务；未启用或地址为空时返回 None
        """
        if not self.enabled or not url:
            logger.debug(f"Webhook skipped for {session_id}/{data_type}: no target")
            return None

        task = asyncio.create_task(self._post(url, session_id, data_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _post(
        self,
        url: str,
        session_id: str,
        data_type: str,
        data: dict[str, Any] | None,
    ) -> None:
        """发送一次投递请求，所有异常都在这里吞掉并记录。"""
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        body = {"dataType": data_type, "data": data, "sessionId": session_id}
        try:
            resp = await self._client().post(url, json=body, headers=headers)
            resp.raise_for_status()
        except Exception as e:
            logger.error(
                f"Failed to send webhook: {session_id} {data_type} {e} "
                f"{truncate_string(str(data or ''), 200)}"
            )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def drain(self) -> None:
        """等待所有未完成的投递任务结束。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """等待未完成的投递并关闭 HTTP 客户端。"""
        await self.drain()
        if self._http:
            await self._http.aclose()
            self._http = None
