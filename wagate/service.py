"""
会话服务门面 - 面向请求层（HTTP 路由、CLI）的统一入口。

每个方法都返回一个普通字典，并在这里兜住所有异常，
请求层只需要把字典原样序列化为响应体。

响应格式：
    成功: {"success": True, "message": "..."}
    状态: {"success": bool, "state": str | None, "message": "<原因码>"}
    配对码: {"success": True, "qr": "..."}
    失败: {"success": False, "message": "<原因码或异常信息>"}

【Java 开发者类比】
- SessionService 相当于 Controller 背后的 Facade，统一把异常映射为响应体
- build_service() 相当于手写的依赖注入配置类（@Configuration）
"""

from typing import Any

from loguru import logger

from wagate.automation.bridge import bridge_client_factory
from wagate.config.schema import Config
from wagate.relay.relay import EventRelay
from wagate.relay.webhook import WebhookTrigger
from wagate.session.folders import FolderGuard
from wagate.session.health import REASON_NOT_FOUND, HealthValidator
from wagate.session.lifecycle import ClientFactory, SessionLifecycle
from wagate.session.registry import SessionRegistry
from wagate.session.supervisor import BulkSupervisor
from wagate.utils.helpers import wait_for_attr

QR_NOT_READY = "qr code not ready or already scanned"
FLUSH_OK = "Flush completed successfully"


class SessionService:
    """
    会话服务门面。

    属性:
        registry: 会话注册表
        validator: 健康检查器
        lifecycle: 生命周期管理器
        supervisor: 批量监管器
        webhook: Webhook 投递器（关闭时需要释放）
        page_wait_timeout_s: start 等待页面句柄的最长时间（秒）
    """

    def __init__(
        self,
        registry: SessionRegistry,
        validator: HealthValidator,
        lifecycle: SessionLifecycle,
        supervisor: BulkSupervisor,
        webhook: WebhookTrigger,
        page_wait_timeout_s: float = 10.0,
    ):
        self.registry = registry
        self.validator = validator
        self.lifecycle = lifecycle
        self.supervisor = supervisor
        self.webhook = webhook
        self.page_wait_timeout_s = page_wait_timeout_s

    async def start(self, session_id: str) -> dict[str, Any]:
        """创建会话，并等待浏览器页面就绪后再返回。"""
        try:
            result = await self.lifecycle.setup(session_id)
            if not result.success:
                return {"success": False, "message": result.message}
            await wait_for_attr(result.client, "page", timeout=self.page_wait_timeout_s)
            return {"success": True, "message": result.message}
        except Exception as e:
            logger.error(f"Start session '{session_id}' failed: {e}")
            return {"success": False, "message": str(e)}

    async def status(self, session_id: str) -> dict[str, Any]:
        try:
            validation = await self.validator.validate(session_id)
            return validation.to_dict()
        except Exception as e:
            logger.error(f"Status of session '{session_id}' failed: {e}")
            return {"success": False, "message": str(e)}

    async def get_qr(self, session_id: str) -> dict[str, Any]:
        """返回会话最近一次收到的配对码。"""
        entry = self.registry.entry(session_id)
        if entry is None:
            return {"success": False, "message": REASON_NOT_FOUND}
        if not entry.qr:
            return {"success": False, "message": QR_NOT_READY}
        return {"success": True, "qr": entry.qr}

    async def restart(self, session_id: str) -> dict[str, Any]:
        try:
            validation = await self.validator.validate(session_id)
            if validation.reason == REASON_NOT_FOUND:
                return validation.to_dict()
            return (await self.lifecycle.restart(session_id)).to_dict()
        except Exception as e:
            logger.error(f"Restart session '{session_id}' failed: {e}")
            return {"success": False, "message": str(e)}

    async def terminate(self, session_id: str) -> dict[str, Any]:
        try:
            validation = await self.validator.validate(session_id)
            if validation.reason == REASON_NOT_FOUND:
                return validation.to_dict()
            return (await self.lifecycle.terminate(session_id, validation)).to_dict()
        except Exception as e:
            logger.error(f"Terminate session '{session_id}' failed: {e}")
            return {"success": False, "message": str(e)}

    async def flush_inactive(self) -> dict[str, Any]:
        """终止所有未连接的会话。"""
        return await self._flush(only_inactive=True)

    async def flush_all(self) -> dict[str, Any]:
        """终止所有持久化会话。"""
        return await self._flush(only_inactive=False)

    async def restore(self) -> list[str]:
        """进程启动时恢复所有持久化会话。"""
        return await self.supervisor.restore_all()

    async def shutdown(self) -> None:
        """停止崩溃恢复并关闭 Webhook 客户端（不登出、不删除任何会话）。"""
        for session_id in self.registry.ids():
            self.lifecycle.detach_recovery(session_id)
        await self.webhook.aclose()

    async def _flush(self, only_inactive: bool) -> dict[str, Any]:
        try:
            await self.supervisor.flush(only_inactive)
            return {"success": True, "message": FLUSH_OK}
        except Exception as e:
            logger.error(f"Flush failed: {e}")
            return {"success": False, "message": str(e)}


def build_service(config: Config, client_factory: ClientFactory | None = None) -> SessionService:
    """
    按配置组装完整的会话服务。

    参数:
        config: 全局配置
        client_factory: 自动化客户端工厂，为空时使用 WebSocket 桥接实现

    返回:
        SessionService
    """
    root = config.storage_root
    registry = SessionRegistry()
    webhook = WebhookTrigger(
        enabled=config.webhook.enabled,
        api_key=config.webhook.api_key,
        timeout=config.webhook.timeout,
    )
    relay = EventRelay(config, webhook)
    folders = FolderGuard(root)
    validator = HealthValidator(registry)
    lifecycle = SessionLifecycle(
        config,
        registry,
        relay,
        folders,
        client_factory or bridge_client_factory(config),
    )
    supervisor = BulkSupervisor(lifecycle, validator, root)
    return SessionService(registry, validator, lifecycle, supervisor, webhook)
