"""
批量监管 - 进程启动时恢复持久化会话，以及批量清理会话。

持久化会话以 <存储根>/session-<id> 目录的形式存在。这里只扫描目录名，
不读取目录内容，也不尝试修复注册表与文件系统之间的不一致。
"""

from pathlib import Path

from loguru import logger

from wagate.session.health import HealthValidator
from wagate.session.lifecycle import TERMINATE_OK, SessionLifecycle
from wagate.utils.helpers import ensure_dir, parse_session_dir


class BulkSupervisor:
    """
    会话批量操作。

    单个会话的失败只记录日志，不会中断对其他会话的处理。
    """

    def __init__(self, lifecycle: SessionLifecycle, validator: HealthValidator, root: Path):
        self.lifecycle = lifecycle
        self.validator = validator
        self.root = root

    def persisted_ids(self) -> list[str]:
        """列出存储根下所有会话目录对应的会话 ID（按名称排序）。"""
        if not self.root.is_dir():
            return []
        ids = []
        for child in sorted(self.root.iterdir()):
            if not child.is_dir():
                continue
            session_id = parse_session_dir(child.name)
            if session_id:
                ids.append(session_id)
        return ids

    async def restore_all(self) -> list[str]:
        """
        恢复所有持久化会话。

        存储根不存在时先创建它（此时没有会话可恢复）。

        返回:
            成功发起创建的会话 ID 列表
        """
        ensure_dir(self.root)
        restored = []
        for session_id in self.persisted_ids():
            try:
                result = await self.lifecycle.setup(session_id)
            except Exception as e:
                logger.error(f"Failed to restore session '{session_id}': {e}")
                continue
            if result.success:
                restored.append(session_id)
            else:
                logger.warning(f"Session '{session_id}' not restored: {result.message}")

        logger.info(f"Restored {len(restored)} session(s) from {self.root}")
        return restored

    async def flush(self, only_inactive: bool) -> list[str]:
        """
        批量终止会话。

        参数:
            only_inactive: True 时只终止未连接的会话，False 时终止全部会话

        返回:
            实际被终止的会话 ID 列表
        """
        terminated = []
        for session_id in self.persisted_ids():
            try:
                validation = await self.validator.validate(session_id)
                if only_inactive and validation.connected:
                    continue
                result = await self.lifecycle.terminate(session_id, validation)
            except Exception as e:
                logger.error(f"Failed to flush session '{session_id}': {e}")
                continue
            if result.message == TERMINATE_OK:
                terminated.append(session_id)

        logger.info(f"Flushed {len(terminated)} session(s)")
        return terminated
