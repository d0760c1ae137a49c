"""
会话监管模块 - 管理自动化会话从创建到销毁的完整生命周期。

【架构定位】
- registry.py：会话 ID → 存活客户端的唯一权威映射
- folders.py：删除持久化目录前的路径穿越校验
- health.py：带超时的响应性探测 + 协议状态查询
- lifecycle.py：setup / crash_recover / restart / terminate 状态机
- supervisor.py：启动时批量恢复、按活跃度批量清理

【Java 开发者类比】
- SessionRegistry 类似于注入的 ConcurrentHashMap<String, Client> Bean
- SessionLifecycle 类似于带状态机的领域服务
- BulkSupervisor 类似于启动时执行的 ApplicationRunner
"""

from wagate.session.folders import FolderGuard, PathTraversalError
from wagate.session.health import HealthValidator, ValidationResult
from wagate.session.lifecycle import SessionLifecycle, SessionResult, SetupResult
from wagate.session.registry import SessionEntry, SessionRegistry
from wagate.session.supervisor import BulkSupervisor

__all__ = [
    "BulkSupervisor",
    "FolderGuard",
    "HealthValidator",
    "PathTraversalError",
    "SessionEntry",
    "SessionLifecycle",
    "SessionRegistry",
    "SessionResult",
    "SetupResult",
    "ValidationResult",
]
