"""
工具函数集合 - wagate 项目全局通用的辅助函数。

本模块提供路径管理、会话目录命名、异步等待等基础工具函数，
被项目中的多个模块引用。

函数分类：
- 路径管理：ensure_dir
- 会话目录命名：session_dir_name, parse_session_dir
- 异步工具：wait_for_attr
- 字符串工具：truncate_string
"""

import asyncio
import re
from pathlib import Path
from typing import Any

# 会话持久化目录的固定前缀，目录名为 session-<session_id>
SESSION_DIR_PREFIX = "session-"
SESSION_DIR_PATTERN = re.compile(r"^session-(.+)$")


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def session_dir_name(session_id: str) -> str:
    """根据会话 ID 生成持久化目录名，如 "alice" → "session-alice"。"""
    return f"{SESSION_DIR_PREFIX}{session_id}"


def parse_session_dir(name: str) -> str | None:
    """
    从目录名中提取会话 ID。

    参数:
        name: 目录名（不含路径）

    返回:
        会话 ID；目录名不符合 session-<id> 命名约定时返回 None
    """
    match = SESSION_DIR_PATTERN.match(name)
    return match.group(1) if match else None


async def wait_for_attr(
    obj: Any,
    name: str,
    timeout: float = 10.0,
    interval: float = 0.1,
) -> Any:
    """
    轮询等待对象上的某个属性变为非 None。

    自动化客户端的页面句柄是在浏览器启动后才异步出现的，
    调用方需要等它就绪才能订阅页面事件或返回响应。

    参数:
        obj: 被观察的对象
        name: 属性名
        timeout: 最长等待时间（秒）
        interval: 轮询间隔（秒）

    返回:
        属性的值

    异常:
        TimeoutError: 超时仍未就绪
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        value = getattr(obj, name, None)
        if value is not None:
            return value
        if loop.time() >= deadline:
            raise TimeoutError(f"Timed out after {timeout}s waiting for '{name}'")
        await asyncio.sleep(interval)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """截断字符串到指定最大长度，超出时添加后缀。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix
