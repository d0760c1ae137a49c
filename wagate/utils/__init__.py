"""
工具函数模块 - 提供 wagate 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- session_dir_name / parse_session_dir：会话目录命名约定
- wait_for_attr：异步等待对象属性就绪
"""

from wagate.utils.helpers import (
    ensure_dir,
    parse_session_dir,
    session_dir_name,
    wait_for_attr,
)

__all__ = ["ensure_dir", "parse_session_dir", "session_dir_name", "wait_for_attr"]
