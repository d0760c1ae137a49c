"""
会话目录守卫 - 在任何破坏性文件操作前校验会话目录路径。

会话 ID 可能来自外部可控的字符串（API 路径参数、目录名），
直接拼接路径后删除存在路径穿越风险，例如 "../../etc" 或指向外部的符号链接。

安全设计：
    safe_delete() 会：
    1. 拼接候选路径 <root>/session-<id>
    2. 对候选路径和存储根同时调用 resolve()（解析符号链接和 ../）
    3. 要求候选路径严格位于存储根之下（以 "根路径 + 分隔符" 为前缀）
    4. 校验失败时抛出 PathTraversalError，不触碰文件系统
    5. 校验通过后递归删除目录，目录不存在视为成功
"""

import asyncio
import os
import shutil
from pathlib import Path

from loguru import logger

from wagate.utils.helpers import session_dir_name


class PathTraversalError(PermissionError):
    """目标路径解析后落在会话存储根之外。"""


class FolderGuard:
    """会话持久化目录的路径校验与安全删除。"""

    def __init__(self, root: Path):
        """
        参数:
            root: 会话存储根目录
        """
        self.root = root

    def session_path(self, session_id: str) -> Path:
        """拼接会话目录路径（不做任何校验，也不访问文件系统）。"""
        return self.root / session_dir_name(session_id)

    def resolve(self, session_id: str) -> Path:
        """
        解析并校验会话目录路径。

        返回:
            解析后的绝对路径

        异常:
            PathTraversalError: 路径落在存储根之外
        """
        candidate = self.session_path(session_id).resolve()
        safe_root = f"{self.root.resolve()}{os.sep}"
        if not str(candidate).startswith(safe_root):
            raise PathTraversalError(
                f"Invalid path for session '{session_id}': directory traversal detected"
            )
        return candidate

    async def safe_delete(self, session_id: str) -> None:
        """
        校验后递归删除会话目录。

        异常:
            PathTraversalError: 路径校验失败（不会删除任何内容）
            OSError: 删除过程中的文件系统错误
        """
        try:
            target = self.resolve(session_id)
            await asyncio.to_thread(_remove_tree, target)
        except Exception as e:
            logger.error(f"Folder deletion error for session '{session_id}': {e}")
            raise
        logger.info(f"Deleted session folder {target}")


def _remove_tree(path: Path) -> None:
    """递归删除目录，目录不存在时直接返回（等价于 rm -rf）。"""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
