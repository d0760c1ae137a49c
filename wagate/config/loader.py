"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 wagate 配置文件的读写：
- 配置文件默认路径: ~/.wagate/config.json
- 文件中的键名使用 camelCase（与 Node.js 桥接服务、Webhook 负载的风格一致），
  Python 内部使用 snake_case，读写时自动转换
- 文件损坏时记录警告并退回默认配置，网关仍然可以启动

环境变量（WAGATE_ 前缀，见 schema.py）的优先级由 pydantic-settings 处理，
本模块只负责 JSON 文件部分。

对于 Java 开发者：
- 类似于 Spring Boot 的 application.json 加载 + Jackson 的 @JsonNaming(LowerCamelCaseStrategy)
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from wagate.config.schema import Config

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.wagate/config.json"""
    return Path.home() / ".wagate" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件。

    参数:
        config_path: 配置文件路径，为 None 时使用 ~/.wagate/config.json

    返回:
        Config 实例；文件不存在或无法解析时为默认配置
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(data))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        logger.warning("Using default configuration.")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """将配置写入 JSON 文件（camelCase 键名，父目录不存在时自动创建）。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(convert_to_camel(config.model_dump()), indent=2),
        encoding="utf-8",
    )


def convert_keys(data: Any) -> Any:
    """递归转换键名 camelCase → snake_case，如 {"maxAttachmentSize": 1} → {"max_attachment_size": 1}。"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """递归转换键名 snake_case → camelCase。"""
    return _rename_keys(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    """例: "baseUrl" → "base_url", "recoverSessions" → "recover_sessions" """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """例: "api_key" → "apiKey" """
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    # 只改键名，值（包括 disabled_callbacks 里的事件名）原样保留
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data
