"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 wagate 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── sessions      - 会话存储与行为配置（存储根目录、崩溃恢复、已读标记、附件大小上限）
├── webhook       - Webhook 转发配置（默认地址、API Key、禁用的事件回调）
└── automation    - 浏览器自动化桥接配置（桥接地址、Chrome 路径、Web 版本缓存）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
- Field(default_factory=...) 类似于 Java 中用工厂方法创建可变默认值，避免共享引用问题
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 远程 Web 版本缓存的清单地址模板（按版本号拼接）
REMOTE_WEB_VERSION_URL = (
    "https://raw.githubusercontent.com/wppconnect-team/wa-version/main/html/{version}.html"
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/117.0.0.0 Safari/537.36"
)


class SessionsConfig(BaseModel):
    """会话存储与行为配置。"""
    folder_path: str = "./sessions"  # 会话持久化目录的存储根（每个会话一个 session-<id> 子目录）
    recover_sessions: bool = True  # 浏览器页面关闭/出错时是否自动重建会话
    set_messages_as_seen: bool = False  # 收到消息后是否自动标记会话为已读
    max_attachment_size: int = 10_000_000  # 自动下载媒体附件的大小上限（字节）


class WebhookConfig(BaseModel):
    """
    Webhook 转发配置。

    单个会话可以通过环境变量 <SESSION_ID 大写>_WEBHOOK_URL 覆盖 base_url，
    例如会话 "alice" 使用 ALICE_WEBHOOK_URL。
    """
    enabled: bool = True  # 总开关，关闭后所有事件只记录日志不投递
    base_url: str = ""  # 全局默认 Webhook 地址
    api_key: str = ""  # 投递时附带的 x-api-key 请求头（可选）
    disabled_callbacks: list[str] = Field(default_factory=list)  # 不订阅的事件名列表，如 ["message_ack", "unread_count"]
    timeout: float = 10.0  # 单次投递的 HTTP 超时（秒）


class AutomationConfig(BaseModel):
    """浏览器自动化桥接配置。每个会话会建立一条到桥接服务的 WebSocket 连接。"""
    bridge_url: str = "ws://localhost:3001"  # Node.js 桥接服务的 WebSocket 地址
    bridge_token: str = ""  # 桥接认证令牌（可选但推荐设置）
    chrome_bin: str | None = None  # Chrome 可执行文件路径，为空时回退到 CHROME_BIN 环境变量
    headless: bool = True  # 是否以无头模式启动浏览器
    user_agent: str = DEFAULT_USER_AGENT  # 浏览器 User-Agent
    web_version: str = ""  # 固定的 WhatsApp Web 版本号（为空时使用最新版）
    web_version_cache_type: str = "none"  # 版本缓存类型: none | local | remote
    call_timeout: float = 30.0  # 单次桥接 RPC 调用的超时（秒）


class Config(BaseSettings):
    """
    wagate 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: WAGATE_
    - 嵌套分隔符: __ (双下划线)
    - 示例: WAGATE_WEBHOOK__BASE_URL=https://example.com/hook 可覆盖 webhook.base_url
    """
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)  # 会话配置
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)  # Webhook 配置
    automation: AutomationConfig = Field(default_factory=AutomationConfig)  # 自动化桥接配置

    @property
    def storage_root(self) -> Path:
        """获取展开后的会话存储根目录（将 ~ 展开为用户主目录）。"""
        return Path(self.sessions.folder_path).expanduser()

    def webhook_url_for(self, session_id: str) -> str:
        """
        解析某个会话的 Webhook 地址。

        优先级：
        1. 环境变量 <SESSION_ID 大写>_WEBHOOK_URL
        2. 全局 webhook.base_url

        参数:
            session_id: 会话 ID

        返回:
            Webhook 地址（可能为空字符串，表示不投递）
        """
        return os.environ.get(f"{session_id.upper()}_WEBHOOK_URL") or self.webhook.base_url

    def is_event_enabled(self, event: str) -> bool:
        """判断某个事件是否需要订阅（未出现在 disabled_callbacks 中即为启用）。"""
        return event not in self.webhook.disabled_callbacks

    def web_version_cache(self) -> dict[str, str] | None:
        """
        根据 web_version_cache_type 构造版本缓存描述。

        仅当配置了 web_version 时才生效：
        - local  → {"type": "local"}
        - remote → {"type": "remote", "remotePath": <清单地址>}
        - 其他   → {"type": "none"}

        返回:
            缓存描述字典；未固定版本时返回 None
        """
        if not self.automation.web_version:
            return None
        cache_type = self.automation.web_version_cache_type.lower()
        if cache_type == "local":
            return {"type": "local"}
        if cache_type == "remote":
            return {
                "type": "remote",
                "remotePath": REMOTE_WEB_VERSION_URL.format(version=self.automation.web_version),
            }
        return {"type": "none"}

    @property
    def executable_path(self) -> str | None:
        """浏览器可执行文件路径：配置优先，其次 CHROME_BIN 环境变量。"""
        return self.automation.chrome_bin or os.environ.get("CHROME_BIN") or None

    # Pydantic Settings 配置：支持 WAGATE_ 前缀的环境变量，嵌套用 __ 分隔
    model_config = SettingsConfigDict(
        env_prefix="WAGATE_",
        env_nested_delimiter="__",
    )
