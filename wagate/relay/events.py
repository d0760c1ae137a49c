"""
会话事件目录 - 定义自动化客户端会发出、并可转发到 Webhook 的全部事件。

本模块用一张静态表（EVENT_CATALOG）描述每个事件：
- kind：事件名（EventKind 枚举，值即客户端 emit 的事件名）
- arg_names：事件参数在 Webhook 负载中对应的字段名
- data_type：投递时使用的 dataType（默认与事件名相同）
- 特殊行为标记：下载媒体、标记已读、缓存/清空配对码

EventRelay 在订阅时遍历这张表一次，按"是否启用"决定是否安装处理器；
事件分发时不再做任何字符串查找。

【Java 开发者类比】
- EventKind 相当于 Java 的 enum
- EventSpec 相当于 record，EVENT_CATALOG 相当于 static final List<EventSpec>
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """客户端事件名。"""

    AUTH_FAILURE = "auth_failure"
    AUTHENTICATED = "authenticated"
    CALL = "call"
    CHANGE_STATE = "change_state"
    DISCONNECTED = "disconnected"
    GROUP_JOIN = "group_join"
    GROUP_LEAVE = "group_leave"
    GROUP_UPDATE = "group_update"
    LOADING_SCREEN = "loading_screen"
    MEDIA_UPLOADED = "media_uploaded"
    MESSAGE = "message"
    MESSAGE_ACK = "message_ack"
    MESSAGE_CREATE = "message_create"
    MESSAGE_REACTION = "message_reaction"
    MESSAGE_EDIT = "message_edit"
    MESSAGE_CIPHERTEXT = "message_ciphertext"
    MESSAGE_REVOKE_EVERYONE = "message_revoke_everyone"
    MESSAGE_REVOKE_ME = "message_revoke_me"
    QR = "qr"
    READY = "ready"
    CONTACT_CHANGED = "contact_changed"
    CHAT_REMOVED = "chat_removed"
    CHAT_ARCHIVED = "chat_archived"
    UNREAD_COUNT = "unread_count"


# 媒体下载成功后额外投递的事件类型
MEDIA_DATA_TYPE = "media"


@dataclass(frozen=True)
class EventSpec:
    """单个事件的转发规则。"""

    kind: EventKind
    arg_names: tuple[str, ...] = ()
    data_type: str | None = None
    downloads_media: bool = False
    marks_seen: bool = False
    caches_qr: bool = False
    clears_qr: bool = False

    @property
    def webhook_type(self) -> str:
        """投递时使用的 dataType。"""
        return self.data_type or self.kind.value

    def build_payload(self, args: tuple[Any, ...]) -> dict[str, Any] | None:
        """
        将事件参数按 arg_names 组装为负载字典。

        缺失的参数填 None，多余的参数忽略；事件本身没有参数时返回 None。
        """
        if not self.arg_names:
            return None
        return {
            name: args[i] if i < len(args) else None
            for i, name in enumerate(self.arg_names)
        }


EVENT_CATALOG: tuple[EventSpec, ...] = (
    # 认证失败沿用历史上的 "status" 数据类型
    EventSpec(EventKind.AUTH_FAILURE, ("msg",), data_type="status"),
    EventSpec(EventKind.AUTHENTICATED, clears_qr=True),
    EventSpec(EventKind.CALL, ("call",)),
    EventSpec(EventKind.CHANGE_STATE, ("state",)),
    EventSpec(EventKind.DISCONNECTED, ("reason",)),
    EventSpec(EventKind.GROUP_JOIN, ("notification",)),
    EventSpec(EventKind.GROUP_LEAVE, ("notification",)),
    EventSpec(EventKind.GROUP_UPDATE, ("notification",)),
    EventSpec(EventKind.LOADING_SCREEN, ("percent", "message")),
    EventSpec(EventKind.MEDIA_UPLOADED, ("message",)),
    EventSpec(EventKind.MESSAGE, ("message",), downloads_media=True, marks_seen=True),
    EventSpec(EventKind.MESSAGE_ACK, ("message", "ack"), marks_seen=True),
    EventSpec(EventKind.MESSAGE_CREATE, ("message",), marks_seen=True),
    EventSpec(EventKind.MESSAGE_REACTION, ("reaction",)),
    EventSpec(EventKind.MESSAGE_EDIT, ("message", "newBody", "prevBody")),
    EventSpec(EventKind.MESSAGE_CIPHERTEXT, ("message",)),
    EventSpec(EventKind.MESSAGE_REVOKE_EVERYONE, ("message",)),
    EventSpec(EventKind.MESSAGE_REVOKE_ME, ("message",)),
    EventSpec(EventKind.QR, ("qr",), caches_qr=True),
    EventSpec(EventKind.READY, clears_qr=True),
    EventSpec(EventKind.CONTACT_CHANGED, ("message", "oldId", "newId", "isContact")),
    EventSpec(EventKind.CHAT_REMOVED, ("chat",)),
    EventSpec(EventKind.CHAT_ARCHIVED, ("chat", "currState", "prevState")),
    EventSpec(EventKind.UNREAD_COUNT, ("chat",)),
)


def message_chat_id(message: dict[str, Any]) -> str | None:
    """消息所属聊天的 ID：自己发出的消息取 to，收到的消息取 from。"""
    if message.get("fromMe"):
        return message.get("to")
    return message.get("from")


def message_media_size(message: dict[str, Any]) -> int | None:
    """消息附带媒体的大小（字节），未知时返回 None。"""
    size = (message.get("_data") or {}).get("size")
    return size if isinstance(size, int) else None
