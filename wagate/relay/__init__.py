"""
事件转发模块 - 会话事件到 Webhook 的订阅与投递。

- events.py：事件目录（EventKind 枚举 + 每个事件的转发规则）
- webhook.py：基于 httpx 的"发射后不管"投递器
- relay.py：EventRelay（事件订阅）与 RecoverySubscription（崩溃恢复订阅）
"""

from wagate.relay.events import EVENT_CATALOG, EventKind, EventSpec
from wagate.relay.relay import EventRelay, RecoverySubscription
from wagate.relay.webhook import WebhookTrigger

__all__ = [
    "EVENT_CATALOG",
    "EventKind",
    "EventSpec",
    "EventRelay",
    "RecoverySubscription",
    "WebhookTrigger",
]
