"""
自动化客户端模块 - 浏览器自动化引擎的抽象与默认实现。

- base.py：AutomationClient / PageHandle / BrowserHandle 抽象与 ClientOptions
- bridge.py：基于 WebSocket 的 Node.js 桥接实现（默认引擎）

二开提示：
- 接入其他引擎（如 Playwright 直连）时，只需继承 AutomationClient 并提供一个工厂函数
"""

from wagate.automation.base import (
    STATE_CONNECTED,
    AutomationClient,
    BrowserHandle,
    ClientOptions,
    EventEmitter,
    PageHandle,
)
from wagate.automation.bridge import BridgeClient, BridgeError, bridge_client_factory

__all__ = [
    "STATE_CONNECTED",
    "AutomationClient",
    "BrowserHandle",
    "ClientOptions",
    "EventEmitter",
    "PageHandle",
    "BridgeClient",
    "BridgeError",
    "bridge_client_factory",
]
