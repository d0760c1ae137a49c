"""
wagate - 多会话 WhatsApp Web 自动化网关

模块概述：
    本文件是 wagate 包的入口文件（__init__.py），定义了包的元信息。
    wagate 为每个租户/会话 ID 维护一个独立的浏览器自动化客户端，
    并负责这些长期运行的外部进程的生命周期监管。

    整个框架的核心功能包括：
    - 会话注册表（进程内唯一的"会话是否存在"判断依据）
    - 带重试和超时的健康检查
    - 页面崩溃/关闭后的自动恢复
    - 会话事件到 Webhook 的转发
    - 会话持久化目录的安全删除（防路径穿越）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "📡"
