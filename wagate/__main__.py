"""
wagate 模块入口点 - 支持通过 `python -m wagate` 方式启动

模块概述：
    当用户执行 `python -m wagate` 时，Python 会自动查找并执行此文件。
    本文件仅作为启动跳板，实际的 CLI 命令逻辑定义在 cli/commands.py 中。

    启动链路：
    python -m wagate → __main__.py → cli/commands.py 中的 Typer app
"""

from wagate.cli.commands import app

if __name__ == "__main__":
    app()
