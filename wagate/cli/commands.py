"""
CLI 命令模块 - wagate 的所有命令行命令定义。

本模块使用 Typer 框架定义 wagate 的 CLI 命令体系：
- onboard：初始化配置文件和会话存储根目录
- gateway：启动会话监管服务（恢复持久化会话并持续运行）
- sessions list：列出存储根下的持久化会话目录
- status：查看配置摘要

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）

二开提示：
- 如需对外暴露 HTTP 接口，可在 gateway 中把 SessionService 挂到任意 ASGI 框架的路由上
"""

import asyncio

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from wagate import __logo__, __version__

# 创建 Typer 应用实例（CLI 根命令）
app = typer.Typer(
    name="wagate",
    help=f"{__logo__} wagate - WhatsApp Web session supervisor",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} wagate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wagate CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 wagate 配置和会话存储根目录。

    执行流程：
    1. 在 ~/.wagate/ 下创建默认配置文件 config.json
    2. 创建会话存储根目录
    3. 打印后续操作指引
    """
    from wagate.config.loader import get_config_path, save_config
    from wagate.config.schema import Config
    from wagate.utils.helpers import ensure_dir

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    root = ensure_dir(config.storage_root)
    console.print(f"[green]✓[/green] Created session storage at {root}")

    console.print(f"\n{__logo__} wagate is ready!")
    console.print("\nNext steps:")
    console.print("  1. Set your webhook URL in [cyan]~/.wagate/config.json[/cyan] (webhook.baseUrl)")
    console.print("  2. Start the automation bridge and run: [cyan]wagate gateway[/cyan]")


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    启动会话监管服务。

    执行流程：
    1. 加载配置并组装会话服务（注册表、健康检查、事件转发、生命周期）
    2. 扫描存储根，恢复所有持久化会话
    3. 持续运行，直到收到中断信号
    4. 退出时停止崩溃恢复并关闭 Webhook 客户端

    参数:
        verbose: 是否输出 wagate 内部日志
    """
    from wagate.config.loader import load_config
    from wagate.service import build_service

    if verbose:
        logger.enable("wagate")
    else:
        logger.disable("wagate")

    config = load_config()
    console.print(f"{__logo__} Starting wagate gateway...")
    console.print(f"[green]✓[/green] Session storage: {config.storage_root}")
    console.print(f"[green]✓[/green] Automation bridge: {config.automation.bridge_url}")
    if not config.webhook.base_url:
        console.print("[yellow]Warning: No default webhook URL configured[/yellow]")

    async def run():
        service = build_service(config)
        try:
            restored = await service.restore()
            console.print(f"[green]✓[/green] Restored {len(restored)} session(s)")
            await asyncio.Event().wait()
        finally:
            await service.shutdown()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Session Commands
# ============================================================================


sessions_app = typer.Typer(help="Manage persisted sessions")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list():
    """以表格形式列出存储根下的所有持久化会话目录。"""
    from wagate.config.loader import load_config
    from wagate.utils.helpers import parse_session_dir

    config = load_config()
    root = config.storage_root

    if not root.is_dir():
        console.print(f"[yellow]Session storage {root} does not exist[/yellow]")
        return

    table = Table(title="Persisted Sessions")
    table.add_column("Session ID", style="cyan")
    table.add_column("Webhook", style="yellow")
    table.add_column("Folder", style="dim")

    count = 0
    for child in sorted(root.iterdir()):
        session_id = parse_session_dir(child.name) if child.is_dir() else None
        if not session_id:
            continue
        webhook = config.webhook_url_for(session_id) or "[dim]not configured[/dim]"
        table.add_row(session_id, webhook, str(child))
        count += 1

    if count == 0:
        console.print("No sessions.")
        return
    console.print(table)


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """
    显示 wagate 配置摘要。

    展示内容：
    - 配置文件路径和状态
    - 会话存储根目录和状态
    - Webhook 与自动化桥接配置
    """
    from wagate.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    root = config.storage_root

    console.print(f"{__logo__} wagate Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Sessions: {root} {'[green]✓[/green]' if root.exists() else '[red]✗[/red]'}")
    console.print(f"Webhook: {config.webhook.base_url or '[dim]not set[/dim]'}")
    console.print(f"Bridge: {config.automation.bridge_url}")
    console.print(f"Recover sessions: {'on' if config.sessions.recover_sessions else 'off'}")
    if config.webhook.disabled_callbacks:
        console.print(f"Disabled callbacks: {', '.join(config.webhook.disabled_callbacks)}")


if __name__ == "__main__":
    app()
