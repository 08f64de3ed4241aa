"""
Main CLI entry point for hotline.

Usage:
    hotline serve [--host HOST] [--port PORT]
    hotline listen [--server URL] [--no-native]
    hotline apply [--target global|project] [--base-url URL]
"""

import asyncio
import contextlib
import random
import signal

import typer
from rich.console import Console

from hotline import config
from hotline.telemetry import setup_logging

app = typer.Typer(
    name="hotline",
    help="Sound effects and notifications for Claude Code hooks",
    no_args_is_help=True,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option(config.HOST, help="Listen address"),
    port: int = typer.Option(config.PORT, help="Listen port"),
) -> None:
    """Run the Hotline web server."""
    from hotline.web.app import main

    main(host=host, port=port)


def _print_event(message: dict, result) -> None:
    if message.get("type") == "clearLogs":
        console.print("[dim]-- logs cleared --[/dim]")
        return
    data = message.get("data") or {}
    line = f"[bold]{data.get('hookType')}[/bold] {data.get('toolName') or ''} {data.get('message') or ''}"
    if result is not None and result.sounds:
        line += f" [green]♪ {', '.join(result.sounds)}[/green]"
    console.print(line)


async def _listen(client) -> None:
    """SIGINT/SIGTERM 时停止客户端（关闭连接后正常退出）"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Windows 事件循环不支持 add_signal_handler，退回 KeyboardInterrupt
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, client.stop)
    await client.run()


@app.command()
def listen(
    server: str = typer.Option(config.DEFAULT_SERVER_URL, help="Hotline server URL"),
    no_native: bool = typer.Option(
        False, "--no-native", help="Use terminal alerts instead of desktop notifications"
    ),
    seed: int | None = typer.Option(None, help="Seed for sound selection"),
) -> None:
    """Play sounds and show notifications for live hook events."""
    from hotline.dispatch import (
        AlertNotifier,
        DesktopNotifier,
        DispatchEngine,
        NotificationGate,
        RealtimeClient,
        RemoteConfigSource,
        SystemSoundPlayer,
    )

    setup_logging()
    gate = NotificationGate(None if no_native else DesktopNotifier(), AlertNotifier(console))
    engine = DispatchEngine(
        config_source=RemoteConfigSource(server),
        player=SystemSoundPlayer(server, config.SOUND_CACHE_DIR),
        notifier=gate,
        rng=random.Random(seed),
    )
    client = RealtimeClient(server, engine, on_event=_print_event)

    console.print(f"Listening on {client.url} (Ctrl+C to stop)")
    try:
        asyncio.run(_listen(client))
    except KeyboardInterrupt:
        pass
    console.print("\nListener stopped")


@app.command()
def apply(
    target: str = typer.Option("global", help="global (~/.claude) or project (./.claude)"),
    base_url: str = typer.Option(config.DEFAULT_SERVER_URL, help="URL the hook commands post to"),
) -> None:
    """Compile the saved UI configuration into Claude Code settings.json."""
    from hotline.errors import StorageError
    from hotline.hooks.reconciler import compile_hooks
    from hotline.store import ConsumerSettingsStore, SaveTarget, UIConfigStore

    try:
        save_target = SaveTarget(target)
    except ValueError:
        console.print(f"[red]Unknown target: {target}[/red]")
        raise typer.Exit(code=2)

    settings_store = ConsumerSettingsStore(config.CLAUDE_DIR)
    ui_store = UIConfigStore(config.UI_CONFIG_FILE)
    try:
        hooks = compile_hooks(ui_store.load(settings_store.read_hooks(save_target)), base_url)
        path = settings_store.write_hooks(hooks, save_target)
    except StorageError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Saved {len(hooks)} hook types to {path}[/green]")


if __name__ == "__main__":
    app()
