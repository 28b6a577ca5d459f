"""
main.py — obs-panel application entrypoint.

Bootstraps:
  1. Config loading
  2. Session controller (connects to OBS, retries forever)
  3. FastAPI server (uvicorn) serving the panel state + operator intents

CLI:
  python run.py start          start the panel server
  python run.py init-config    create a default config.yaml
  python run.py check          test OBS connectivity and list scenes
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from obs_panel import __version__
from obs_panel.api import create_app, set_controller
from obs_panel.config import ConnectionParameters, ParameterStore, reload_settings
from obs_panel.core import ConnectionManager, ConnectionState, ObsSession, PanelError, StateChange
from obs_panel.panel import SessionController

console = Console()
app = typer.Typer(name="obs-panel", help="Scene control panel for a remote OBS instance")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


async def build_and_run(config_path: Optional[Path] = None) -> None:
    settings = reload_settings(config_path)
    setup_logging(settings.api.log_level)
    log = logging.getLogger("obs_panel")

    console.rule(f"[bold blue]obs-panel v{__version__}[/bold blue]")

    # 1. Session controller
    timeout = settings.obs.request_timeout
    controller = SessionController(
        store=ParameterStore(settings.panel.state_file),
        defaults=settings.obs.connection_parameters(),
        manager_factory=lambda: ConnectionManager(lambda: ObsSession(request_timeout=timeout)),
        retry_delay=settings.obs.retry_delay,
    )

    # 2. API
    set_controller(controller)
    fast_app = create_app()

    config = uvicorn.Config(
        fast_app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.api.log_level,
        loop="asyncio",
    )
    server = uvicorn.Server(config)

    # 3. Connect (non-fatal, retries in background)
    controller.start()

    console.print(f"\n[green]✓ OBS[/green]       {controller.params.describe()} (connecting, retry every {settings.obs.retry_delay}s)")
    console.print(f"[green]✓ API[/green]       http://{settings.api.host}:{settings.api.port}")
    console.print(f"[green]✓ WS[/green]        ws://{settings.api.host}:{settings.api.port}/ws")
    if settings.api.api_key:
        console.print(f"[green]✓ Auth[/green]      API key set — Bearer token required")
    else:
        console.print(f"[yellow]⚠ Auth[/yellow]      No API key set — open access (fine for LAN, not internet)")
    console.print(f"[green]✓ Docs[/green]      http://{settings.api.host}:{settings.api.port}/docs\n")

    loop = asyncio.get_running_loop()

    def shutdown():
        log.info("Shutdown signal received.")
        server.should_exit = True

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown)
        except NotImplementedError:
            pass  # Windows

    try:
        await server.serve()
    finally:
        await controller.stop()
        set_controller(None)


# ──────────────────────────────────────────────────────────────────────────────
# CLI commands
# ──────────────────────────────────────────────────────────────────────────────

@app.command()
def start(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    host: Optional[str] = typer.Option(None, "--host", help="API bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="API port"),
    obs_host: Optional[str] = typer.Option(None, "--obs-host", help="OBS WebSocket host"),
    obs_port: Optional[int] = typer.Option(None, "--obs-port", help="OBS WebSocket port"),
    obs_password: Optional[str] = typer.Option(None, "--obs-password", help="OBS WebSocket password"),
):
    """Start the obs-panel server."""
    import os
    if host:
        os.environ["API_HOST"] = host
    if port:
        os.environ["API_PORT"] = str(port)
    if obs_host:
        os.environ["OBS_HOST"] = obs_host
    if obs_port:
        os.environ["OBS_PORT"] = str(obs_port)
    if obs_password:
        os.environ["OBS_PASSWORD"] = obs_password
    asyncio.run(build_and_run(config))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    from obs_panel.config import Settings
    s = Settings.load()
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command("check")
def check_obs(
    host: str = typer.Option("localhost", "--host"),
    port: int = typer.Option(4455, "--port"),
    password: Optional[str] = typer.Option(None, "--password"),
):
    """Test OBS WebSocket connectivity and print the scene list."""
    async def _check() -> bool:
        params = ConnectionParameters(host=host, port=port, secret=password)
        manager = ConnectionManager()
        outcome: list[StateChange] = []
        manager.on_state_changed(outcome.append)
        await manager.connect(params)

        final = outcome[-1] if outcome else None
        if final is None or final.state is not ConnectionState.CONNECTED:
            reason = f"{final.message} (code {final.code})" if final else "no response"
            console.print(f"[red]✗ Could not connect to OBS at {params.url}[/red] — {reason}")
            manager.teardown()
            return False

        meta = final.metadata
        console.print(f"[green]✓ Connected to OBS[/green]")
        console.print(f"  OBS version:       {meta.get('obs_version')}")
        console.print(f"  WebSocket version: {meta.get('obs_web_socket_version')} (RPC {meta.get('rpc_version')})")
        console.print(f"  Platform:          {meta.get('platform')}")

        try:
            scene_set = await manager.query_scenes()
        except PanelError as e:
            console.print(f"[red]✗ Could not list scenes:[/red] {e}")
            manager.teardown()
            return False
        table = Table(title=f"Scenes ({len(scene_set.scenes)})", show_header=True)
        table.add_column("Scene", style="cyan")
        table.add_column("On program", style="green")
        for scene in scene_set.scenes:
            table.add_row(scene.name, "●" if scene.name == scene_set.active_scene else "")
        console.print(table)
        manager.teardown()
        return True

    if not asyncio.run(_check()):
        sys.exit(1)


if __name__ == "__main__":
    app()
