"""
Chat Gateway CLI.

Command-line interface for running and checking the gateway.
"""

import asyncio
import json
import sys
import time

import typer
from rich.console import Console
from rich.table import Table

from chat_gateway.main import __version__

app = typer.Typer(
    name="chat-gateway",
    help="Real-time chat gateway CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to HOST setting)"),
    port: int = typer.Option(None, help="Bind port (defaults to PORT setting)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the gateway with uvicorn."""
    import uvicorn

    from shared.config.settings import settings

    host = host or settings.host
    port = port or settings.port
    console.print(f"[blue]Serving chat gateway on {host}:{port}{settings.ws_path}[/blue]")
    uvicorn.run(
        "chat_gateway.main:app",
        host=host,
        port=port,
        reload=reload,
        ws_ping_interval=settings.ping_interval_seconds,
        ws_ping_timeout=settings.ping_timeout_seconds,
    )


@app.command()
def config():
    """Show the effective configuration and any problems with it."""
    from shared.config.settings import get_settings

    current = get_settings()

    table = Table(title="Chat Gateway Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in current.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)

    errors = current.validate_runtime()
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Configuration valid[/green]")


# =============================================================================
# Connectivity Commands
# =============================================================================

@app.command()
def ws_test(
    url: str = typer.Option("ws://localhost:8060/ws", help="WebSocket URL"),
    username: str = typer.Option(None, help="Also join the chat with this name"),
):
    """Test WebSocket connectivity with a ping (and optionally a join)."""

    async def _test():
        import websockets

        console.print(f"[blue]Testing WebSocket: {url}[/blue]")

        try:
            async with websockets.connect(url, close_timeout=5) as ws:
                greeting = json.loads(await asyncio.wait_for(ws.recv(), timeout=5))
                console.print(f"[green]✓ Connected as {greeting.get('clientId')}[/green]")

                await ws.send(json.dumps({"type": "ping"}))
                response = await asyncio.wait_for(ws.recv(), timeout=5)
                console.print(f"[green]✓ Ping answered: {response}[/green]")

                if username:
                    await ws.send(json.dumps({"type": "join", "username": username}))
                    response = json.loads(await asyncio.wait_for(ws.recv(), timeout=5))
                    if response.get("type") == "joined":
                        console.print(f"[green]✓ Joined, {len(response['users'])} user(s) online[/green]")
                    else:
                        console.print(f"[red]✗ Join failed: {response.get('message')}[/red]")
                        raise typer.Exit(1)
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
            raise typer.Exit(1)
        except OSError as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")
            raise typer.Exit(1)

    asyncio.run(_test())


@app.command()
def health(
    url: str = typer.Option("http://localhost:8060/health", help="Health endpoint URL"),
):
    """Check gateway health and show its statistics."""
    import httpx

    try:
        start = time.time()
        response = httpx.get(url, timeout=5.0)
        elapsed = (time.time() - start) * 1000
    except httpx.HTTPError as e:
        console.print(f"[red]✗ {type(e).__name__}: {e}[/red]")
        raise typer.Exit(1)

    if response.status_code != 200:
        console.print(f"[red]✗ Status {response.status_code}[/red]")
        raise typer.Exit(1)

    data = response.json()
    clients = data.get("clients", {})

    table = Table(title="Chat Gateway Health")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", str(data.get("status")))
    table.add_row("Response Time", f"{elapsed:.0f}ms")
    table.add_row("Connections", str(clients.get("totalClients", "?")))
    table.add_row("Active Users", str(clients.get("activeUsers", "?")))
    table.add_row("Queued Messages", str(data.get("messageQueue", "?")))
    for name, value in data.get("metrics", {}).items():
        table.add_row(name, str(value))

    console.print(table)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Chat Gateway Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("Gateway", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
