#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.table import Table

from shared.log import configure_root_logging, get_logger
from .config import ClientConfig, ConfigError, load_config
from .credentials import CredentialStore
from .manager import ConnectionManager
from .resolver import AddressResolver, build_socket_url

app = typer.Typer(help="livelink real-time client")
console = Console()
logger = get_logger(__name__)


def _load(config_file: Optional[Path], origin: Optional[str]) -> ClientConfig:
    try:
        config = load_config(config_file)
        if origin:
            config.origin = origin
            config.validate()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration[/]: {e}")
        raise typer.Exit(code=2)
    return config


def _mask(token: str) -> str:
    return token[:4] + "..." if len(token) > 8 else "***"


def _parse_line(line: str) -> Any:
    """A line that is valid JSON is sent as is, anything else as a JSON string."""
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return line


ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file (default ./livelink.yaml)")
OriginOption = typer.Option(None, help="Origin of the browsing context, e.g. https://app.example.com")


@app.command()
def login(
    token: str = typer.Option(..., prompt=True, hide_input=True, help="Authentication token"),
    config_file: Optional[Path] = ConfigOption,
):
    """Store the authentication token used by `run`."""
    config = _load(config_file, None)
    CredentialStore(config.credentials_path).set(config.credential_key, token)
    console.print(f"Saved token to {config.credentials_path}")


@app.command()
def logout(config_file: Optional[Path] = ConfigOption):
    """Remove the stored authentication token."""
    config = _load(config_file, None)
    if CredentialStore(config.credentials_path).remove(config.credential_key):
        console.print("Token removed")
    else:
        console.print("No token stored")


@app.command()
def resolve(
    config_file: Optional[Path] = ConfigOption,
    origin: Optional[str] = OriginOption,
):
    """Print the endpoint address a connection attempt would use."""
    config = _load(config_file, origin)
    token = CredentialStore(config.credentials_path).get(config.credential_key)
    if not token:
        console.print("[red]No authentication token found[/]. Run `livelink login` first.")
        raise typer.Exit(code=1)

    resolver = AddressResolver(
        config.location,
        config_path=config.config_path,
        timeout=config.config_timeout,
        dev_port_map=config.dev_port_map,
    )
    base = asyncio.run(resolver.resolve(token))
    table = Table(title="Endpoint")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("origin", config.location.origin)
    table.add_row("base", base)
    table.add_row("socket", build_socket_url(base, _mask(token), config.socket_path))
    console.print(table)


@app.command()
def run(
    config_file: Optional[Path] = ConfigOption,
    origin: Optional[str] = OriginOption,
):
    """Connect, print inbound messages and send typed lines."""
    config = _load(config_file, origin)
    console.print(f"[bold green]livelink starting[/] from {config.location.origin}")

    async def main_loop() -> None:
        manager = ConnectionManager.from_config(config)

        async def on_message(message: Any) -> None:
            console.print(f"[bold cyan]recv[/] {json.dumps(message)}")

        async def on_status(connected: bool) -> None:
            if connected:
                console.print("[green]connected[/]")
            else:
                console.print(f"[yellow]disconnected[/], retrying in {config.reconnect_delay}s")

        manager.on_message(on_message)
        manager.on_status(on_status)

        if not await manager.start():
            console.print("[red]No authentication token found[/]. Run `livelink login` first.")
            return

        try:
            while True:
                line = (await ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if line == "/help":
                    console.print("/status, /messages, /quit; anything else is sent")
                    continue
                if line == "/status":
                    console.print(f"state={manager.state.value} connected={manager.is_connected} received={len(manager.messages)}")
                    continue
                if line == "/messages":
                    table = Table(title="Received")
                    table.add_column("#")
                    table.add_column("Message")
                    for i, message in enumerate(manager.messages):
                        table.add_row(str(i), json.dumps(message))
                    console.print(table)
                    continue
                if not manager.is_connected:
                    console.print("[red]Not connected[/], message dropped")
                await manager.send_message(_parse_line(line))
        except EOFError:
            pass
        finally:
            await manager.stop()

    configure_root_logging(level="WARNING")
    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("bye")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
