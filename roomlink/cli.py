#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from shared.config import load_config
from shared.errors import ConfigurationError, RoomNotFound, RoomlinkError
from shared.log import configure_root_logging, get_logger
from shared.urls import is_room_code
from .session import Session, create_session

app = typer.Typer(help="roomlink: spawn bots into a live game room")
console = Console()
logger = get_logger(__name__)

MAX_BOTS = 60


@dataclass
class SpawnSummary:
    name: str
    attempted: int = 0
    connected: List[int] = field(default_factory=list)
    failed: List[Tuple[int, str]] = field(default_factory=list)


async def spawn_bots(session: Session, count: int, name: str, delay: float) -> SpawnSummary:
    """
    Spawn ``count`` bots one after another, pausing ``delay`` seconds between them.

    Every bot joins under the same display name; the summary tells them apart by number.
    """
    summary = SpawnSummary(name)
    for i in range(count):
        number = i + 1
        summary.attempted += 1
        try:
            await session.spawn(name)
            console.print(f"[green]Bot {number} connected successfully[/]")
            summary.connected.append(number)
        except RoomNotFound:
            # every later spawn would fail the same way
            raise
        except RoomlinkError as e:
            console.print(f"[red]Bot {number} failed to connect[/]: {e}")
            summary.failed.append((number, type(e).__name__))

        if i < count - 1:
            await asyncio.sleep(delay)
    return summary


def render_summary(summary: SpawnSummary) -> Table:
    table = Table(title=f"Bot spawning summary ({summary.name})")
    table.add_column("Bot", justify="right")
    table.add_column("Result")
    outcomes = [(n, "[green]connected[/]") for n in summary.connected]
    outcomes += [(n, f"[red]{reason}[/]") for n, reason in summary.failed]
    for number, result in sorted(outcomes):
        table.add_row(str(number), result)
    return table


@app.callback()
def cli() -> None:
    """roomlink: spawn bots into a live game room"""


@app.command()
def spawn(
    room_code: str = typer.Argument(..., help="Numeric room code, e.g. 123456"),
    count: int = typer.Option(5, "--count", "-n", help=f"Number of bots (1-{MAX_BOTS})"),
    name: str = typer.Option("Bot", help="Bot display name, shared by every bot"),
    delay: float = typer.Option(0.5, help="Seconds to wait between spawns"),
    hider: Optional[str] = typer.Option(None, help="module:attribute of the hide(token, key, cover) callable"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    log_level: str = typer.Option("WARNING", help="Log level for library output"),
    stay: bool = typer.Option(True, help="Keep connections open until Ctrl+C"),
):
    """Spawn bots into ROOM_CODE and print a summary."""
    if not is_room_code(room_code):
        console.print("[red]Error:[/] Invalid room code. Please provide a valid room code (e.g., 123456).")
        raise typer.Exit(code=1)
    if not 1 <= count <= MAX_BOTS:
        console.print(f"[red]Error:[/] Invalid bot count. Please provide a number between 1 and {MAX_BOTS}.")
        raise typer.Exit(code=1)
    if delay < 0:
        console.print("[red]Error:[/] Delay cannot be negative.")
        raise typer.Exit(code=1)

    configure_root_logging(log_level)
    try:
        config = load_config(config_path)
        if hider:
            config = config.with_overrides(hider=hider)
        session = create_session(room_code, config=config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        raise typer.Exit(code=2)

    console.print(f"Preparing to spawn {count} bots in room code: {room_code} with the name \"{name}\"...")

    async def main_loop() -> int:
        async with session:
            try:
                summary = await spawn_bots(session, count, name, delay)
            except RoomNotFound as e:
                console.print(f"[red]{e}[/]")
                return 1
            console.print(render_summary(summary))
            console.print(f"Successfully connected: {len(summary.connected)}  Failed: {len(summary.failed)}")
            if stay and session.live_connections:
                console.print("Press Ctrl+C to exit")
                await asyncio.gather(*(c.wait_closed() for c in session.live_connections))
            return 0 if summary.connected else 1

    try:
        exit_code = asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("Interrupted, closing connections")
        exit_code = 0
    raise typer.Exit(code=exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
