"""
LazyFav CLI — command-line interface.

Usage:
    lazyfav like                 # like the playing track (logs in on first run)
    lazyfav like --no-notify -v
    lazyfav status               # where the tokens live and how fresh they are
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from lazyfav import __version__
from lazyfav.errors import LazyFavError

app = typer.Typer(
    name="lazyfav",
    help="LazyFav — like the Spotify track that is playing right now",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]LazyFav[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LazyFav — like the Spotify track that is playing right now."""


@app.command()
def like(
    config: str = typer.Option(
        "lazyfav.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
    notify: bool = typer.Option(
        True,
        "--notify/--no-notify",
        help="Show a desktop notification with the result",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log what is happening",
    ),
) -> None:
    """Like the currently playing track, logging in first if needed."""
    from lazyfav.actions import LikeOutcome
    from lazyfav.config import LazyFavConfig
    from lazyfav.log_setup import configure_logging

    try:
        cfg = LazyFavConfig.load(config if Path(config).exists() else None)
        configure_logging("DEBUG" if verbose else cfg.log_level, err_console)
        outcome = asyncio.run(_run_like(cfg, notify=notify and cfg.notifications))
    except LazyFavError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if outcome is LikeOutcome.NOTHING_PLAYING:
        console.print("No track currently playing.")
    elif outcome is LikeOutcome.FAILED:
        raise typer.Exit(1)


async def _run_like(cfg, *, notify: bool):  # noqa: ANN001, ANN202
    from lazyfav.actions import like_current_track
    from lazyfav.auth.oauth2 import TokenExchanger
    from lazyfav.notify import get_notifier
    from lazyfav.session import SessionOrchestrator
    from lazyfav.spotify import SpotifyClient

    client_id, client_secret = cfg.require_credentials()

    async with TokenExchanger(
        client_id,
        client_secret,
        redirect_uri=cfg.redirect_uri,
        token_url=cfg.spotify.token_url,
        timeout=cfg.http_timeout,
    ) as exchanger:
        session = SessionOrchestrator(
            cfg,
            exchanger=exchanger,
            show_url=lambda url: console.print(f"Please visit: {url}", soft_wrap=True),
        )
        console.print("Checking Spotify login...", style="dim")
        access_token = await session.ensure_access_token()

    async with SpotifyClient(
        access_token,
        base_url=cfg.spotify.api_base_url,
        timeout=cfg.http_timeout,
    ) as client:
        return await like_current_track(client, get_notifier(notify, console))


@app.command()
def status(
    config: str = typer.Option(
        "lazyfav.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """Show where the credentials are stored and whether they are fresh."""
    from lazyfav.auth.store import TokenStore
    from lazyfav.config import LazyFavConfig

    try:
        cfg = LazyFavConfig.load(config if Path(config).exists() else None)
    except LazyFavError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    store = TokenStore(cfg.token_file)
    record = store.load()

    table = Table(title="Spotify Login")
    table.add_column("Item", style="bold")
    table.add_column("Value")
    table.add_row("Token file", str(store.path))

    if record is None:
        table.add_row("Status", "[yellow]Not logged in[/yellow]")
        console.print(table)
        return

    now = time.time()
    remaining = record.seconds_remaining(now)
    issued = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.issued_at))
    table.add_row("Issued", issued)
    if record.is_fresh(now):
        table.add_row("Status", f"[green]Fresh[/green] ({remaining}s left)")
    else:
        table.add_row("Status", "[yellow]Expired[/yellow] (refreshes on next run)")
    console.print(table)


if __name__ == "__main__":
    app()
