"""CLI: switchboard auth login|status|logout"""

from typing import Optional

import click
from rich.console import Console

from switchboard.client import AsyncSwitchboard
from switchboard.config import ClientConfig
from switchboard.errors import AuthError

console = Console()


def _load_config() -> ClientConfig:
    from switchboard.cli.main import _load_config
    return _load_config()


def _save_config(cfg: ClientConfig) -> None:
    from switchboard.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from switchboard.cli.main import _run
    return _run(coro)


@click.group()
def auth():
    """Authentication commands."""


@auth.command("login")
@click.option("--base-url", default=None, help="Dashboard backend URL")
@click.option("--email", default=None)
def auth_login(base_url: Optional[str], email: Optional[str]):
    """Log in with operator email and password."""

    async def _login():
        cfg = _load_config()
        if base_url:
            cfg = cfg.model_copy(update={"base_url": base_url})
        client = AsyncSwitchboard(config=cfg)
        address = email or click.prompt("Email", default=cfg.email or None)
        password = click.prompt("Password", hide_input=True)
        try:
            with console.status("Logging in..."):
                result = await client.auth.login(address, password)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.http.close()

        _save_config(cfg.model_copy(update={"token": result["token"], "email": address}))
        console.print(f"[green]Logged in as {address}[/green]")
        console.print("[dim]Token saved to ~/.switchboard/config.json[/dim]")

    _run(_login())


@auth.command("status")
def auth_status():
    """Show current auth status."""
    cfg = _load_config()
    if cfg.token:
        console.print(f"[green]Logged in[/green] as {cfg.email or 'unknown'} ({cfg.base_url})")
    else:
        console.print("[yellow]Not logged in. Run `switchboard auth login`.[/yellow]")


@auth.command("logout")
def auth_logout():
    """Clear saved credentials."""
    cfg = _load_config()
    _save_config(cfg.model_copy(update={"token": None}))
    console.print("[green]Logged out.[/green]")
