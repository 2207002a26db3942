"""CLI: switchboard sessions list|create|logout"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from switchboard.errors import SwitchboardError

console = Console()


def _get_client():
    from switchboard.cli.main import _get_client
    return _get_client()


def _run(coro):
    from switchboard.cli.main import _run
    return _run(coro)


@click.group()
def sessions():
    """Provider session management."""


@sessions.command("list")
@click.option("--json-output", "--json", is_flag=True)
def sessions_list(json_output):
    """List sessions known to the backend."""

    async def _list():
        client = _get_client()
        try:
            rows = await client.registry.refresh()
        finally:
            await client.close()
        if json_output:
            click.echo(json.dumps([s.model_dump(mode="json") for s in rows], indent=2))
            return
        table = Table(title=f"Sessions ({len(rows)} total)")
        table.add_column("ID", style="bold")
        table.add_column("State")
        table.add_column("Account")
        for s in rows:
            info = s.user_info or {}
            table.add_row(s.id, s.state.value, str(info.get("pushname") or info.get("wid") or ""))
        console.print(table)

    _run(_list())


@sessions.command("create")
@click.argument("session_id", required=False)
def sessions_create(session_id: Optional[str]):
    """Start a new provider session. Pair it by scanning the code shown by `watch`."""

    async def _create():
        client = _get_client()
        try:
            with console.status("Creating session..."):
                session = await client.create_session(session_id)
        except SwitchboardError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        console.print(f"[green]Session created: {session.id}[/green]")

    _run(_create())


@sessions.command("logout")
@click.argument("session_id")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
def sessions_logout(session_id, yes):
    """Log a session out of the provider."""

    async def _logout():
        client = _get_client()
        try:
            await client.registry.refresh()
            with console.status("Logging out..."):
                done = await client.logout_session(
                    session_id,
                    lambda s: yes or click.confirm(f"Log out session {s.id}?", default=False),
                )
        except SwitchboardError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        if done:
            console.print(f"[green]Logout requested for {session_id}.[/green]")
        else:
            console.print("[yellow]Cancelled.[/yellow]")

    _run(_logout())
