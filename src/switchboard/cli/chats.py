"""CLI: switchboard chats, switchboard messages, switchboard send"""

import json
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from switchboard.errors import SwitchboardError
from switchboard.models.conversation import DeliveryState

console = Console()

TICKS = {
    DeliveryState.PENDING: "…",
    DeliveryState.SENT: "✓",
    DeliveryState.DELIVERED: "✓✓",
    DeliveryState.READ: "[blue]✓✓[/blue]",
    DeliveryState.PLAYED: "[blue]✓✓[/blue]",
}


def _get_client():
    from switchboard.cli.main import _get_client
    return _get_client()


def _run(coro):
    from switchboard.cli.main import _run
    return _run(coro)


def _fmt_time(ts: int) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M") if ts else ""


@click.command("chats")
@click.argument("session_id")
@click.option("--json-output", "--json", is_flag=True)
def chats_cmd(session_id, json_output):
    """List conversations of a session."""

    async def _chats():
        client = _get_client()
        try:
            rows = await client.load_conversations(session_id)
        except SwitchboardError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        if json_output:
            click.echo(json.dumps([c.model_dump(mode="json", exclude={"last_message"}) for c in rows], indent=2))
            return
        table = Table(title=f"Conversations of {session_id}")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Unread", justify="right")
        table.add_column("Last activity")
        for c in rows:
            unread = f"[green]{c.unread_count}[/green]" if c.unread_count else ""
            name = f"{c.display_name} [dim](group)[/dim]" if c.is_group else c.display_name
            table.add_row(c.id, name, unread, _fmt_time(c.last_message_timestamp))
        console.print(table)

    _run(_chats())


@click.command("messages")
@click.argument("session_id")
@click.argument("chat_id")
@click.option("--limit", default=30, type=int)
def messages_cmd(session_id, chat_id, limit):
    """Show the message history of a conversation."""

    async def _messages():
        client = _get_client()
        try:
            history = await client.select_conversation(session_id, chat_id)
        except SwitchboardError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        for m in history[-limit:]:
            body = f"[italic]Media ({m.type or 'file'})[/italic]" if m.has_attachment else (m.body or "")
            if m.from_self:
                console.print(f"[dim]{_fmt_time(m.timestamp)}[/dim] [cyan]you:[/cyan] {body} {TICKS[m.delivery_state]}")
            else:
                who = (m.sender.pushname or m.sender.number) if m.sender else None
                console.print(f"[dim]{_fmt_time(m.timestamp)}[/dim] [green]{who or chat_id}:[/green] {body}")

    _run(_messages())


@click.command("send")
@click.argument("session_id")
@click.argument("chat_id")
@click.argument("text")
@click.option("--reply-to", default=None, help="Quote this message id")
def send_cmd(session_id, chat_id, text, reply_to):
    """Send a text message."""

    async def _send():
        client = _get_client()
        try:
            with console.status("Sending..."):
                await client.send_message(session_id, chat_id, text, quoted_message_id=reply_to)
        except SwitchboardError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        console.print("[green]Sent.[/green]")

    _run(_send())
