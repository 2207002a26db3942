"""CLI: switchboard watch"""

import click
from rich.console import Console

from switchboard.models.session import SessionState

console = Console()

STATE_STYLE = {
    SessionState.INITIALIZING: "dim",
    SessionState.AWAITING_SCAN: "yellow",
    SessionState.AUTHENTICATED: "cyan",
    SessionState.READY: "green",
    SessionState.DISCONNECTED: "red",
    SessionState.LOGGED_OUT: "red",
}


def _get_client():
    from switchboard.cli.main import _get_client
    return _get_client()


def _run(coro):
    from switchboard.cli.main import _run
    return _run(coro)


@click.command("watch")
def watch_cmd():
    """Stream session status, new-message notices and call alerts (Ctrl+C to exit)."""

    async def _watch():
        client = _get_client()

        def on_session(session, previous):
            style = STATE_STYLE[session.state]
            console.print(f"[{style}]session {session.id}: {session.state.value}[/{style}]")
            if session.pairing_code:
                console.print(f"[dim]pairing code: {session.pairing_code}[/dim]")

        def on_notice(notice):
            if notice is not None:
                console.print(f"[bold]{notice.title}[/bold] [dim]({notice.session_id})[/dim] {notice.body}")

        def on_provider_call(notice):
            kind = "video" if notice.is_video else "voice"
            console.print(f"[magenta]incoming {kind} call from {notice.caller_id} on {notice.session_id}[/magenta]")

        def on_call_phase(phase, call):
            if call is not None:
                console.print(f"[magenta]call {phase.value} ({call.peer_name or call.peer_id})[/magenta]")

        client.registry.add_listener(on_session)
        client.notifications.add_listener(on_notice)
        client.provider_calls.add_listener(on_provider_call)
        client.calls.add_phase_listener(on_call_phase)

        with console.status("Connecting..."):
            await client.connect()
        for session in client.sessions:
            on_session(session, None)
        console.print("[cyan]Watching (Ctrl+C to exit)[/cyan]")
        try:
            await client.wait()
        finally:
            await client.close()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        pass
