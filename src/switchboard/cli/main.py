"""
Switchboard CLI — `switchboard` command.

Commands:
  switchboard auth login                 Operator login
  switchboard sessions <cmd>             Session list / create / logout
  switchboard chats <session-id>         Conversations of a session
  switchboard messages <sid> <chat-id>   Message history of a conversation
  switchboard send <sid> <chat-id> <text>
  switchboard watch                      Live session, message and call alerts
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install switchboard-sdk[cli]")

from switchboard.client import AsyncSwitchboard
from switchboard.config import CONFIG_FILE, ClientConfig, load_config, save_config

console = Console()


def _load_config() -> ClientConfig:
    return load_config(CONFIG_FILE)


def _save_config(cfg: ClientConfig) -> None:
    save_config(cfg, CONFIG_FILE)


def _get_client() -> AsyncSwitchboard:
    cfg = _load_config()
    if not cfg.token:
        console.print("[red]Not logged in. Run `switchboard auth login` first.[/red]")
        raise SystemExit(1)
    return AsyncSwitchboard(config=cfg)


def _run(coro):
    return asyncio.get_event_loop().run_until_complete(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log SDK activity to stderr")
def main(verbose: bool):
    """Switchboard CLI — operate many messaging accounts from one terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands from separate modules
from switchboard.cli.auth import auth
from switchboard.cli.chats import chats_cmd, messages_cmd, send_cmd
from switchboard.cli.sessions import sessions
from switchboard.cli.watch import watch_cmd

main.add_command(auth)
main.add_command(sessions)
main.add_command(chats_cmd)
main.add_command(messages_cmd)
main.add_command(send_cmd)
main.add_command(watch_cmd)


if __name__ == "__main__":
    main()
