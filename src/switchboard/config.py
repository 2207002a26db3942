"""
Client configuration.

Values come from constructor arguments, the CLI's JSON file
(``~/.switchboard/config.json``) and ``SWITCHBOARD_*`` environment variables,
in increasing order of precedence for the file/env pair.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from switchboard.calls.signaling import DEFAULT_ICE_SERVERS
from switchboard.notifications import DEFAULT_TIMEOUT_S
from switchboard.transport.http import DEFAULT_BASE_URL

CONFIG_FILE = Path.home() / ".switchboard" / "config.json"

ENV_OVERRIDES = {
    "SWITCHBOARD_BASE_URL": "base_url",
    "SWITCHBOARD_TOKEN": "token",
    "SWITCHBOARD_DISPLAY_NAME": "display_name",
}

logger = logging.getLogger(__name__)


class ClientConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    token: Optional[str] = None
    email: Optional[str] = None
    display_name: str = "Admin"
    ice_servers: list[dict[str, Any]] = list(DEFAULT_ICE_SERVERS)
    notification_timeout: float = DEFAULT_TIMEOUT_S
    request_timeout: float = 30.0
    connect_timeout: float = 15.0
    transports: list[str] = ["websocket"]

    model_config = {"extra": "ignore"}


def load_config(path: Path = CONFIG_FILE, env: Optional[dict[str, str]] = None) -> ClientConfig:
    env = os.environ if env is None else env
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        data = {}
    except json.JSONDecodeError as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        data = {}
    if not isinstance(data, dict):
        data = {}
    for var, field in ENV_OVERRIDES.items():
        if env.get(var):
            data[field] = env[var]
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid config %s, using defaults: %s", path, e.errors()[:3])
        return ClientConfig()


def save_config(cfg: ClientConfig, path: Path = CONFIG_FILE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg.model_dump(exclude_defaults=True), indent=2))
