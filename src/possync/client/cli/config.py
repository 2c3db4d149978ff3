"""Configuration utilities for the possync CLI.

This module provides shared configuration functions used across CLI commands.
The application file only says where things are (database, log file, control
server); the sync settings themselves live in the database.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765


def get_config_dir() -> Path:
    """Get the configuration directory for possync.

    Returns:
        Path to $POSSYNC_HOME, or ~/.possync when it is not set.
    """
    home = os.environ.get("POSSYNC_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".possync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_db_path() -> Path:
    """Get the POS database path.

    Returns:
        Path to the configured database (default <config dir>/possync.db).
    """
    config = load_config()
    if config.get("db_path"):
        return Path(config["db_path"]).expanduser().resolve()
    return get_config_dir() / "possync.db"


def get_log_path() -> Path:
    """Get the log file path."""
    config = load_config()
    if config.get("log_path"):
        return Path(config["log_path"]).expanduser().resolve()
    return get_config_dir() / "possync.log"


def get_server_address() -> tuple[str, int]:
    """Get the host and port of the control server."""
    config = load_config()
    return str(config.get("host", DEFAULT_HOST)), int(config.get("port", DEFAULT_PORT))


def get_server_url() -> str:
    """Get the URL of the control server."""
    host, port = get_server_address()
    return f"http://{host}:{port}"
