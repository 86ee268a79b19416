"""Provider factory functions for CLI.

Centralizes creation of the store, session settings and logging from
environment variables. Hides configuration details from command
implementations.
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

from ..config import RETENTION_DAYS, STARTING_CRYSTALS, LogLevel, SessionConfig
from ..store import MessageStore, create_message_store

# Default console for output
_console = Console()

DEFAULT_USER_ID = "local-user"


def get_store(console: Console | None = None) -> MessageStore:
    """Create the message store from environment variables.

    Returns:
        Message store instance (not yet connected)

    Raises:
        SystemExit: If the backend is unknown

    Environment variables:
        CHATVIEW_BACKEND: memory or sqlite (default: sqlite)
        CHATVIEW_DB_PATH: SQLite database file (default: ./chatview.db)
        CHATVIEW_STARTING_CRYSTALS: Balance of a new user (default: 100)
    """
    import typer

    con = console or _console
    backend = os.getenv("CHATVIEW_BACKEND", "sqlite").lower()
    kwargs: dict = {
        "starting_crystals": int(os.getenv("CHATVIEW_STARTING_CRYSTALS", str(STARTING_CRYSTALS))),
    }
    if backend == "sqlite":
        kwargs["path"] = os.getenv("CHATVIEW_DB_PATH", "./chatview.db")

    try:
        return create_message_store(backend, **kwargs)
    except ValueError as e:
        con.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e


def get_user_id() -> str:
    """Current user from CHATVIEW_USER_ID (default: local-user)."""
    return os.getenv("CHATVIEW_USER_ID", DEFAULT_USER_ID)


def get_session_config() -> SessionConfig:
    """Session settings from environment variables.

    Environment variables:
        CHATVIEW_USER_ID: Current user
        CHATVIEW_USERNAME: Display name (default: You)
        CHATVIEW_LANGUAGE: Translation target (default: English)
    """
    return SessionConfig(
        user_id=get_user_id(),
        username=os.getenv("CHATVIEW_USERNAME", "You"),
        target_language=os.getenv("CHATVIEW_LANGUAGE", "English"),
    )


def get_retention_days() -> int:
    """Retention window for maintenance purges (CHATVIEW_RETENTION_DAYS)."""
    return int(os.getenv("CHATVIEW_RETENTION_DAYS", str(RETENTION_DAYS)))


def setup_logging(
    level: str | None = None,
    console: Console | None = None,
    to_console: bool = True
) -> int:
    """Send chatview logs to the console through Rich.

    Args:
        level: debug, info, warning or error; falls back to CHATVIEW_LOG_LEVEL
        console: Console for the handler (default: stderr)
        to_console: False while a full-screen app owns the terminal

    Returns:
        The numeric level in use
    """
    level_str = level or os.getenv("CHATVIEW_LOG_LEVEL", "warning")
    numeric = LogLevel.from_string(level_str)
    root = logging.getLogger("chatview")
    root.handlers = []
    if to_console:
        handler = RichHandler(console=console or Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(numeric)
    return numeric
