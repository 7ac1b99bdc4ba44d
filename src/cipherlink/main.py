"""
Cipherlink - Command line entry point.

Created by orpheus497

Drives the whole envelope flow from a terminal: onboarding, sharing the
public identity, connecting a peer, sealing and opening envelopes.
There is no network transport; delivery is simulated locally.
"""

import argparse
import getpass
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import Config
from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    LOGS_DIR,
    PASSWORD_ENV_VAR,
)
from .envelope import SealedEnvelope
from .errors import CipherlinkError
from .opener import open_envelope
from .session import ChatSession
from .storage import SessionStore
from .utils import format_fingerprint, format_timestamp_ms, truncate_string

logger = logging.getLogger(__name__)

console = Console()
error_console = Console(stderr=True)


def setup_logging(data_dir: Path, config: Config, debug: bool = False) -> None:
    """Configure the root logger from config: rotating file log and optional console log."""
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.get("logging", "file_logging", True):
        logs_dir = data_dir / LOGS_DIR
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / LOG_FILENAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(file_handler)

    if debug or config.get("logging", "console_logging", False):
        root.addHandler(RichHandler(console=error_console, show_path=False))


def _read_password(confirm: bool = False) -> str:
    password = os.environ.get(PASSWORD_ENV_VAR)
    if password:
        return password
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise SystemExit("Passwords do not match.")
    return password


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).expanduser().read_text(encoding="utf-8")


def _print_identity(session: ChatSession, out: Console = console) -> None:
    identity = session.public_identity()
    table = Table(show_header=False, box=None)
    table.add_row("User", escape(identity.display_name))
    table.add_row("User ID", identity.id)
    table.add_row("Fingerprint", format_fingerprint(identity.fingerprint))
    if session.peer is not None:
        table.add_row(
            "Peer", f"{escape(session.peer.display_name)} ({format_fingerprint(session.peer.fingerprint)})"
        )
    out.print(Panel(table, title="Your Identity"))


def _print_message(session: ChatSession, message) -> None:
    when = format_timestamp_ms(message.timestamp)
    if message.is_rejection:
        console.print(f"[bold red]⚠ {escape(message.text)}[/] [dim]({message.error.value}, {when})[/]")
        return
    if message.is_local_origin:
        sender = "You"
    elif session.peer is not None and session.peer.id == message.sender_id:
        sender = escape(session.peer.display_name)
    else:
        sender = message.sender_id
    console.print(f"[bold]{sender}[/] [dim]{when}[/]\n{escape(message.text)}")


def cmd_init(args, store: SessionStore, config: Config) -> int:
    if store.exists():
        error_console.print("[red]An identity already exists. Delete it first.[/]")
        return 1
    session = ChatSession.create(
        args.name,
        key_size=config.get("crypto", "rsa_key_size"),
        max_history=config.get("limits", "max_history"),
    )
    store.save(session, _read_password(confirm=True))
    _print_identity(session)
    return 0


def cmd_whoami(args, store: SessionStore, config: Config) -> int:
    session = store.load(_read_password())
    _print_identity(session, error_console)
    console.print(
        session.public_identity_json(), markup=False, emoji=False, highlight=False, soft_wrap=True
    )
    return 0


def cmd_connect(args, store: SessionStore, config: Config) -> int:
    password = _read_password()
    session = store.load(password)
    peer = session.connect_peer(_read_input(args.source))
    store.save(session, password)
    console.print(
        f"[green]Connected to {escape(peer.display_name)}[/] "
        f"[dim]E2E Encrypted | {format_fingerprint(peer.fingerprint)}[/]"
    )
    return 0


def cmd_send(args, store: SessionStore, config: Config) -> int:
    password = _read_password()
    session = store.load(password)
    envelope = session.send(args.text)
    console.print(
        envelope.to_json(indent=2), markup=False, emoji=False, highlight=False, soft_wrap=True
    )

    # Simulated delivery: loop the envelope back and open it locally
    echoed = open_envelope(
        SealedEnvelope.from_json(envelope.to_json()), session.public_identity(), session.session_key
    )
    error_console.print(f"[dim](Simulated delivery)[/] {escape(truncate_string(echoed, 80))}")
    store.save(session, password)
    return 0


def cmd_open(args, store: SessionStore, config: Config) -> int:
    password = _read_password()
    session = store.load(password)
    envelope = SealedEnvelope.from_json(_read_input(args.source))
    message = session.receive(envelope)
    store.save(session, password)
    _print_message(session, message)
    return 2 if message.is_rejection else 0


def cmd_history(args, store: SessionStore, config: Config) -> int:
    session = store.load(_read_password())
    for message in session.history:
        _print_message(session, message)
    return 0


def cmd_disconnect(args, store: SessionStore, config: Config) -> int:
    password = _read_password()
    session = store.load(password)
    session.disconnect()
    store.save(session, password)
    console.print("Disconnected.")
    return 0


def cmd_delete(args, store: SessionStore, config: Config) -> int:
    password = _read_password()
    session = store.load(password)
    if not args.yes:
        answer = console.input(
            "Delete your identity and all data? This cannot be undone. [y/N] "
        )
        if answer.strip().lower() not in ("y", "yes"):
            console.print("Aborted.")
            return 1
    session.delete()
    store.delete()
    console.print("Identity deleted.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cipherlink",
        description="Cipherlink - signed, encrypted message envelopes between two peers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cipherlink init Alice              # Create your identity
  cipherlink whoami > alice.json     # Share your public identity
  cipherlink connect bob.json        # Connect to a peer
  cipherlink send "hello"            # Seal a message
  cipherlink open envelope.json      # Open an envelope from your peer

Created by orpheus497
        """,
    )
    parser.add_argument("--version", action="version", version=f"Cipherlink {__version__}")
    parser.add_argument("--data-dir", type=str, default=None, help="Data directory")
    parser.add_argument("--config", type=str, default=None, help="Configuration file path")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a new identity")
    init.add_argument("name", help="Display name")
    init.set_defaults(func=cmd_init)

    sub.add_parser("whoami", help="Show your public identity").set_defaults(func=cmd_whoami)

    connect = sub.add_parser("connect", help="Connect to a peer from its public identity JSON")
    connect.add_argument("source", help="File with the peer identity, or - for stdin")
    connect.set_defaults(func=cmd_connect)

    send = sub.add_parser("send", help="Seal a message for the connected peer")
    send.add_argument("text", help="Message text")
    send.set_defaults(func=cmd_send)

    open_cmd = sub.add_parser("open", help="Open an envelope from the connected peer")
    open_cmd.add_argument("source", help="File with the envelope JSON, or - for stdin")
    open_cmd.set_defaults(func=cmd_open)

    sub.add_parser("history", help="Show the conversation").set_defaults(func=cmd_history)
    sub.add_parser("disconnect", help="Disconnect from the peer").set_defaults(func=cmd_disconnect)

    delete = sub.add_parser("delete", help="Delete your identity and all data")
    delete.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    delete.set_defaults(func=cmd_delete)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the Cipherlink command line."""
    args = build_parser().parse_args(argv)

    data_dir = Path(args.data_dir or DEFAULT_DATA_DIR).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    try:
        config = Config(Path(args.config) if args.config else data_dir / CONFIG_FILENAME)
        setup_logging(data_dir, config, args.debug)
        store = SessionStore(data_dir / config.get("storage", "session_filename"))
        return args.func(args, store, config)
    except CipherlinkError as e:
        logger.debug(f"Command failed: {e}", exc_info=True)
        error_console.print(f"[bold red][{e.code.value}][/] {escape(e.message)}")
        return 1
    except OSError as e:
        logger.error(f"I/O error: {e}", exc_info=True)
        error_console.print(f"[bold red]Error:[/] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
