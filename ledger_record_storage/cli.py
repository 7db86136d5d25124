"""
Interactive command loop for a record store.

Usage:
    ledger-records --channel demo                    # interactive
    ledger-records --channel demo create hello       # one command, then exit
    ledger-records --backend local --channel demo list

Errors from individual commands are printed and the loop continues.
Failing to reach the ledger or an invalid channel at startup exits
with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from .config import LedgerBackend, StoreConfig
from .exceptions import (
    ConfigurationError,
    InvalidChannelError,
    RecordNotFoundError,
    RecordStorageError,
    RejectedError,
    TransportError,
)
from .logging_utils import configure_structured_logging
from .records.types import DataRecord
from .store import LookupStrategy, RecordStore

logger = logging.getLogger(__name__)

HELP_TEXT = """Available commands:
  create <data>       - Create a new record
  read <id>           - Read a record by ID
  update <id> <data>  - Update a record
  delete <id>         - Delete a record
  list                - List all records
  history <id>        - Show every version written for a record
  put <key> <data>    - Create or update the record with id <key>
  get <key>           - Read the record with id <key>
  help                - Show this help
  exit                - Exit the application"""

# command name -> (argument count, usage)
_COMMANDS: dict[str, tuple[int, str]] = {
    "create": (1, "create <data>"),
    "read": (1, "read <id>"),
    "update": (2, "update <id> <data>"),
    "delete": (1, "delete <id>"),
    "list": (0, "list"),
    "history": (1, "history <id>"),
    "put": (2, "put <key> <data>"),
    "get": (1, "get <key>"),
    "help": (0, "help"),
    "exit": (0, "exit"),
}

# Commands whose last argument is free-form data
_DATA_COMMANDS = frozenset({"create", "update", "put"})


class CommandError(ValueError):
    """Raised for a command line that cannot be parsed."""


@dataclass(frozen=True)
class Command:
    """A parsed command line."""

    name: str
    args: tuple[str, ...] = ()


def parse_command(line: str) -> Command:
    """Parse one command line.

    Words are separated by whitespace and quotes have no meaning. The
    last argument of ``create``, ``update`` and ``put`` takes the rest
    of the line verbatim, so data may contain spaces and apostrophes.

    Raises:
        CommandError: For unknown commands or wrong argument counts
    """
    parts = line.split(maxsplit=1)
    if not parts:
        raise CommandError("Empty command")

    name = parts[0].lower()
    if name not in _COMMANDS:
        names = ", ".join(_COMMANDS)
        raise CommandError(f"Unknown command. Available commands: {names}")

    arity, usage = _COMMANDS[name]
    rest = parts[1].strip() if len(parts) > 1 else ""
    if name in _DATA_COMMANDS:
        args = rest.split(maxsplit=arity - 1)
    else:
        args = rest.split()
    if len(args) != arity:
        raise CommandError(f"Usage: {usage}")
    return Command(name=name, args=tuple(args))


def format_record(record: DataRecord) -> str:
    updated = record.updated_at.isoformat() if record.updated_at else "never"
    data = record.payload.decode("utf-8", errors="replace")
    return f"{record.id} (created={record.created_at.isoformat()}, updated={updated}): {data}"


async def handle_command(store: RecordStore, command: Command) -> str:
    """Run one command against a store and return its output.

    Raises:
        RecordStorageError: If the store operation fails
    """
    name, args = command.name, command.args

    if name == "create":
        record_id = await store.create(args[0])
        return f"Created record with ID: {record_id}"
    if name in ("read", "get"):
        return format_record(await store.read(args[0]))
    if name == "update":
        await store.update(args[0], args[1])
        return f"Updated record {args[0]}"
    if name == "put":
        record = await store.put(args[0], args[1])
        return f"Stored record {record.id}"
    if name == "delete":
        await store.delete(args[0])
        return f"Deleted record {args[0]}"
    if name == "list":
        records = await store.list()
        lines = [f"Found {len(records)} records:"]
        lines.extend(f"  {format_record(r)}" for r in records)
        return "\n".join(lines)
    if name == "history":
        versions = await store.history(args[0])
        if not versions:
            raise RecordNotFoundError(args[0])
        lines = [f"{len(versions)} version(s) of {args[0]}:"]
        for position, record in versions:
            marker = " [deleted]" if record.deleted else ""
            lines.append(f"  @{position}{marker} {format_record(record)}")
        return "\n".join(lines)
    return HELP_TEXT


async def run_loop(store: RecordStore) -> None:
    """Read commands from stdin until ``exit`` or end of input."""
    print(f"\n{HELP_TEXT}")
    while True:
        try:
            line = await asyncio.to_thread(input, "\n> ")
        except EOFError:
            break

        line = line.strip()
        if not line:
            continue

        try:
            command = parse_command(line)
        except CommandError as e:
            print(f"Error: {e}")
            continue
        if command.name == "exit":
            break

        try:
            output = await handle_command(store, command)
        except RecordNotFoundError as e:
            print(e.message)
            continue
        except RecordStorageError as e:
            logger.error(f"Command failed: {e.message}")
            print(f"Error: {e.message}")
            continue
        print(output)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-records",
        description="Key-value record store on an append-only ledger",
        epilog="With no command, starts an interactive command loop.",
    )
    parser.add_argument("--channel", help="Channel name (zero-padded to the channel width)")
    parser.add_argument("--channel-hex", help="Channel identifier as hex")
    parser.add_argument("--channel-width", type=int, help="Channel width in bytes")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in LedgerBackend],
        help="Ledger backend (default: celestia)",
    )
    parser.add_argument("--endpoint", help="Ledger node RPC URL")
    parser.add_argument("--local-path", help="Directory for the local file ledger")
    parser.add_argument("--start-height", type=int, help="Position to check first for metadata")
    parser.add_argument("--search-limit", type=int, help="Discovery lookback window")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in LookupStrategy],
        help="Lookup strategy (default: indexed)",
    )
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run once")
    return parser


def load_config(args: argparse.Namespace) -> StoreConfig:
    overrides = {
        "channel": args.channel,
        "channel_hex": args.channel_hex,
        "channel_width": args.channel_width,
        "backend": args.backend,
        "endpoint": args.endpoint,
        "local_path": args.local_path,
        "start_hint": args.start_height,
        "search_limit": args.search_limit,
        "strategy": args.strategy,
    }
    if args.config is not None:
        return StoreConfig.from_yaml(args.config, **overrides)
    return StoreConfig.from_environment(**overrides)


async def run(args: argparse.Namespace) -> int:
    """Open the store and run one command or the interactive loop."""
    try:
        config = load_config(args)
        channel = config.channel_id()
    except (ConfigurationError, InvalidChannelError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    logger.info(f"Configuration - channel: {channel}, backend: {config.backend.value}")
    async with config.build_client() as client:
        try:
            store = await RecordStore.open(
                client,
                channel,
                strategy=config.strategy,
                start_hint=config.start_hint,
                search_limit=config.search_limit,
            )
        except (TransportError, InvalidChannelError, RejectedError) as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

        if args.command:
            try:
                print(await handle_command(store, parse_command(" ".join(args.command))))
            except CommandError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 2
            except RecordStorageError as e:
                print(f"Error: {e.message}", file=sys.stderr)
                return 1
            return 0

        await run_loop(store)
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    configure_structured_logging(level, json_output=args.json_logs)
    for noisy in ("aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(1)


if __name__ == "__main__":
    main()
