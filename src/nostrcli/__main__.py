"""CLI entry point for nostrcli.

Examples:
    ```bash
    python -m nostrcli generate-keys
    python -m nostrcli show-keys
    python -m nostrcli send "hello nostr" -t intro
    python -m nostrcli show-feed -t nostr -l 50
    python -m nostrcli relay add wss://relay.damus.io
    python -m nostrcli --config ~/.nostr-cli-app/config.yaml relay list
    ```
"""

import argparse
import asyncio
import datetime
import getpass
import logging
import sys
from pathlib import Path

from nostrcli.core.client import Client
from nostrcli.core.logger import Logger, StructuredFormatter
from nostrcli.exceptions import ConfigurationError, NostrCliError
from nostrcli.models.filter import Filter
from nostrcli.models.keys import Keypair, encode_npub, parse_public_key
from nostrcli.models.relay import normalize_relay_url
from nostrcli.utils.keys import DEFAULT_DATA_DIR


DEFAULT_CONFIG = DEFAULT_DATA_DIR / "config.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(prog="nostrcli", description="Nostr command-line client")

    parser.add_argument(
        "--config",
        type=Path,
        help=f"Config file path (default: {DEFAULT_CONFIG}, used if present)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    gen = commands.add_parser("generate-keys", help="Generate and store a new identity")
    gen.add_argument("-p", "--password", help="Encryption password (prompted if omitted)")
    gen.add_argument("--force", action="store_true", help="Replace an existing identity")

    imp = commands.add_parser("import-keys", help="Store an existing hex or nsec secret key")
    imp.add_argument("secret", nargs="?", help="Secret key (prompted if omitted)")
    imp.add_argument("-p", "--password", help="Encryption password (prompted if omitted)")
    imp.add_argument("--force", action="store_true", help="Replace an existing identity")

    show = commands.add_parser("show-keys", help="Show the stored identity")
    show.add_argument("--public", action="store_true", help="Only show the public key (no password)")

    send = commands.add_parser("send", help="Publish a text note")
    send.add_argument("content", help="Note text")
    send.add_argument("-t", "--hashtag", action="append", default=[], help="Hashtag (repeatable)")

    feed = commands.add_parser("show-feed", help="Show recent text notes")
    feed.add_argument("-p", "--pubkey", help="Only notes by this author (hex or npub)")
    feed.add_argument("-t", "--hashtag", help="Only notes with this hashtag")
    feed.add_argument("-l", "--limit", type=int, default=20, help="Number of notes (default: 20)")

    relay = commands.add_parser("relay", help="Manage the relay list")
    relay_commands = relay.add_subparsers(dest="relay_command", required=True)
    relay_commands.add_parser("list", help="List configured relays")
    relay_add = relay_commands.add_parser("add", help="Add a relay")
    relay_add.add_argument("url")
    relay_remove = relay_commands.add_parser("remove", help="Remove a relay")
    relay_remove.add_argument("url")

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root handler (stderr)."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def build_client(config_path: Path | None) -> Client:
    """Build a client from *config_path*, or the default config if it exists."""
    if config_path is not None:
        return Client.from_yaml(config_path)
    default = DEFAULT_CONFIG.expanduser()
    if default.exists():
        return Client.from_yaml(default)
    return Client()


def _new_password() -> str:
    password = getpass.getpass("Password to encrypt the key (empty for none): ")
    if getpass.getpass("Repeat password: ") != password:
        raise ConfigurationError("passwords do not match")
    return password


def _unlock(client: Client) -> Keypair:
    password = None
    if client.keystore.requires_password():
        password = getpass.getpass("Password to decrypt the key: ")
    return client.load_identity(password)


def _format_time(created_at: int) -> str:
    return datetime.datetime.fromtimestamp(created_at, tz=datetime.UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


async def run_command(client: Client, args: argparse.Namespace) -> int:
    """Execute one parsed command against *client*."""
    if args.command == "generate-keys":
        password = args.password if args.password is not None else _new_password()
        keypair = client.generate_identity(password or None, overwrite=args.force)
        print("Generated a new key pair")
        print(f"Public key: {keypair.npub}")
        print(f"Key file:   {client.keystore.path}")

    elif args.command == "import-keys":
        secret = args.secret or getpass.getpass("Secret key (hex or nsec): ")
        password = args.password if args.password is not None else _new_password()
        keypair = client.import_identity(secret, password or None, overwrite=args.force)
        print(f"Imported key pair {keypair.npub}")

    elif args.command == "show-keys":
        if args.public:
            print(f"Public key (hex):    {client.get_public_key()}")
            return 0
        keypair = _unlock(client)
        print(f"Public key (hex):    {keypair.public_key}")
        print(f"Public key (bech32): {keypair.npub}")
        print(f"Secret key (hex):    {keypair.secret_hex()}")
        print(f"Secret key (bech32): {keypair.nsec()}")

    elif args.command == "send":
        _unlock(client)
        tags = [["t", tag.lstrip("#").lower()] for tag in args.hashtag]
        event = client.build_and_sign_note(args.content, tags=tags)
        result = await client.publish(event)
        print(f"Event {event.id}")
        for url, outcome in result.items():
            suffix = f" ({outcome.message})" if outcome.message else ""
            print(f"  {outcome.status:<11} {url}{suffix}")
        if not result.accepted:
            print("No relay accepted the note", file=sys.stderr)
            return 1

    elif args.command == "show-feed":
        authors = [parse_public_key(args.pubkey)] if args.pubkey else None
        query = Filter.text_notes(authors=authors, hashtag=args.hashtag, limit=args.limit)
        print("Fetching events...")
        snapshot = await client.fetch_feed(query)
        print(f"Fetched {len(snapshot)} events")
        for event in snapshot:
            print("-----------------------------------")
            print(f"Author:  {encode_npub(event.pubkey)}")
            print(f"Time:    {_format_time(event.created_at)}")
            print(f"Content: {event.content}")

    elif args.command == "relay":
        if args.relay_command == "list":
            records = client.list_relays()
            if not records:
                print("No relays configured")
            for i, record in enumerate(records, start=1):
                print(f"{i}. {record.url}")
        elif args.relay_command == "add":
            if await client.add_relay(args.url):
                print(f"Added relay {normalize_relay_url(args.url)}")
            else:
                print(f"Relay {normalize_relay_url(args.url)} is already configured")
        elif args.relay_command == "remove":
            url = normalize_relay_url(args.url)
            if await client.remove_relay(url):
                print(f"Removed relay {url}")
            elif url in client.relay_urls():
                print(f"Relay {url} is not configured (it is a default, used until a relay is added)")
            else:
                print(f"Relay {url} is not configured")

    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the client, and run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        client = build_client(args.config)
        async with client:
            return await run_command(client, args)
    except (NostrCliError, ValueError, FileNotFoundError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
