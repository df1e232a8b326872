"""Command-line vault client.

Usage:
    python -m keyra.client add --title T [--username U] [--url URL] [--category C] [--generate]
    python -m keyra.client update OLD_CID [--title T] ... [--new-secret]
    python -m keyra.client delete CID
    python -m keyra.client rekey NEW_SHIELDED
    python -m keyra.client list [CID ...]
    python -m keyra.client generate [--length N] [--no-uppercase] ...
    python -m keyra.client strength
    python -m keyra.client hash-password

The memo transaction is signed by an external wallet: mutating commands print
the memo JSON and the monitoring address it must be sent to.
"""

import argparse
import asyncio
import getpass
import json
import logging
import sys

from ..errors import KeyraError
from ..intents import SignalIntent
from ..ledger import LedgerClient, LedgerProgram
from ..logging import setup_logging
from ..store import StoreClient
from ..vault import VaultEntry, VaultSession, generate_secret, hash_password, strength_score
from .config import ClientConfig
from .service import IntentSubmitter, MutationResult, VaultService

logger = logging.getLogger("keyra.client")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyra", description="Keyra vault client")
    parser.add_argument("--ledger-url", default="", help="Ledger JSON-RPC endpoint")
    parser.add_argument("--store-url", default="", help="Object store API URL")
    parser.add_argument("--user", default="", help="Owner identity (default: KEYRA_USER_IDENTITY)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show info-level logs")

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Encrypt and upload a new entry")
    add.add_argument("--title", required=True)
    add.add_argument("--username", default="")
    add.add_argument("--url", default="")
    add.add_argument("--category", default="passwords")
    add.add_argument("--generate", action="store_true", help="Generate the secret instead of prompting")
    add.add_argument("--length", type=int, default=16, help="Generated secret length")

    update = sub.add_parser("update", help="Replace an entry with an edited copy")
    update.add_argument("old_cid")
    update.add_argument("--title")
    update.add_argument("--username")
    update.add_argument("--url")
    update.add_argument("--category")
    update.add_argument("--new-secret", action="store_true", help="Prompt for a new secret")

    delete = sub.add_parser("delete", help="Remove an entry from the index")
    delete.add_argument("cid")

    rekey = sub.add_parser("rekey", help="Rotate the shielded identity")
    rekey.add_argument("new_shielded")

    list_cmd = sub.add_parser("list", help="Decrypt and show entries")
    list_cmd.add_argument("cids", nargs="*", help="CIDs to load (default: the ledger index)")
    list_cmd.add_argument("--show-secrets", action="store_true")

    generate = sub.add_parser("generate", help="Generate a random secret")
    generate.add_argument("--length", type=int, default=12)
    generate.add_argument("--no-uppercase", action="store_true")
    generate.add_argument("--no-lowercase", action="store_true")
    generate.add_argument("--no-digits", action="store_true")
    generate.add_argument("--no-symbols", action="store_true")

    sub.add_parser("strength", help="Score a secret read from the terminal")
    sub.add_parser("hash-password", help="Print a password hash record for KEYRA_PASSWORD_HASH")

    return parser


def printing_submitter(monitoring_address: str) -> IntentSubmitter:
    """Submitter that prints the memo for an external wallet to sign and send."""

    async def submit(intent: SignalIntent) -> None:
        print(f"Send a memo transaction to {monitoring_address} with:")
        print(intent.to_memo())
        return None

    return submit


def unlock_session(config: ClientConfig) -> VaultSession:
    if not config.user_identity:
        raise SystemExit("No user identity: pass --user or set KEYRA_USER_IDENTITY")
    session = VaultSession()
    password = getpass.getpass("Master password: ")
    session.unlock(password, config.user_identity, config.password_hash or None)
    return session


def print_result(result: MutationResult) -> None:
    if result.cid:
        print(f"CID: {result.cid}")
    if result.signature:
        print(f"Signature: {result.signature}")


async def run_vault_command(args: argparse.Namespace, config: ClientConfig, session: VaultSession):
    store = StoreClient(config.store_url)
    ledger = LedgerClient(config.ledger_url)
    service = VaultService(
        session,
        store,
        printing_submitter(config.monitoring_address),
        program=LedgerProgram(ledger, config.program_id),
    )
    try:
        if args.command == "add":
            if args.generate:
                secret = generate_secret(args.length)
            else:
                secret = getpass.getpass("Secret: ")
            entry = VaultEntry(
                title=args.title,
                username=args.username,
                secret=secret,
                url=args.url,
                category=args.category,
            )
            print_result(await service.add_entry(entry))

        elif args.command == "update":
            current = await service.load_entry(args.old_cid)
            secret = getpass.getpass("New secret: ") if args.new_secret else None
            entry = current.merged(
                title=args.title,
                username=args.username,
                secret=secret,
                url=args.url,
                category=args.category,
            )
            print_result(await service.update_entry(args.old_cid, entry))

        elif args.command == "delete":
            print_result(await service.delete_entry(args.cid))

        elif args.command == "rekey":
            print_result(await service.rekey(args.new_shielded))

        elif args.command == "list":
            entries = await service.load_entries(args.cids or None)
            for stored in entries:
                data = json.loads(stored.entry.to_json())
                if not args.show_secrets:
                    data["secret"] = "********"
                print(f"{stored.cid}  {json.dumps(data)}")
            if not entries:
                print("No entries")
    finally:
        await store.close()
        await ledger.close()
        session.lock()


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)

    if args.command == "generate":
        print(generate_secret(
            args.length,
            uppercase=not args.no_uppercase,
            lowercase=not args.no_lowercase,
            digits=not args.no_digits,
            symbols=not args.no_symbols,
        ))
        return
    if args.command == "strength":
        print(strength_score(getpass.getpass("Secret: ")))
        return
    if args.command == "hash-password":
        password = getpass.getpass("Master password: ")
        if getpass.getpass("Repeat: ") != password:
            print("Passwords do not match", file=sys.stderr)
            sys.exit(1)
        print(hash_password(password))
        return

    setup_logging(console_level=logging.INFO if args.verbose else logging.WARNING)

    config = ClientConfig(
        ledger_url=args.ledger_url,
        store_url=args.store_url,
        user_identity=args.user,
    )
    try:
        session = unlock_session(config)
        asyncio.run(run_vault_command(args, config, session))
    except KeyraError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
