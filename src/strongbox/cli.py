"""
Command line front-end for StrongBox.

The CLI plays the client role: passwords are read with getpass and
pre-hashed (SHA-512 hex, base64url) before they reach the services.

Usage:
    strongbox keygen --store
    strongbox --config strongbox.json register alice_smith
    strongbox upload alice_smith ./report.pdf
    strongbox download alice_smith report.pdf -o /tmp/report.pdf
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_configuration
from .context import AppContext, build_context
from .core.exceptions import StrongBoxError, ValidationError
from .core.models import Credentials
from .core.stream import sanitize_filename
from .logging_config import configure_logging
from .security import keystore
from .security.cipher import generate_key
from .security.credentials import prehash_password

logger = logging.getLogger(__name__)


def _prompt_credentials(username: str, confirm: bool = False) -> Credentials:
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        raise ValidationError("passwords do not match")
    return Credentials(username, prehash_password(password))


def cmd_keygen(args, ctx: Optional[AppContext]) -> int:
    if args.delete:
        try:
            removed = keystore.delete_key()
        except RuntimeError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print("Key removed from the OS keyring" if removed else "No key stored in the OS keyring")
        return 0

    key = generate_key()
    if args.store:
        try:
            keystore.save_key(key)
        except RuntimeError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print("Key stored in the OS keyring")
    else:
        print(key.hex())
    return 0


def cmd_register(args, ctx: AppContext) -> int:
    user = ctx.users.register(_prompt_credentials(args.username, confirm=True))
    print(f"Registered {user.username}")
    return 0


def cmd_login(args, ctx: AppContext) -> int:
    user = ctx.users.authenticate(_prompt_credentials(args.username))
    if user is None:
        print("Invalid username or password", file=sys.stderr)
        return 1
    print(f"Welcome back, {user.username}")
    return 0


def cmd_passwd(args, ctx: AppContext) -> int:
    ctx.users.update_user(args.username, _prompt_credentials(args.username, confirm=True))
    print(f"Password changed for {args.username}")
    return 0


def cmd_users(args, ctx: AppContext) -> int:
    for user in ctx.users.list_users():
        print(user.username)
    return 0


def cmd_deluser(args, ctx: AppContext) -> int:
    ctx.users.delete_user(args.username)
    print(f"Deleted user {args.username}")
    return 0


def cmd_upload(args, ctx: AppContext) -> int:
    ctx.users.get_user(args.username)
    src = Path(args.path).expanduser()
    name = args.name or src.name
    try:
        with open(src, "rb") as f:
            file = ctx.files.upload(args.username, name, f)
    except OSError as e:
        print(f"error: cannot read {src}: {e}", file=sys.stderr)
        return 1
    print(f"Uploaded {file.name} ({file.size} bytes)")
    return 0


def cmd_download(args, ctx: AppContext) -> int:
    descriptor = ctx.files.download(args.username, args.name)
    out = Path(args.output) if args.output else Path(sanitize_filename(args.name))
    try:
        with open(out, "wb") as f:
            f.write(descriptor.stream.read())
    except OSError as e:
        print(f"error: cannot write {out}: {e}", file=sys.stderr)
        return 1
    print(f"Saved {out} ({descriptor.length} bytes, {descriptor.content_type})")
    return 0


def cmd_list(args, ctx: AppContext) -> int:
    for file in ctx.files.list_files(args.username):
        print(f"{file.size:>12}  {file.created_at:%Y-%m-%d %H:%M}  {file.name}")
    return 0


def cmd_check(args, ctx: AppContext) -> int:
    missing = ctx.files.missing_blobs(args.username)
    for file in missing:
        print(f"missing: {file.name}")
    return 1 if missing else 0


def cmd_rename(args, ctx: AppContext) -> int:
    file = ctx.files.rename_file(args.username, args.name, args.new_name)
    print(f"Renamed to {file.name}")
    return 0


def cmd_delete(args, ctx: AppContext) -> int:
    ctx.files.delete_file(args.username, args.name)
    print(f"Deleted {args.name}")
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strongbox", description="Encrypted file storage"
    )
    parser.add_argument("--config", default=None, help="Path to a JSON configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keygen", help="Generate a new AES-256 key")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--store", action="store_true", help="Save it in the OS keyring instead of printing it")
    group.add_argument("--delete", action="store_true", help="Remove the key stored in the OS keyring")
    p.set_defaults(func=cmd_keygen, needs_context=False)

    for name, func, help_text in (
        ("register", cmd_register, "Register a new user"),
        ("login", cmd_login, "Check a user's password"),
        ("passwd", cmd_passwd, "Change a user's password"),
        ("deluser", cmd_deluser, "Delete a user and all their files"),
        ("list", cmd_list, "List a user's files"),
        ("check", cmd_check, "Report files whose encrypted blob is missing"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("username")
        p.set_defaults(func=func, needs_context=True)

    p = sub.add_parser("users", help="List registered users")
    p.set_defaults(func=cmd_users, needs_context=True)

    p = sub.add_parser("upload", help="Encrypt and store a file")
    p.add_argument("username")
    p.add_argument("path")
    p.add_argument("--name", default=None, help="Display name (defaults to the file name)")
    p.set_defaults(func=cmd_upload, needs_context=True)

    p = sub.add_parser("download", help="Decrypt a stored file")
    p.add_argument("username")
    p.add_argument("name")
    p.add_argument("-o", "--output", default=None)
    p.set_defaults(func=cmd_download, needs_context=True)

    p = sub.add_parser("rename", help="Rename a stored file")
    p.add_argument("username")
    p.add_argument("name")
    p.add_argument("new_name")
    p.set_defaults(func=cmd_rename, needs_context=True)

    p = sub.add_parser("delete", help="Delete a stored file")
    p.add_argument("username")
    p.add_argument("name")
    p.set_defaults(func=cmd_delete, needs_context=True)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    ctx = None
    try:
        if args.needs_context:
            ctx = build_context(load_configuration(args.config))
        return args.func(args, ctx)
    except StrongBoxError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        if ctx is not None:
            ctx.close()
