#!/usr/bin/env python3
"""
tinyauth-user CLI - User Management Tool

Admin tool for the tinyauth users file and the user metadata file.
Changes made here are picked up by tinyauth on its next restart.

Usage:
    tinyauth-user list                          # List all users
    tinyauth-user add <username>                # Add user (prompts for password)
    tinyauth-user passwd <username>             # Set a new password
    tinyauth-user phone <username> <phone>      # Set recovery phone
    tinyauth-user totp-reset <username>         # Turn off TOTP for a user
    tinyauth-user recovery-key <username>       # Show TOTP recovery key
"""

import argparse
import getpass
import os
import sys
from typing import Optional

from .accounts import recovery_key_for
from .database import MetadataStore
from .exceptions import MetadataStoreError, UserFileError
from .passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long
from .users import UserFile, UserRecord


def get_users(args) -> UserFile:
    return UserFile(args.users_file)


def get_metadata(args) -> MetadataStore:
    return MetadataStore(args.users_toml)


def read_password(args) -> Optional[str]:
    """Password from stdin (--password-stdin) or an interactive prompt."""
    if args.password_stdin:
        return sys.stdin.readline().rstrip("\n")
    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("Error: Passwords do not match", file=sys.stderr)
        return None
    return password


def cmd_list(args) -> int:
    """List all users."""
    try:
        users = get_users(args).list_all()
        metadata = get_metadata(args)

        if not users:
            print("No users found.")
            return 0

        print(f"{'Username':<32} {'TOTP':<6} {'Phone'}")
        print("-" * 60)
        for user in users:
            print(
                f"{user.username:<32} {'Yes' if user.totp_enabled else 'No':<6} "
                f"{metadata.get_phone(user.username) or '-'}"
            )
        print(f"\nTotal: {len(users)} user(s)")
        return 0

    except (UserFileError, MetadataStoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_add(args) -> int:
    """Add a new user."""
    try:
        users = get_users(args)
        if users.exists(args.username):
            print(f"Error: Username '{args.username}' already exists", file=sys.stderr)
            return 1

        password = read_password(args)
        if not password:
            print("Error: Password is required", file=sys.stderr)
            return 1
        if password_too_long(password):
            print(f"Error: Password is longer than {MAX_PASSWORD_BYTES} bytes", file=sys.stderr)
            return 1

        users.upsert(UserRecord(username=args.username, password=hash_password(password)))
        print(f"User '{args.username}' created.")
        return 0

    except UserFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_passwd(args) -> int:
    """Set a user's password."""
    try:
        users = get_users(args)
        record = users.find(args.username)
        if record is None:
            print(f"Error: User '{args.username}' not found", file=sys.stderr)
            return 1

        password = read_password(args)
        if not password:
            print("Error: Password is required", file=sys.stderr)
            return 1
        if password_too_long(password):
            print(f"Error: Password is longer than {MAX_PASSWORD_BYTES} bytes", file=sys.stderr)
            return 1

        record.password = hash_password(password)
        users.upsert(record)
        print(f"Password updated for '{args.username}'.")
        return 0

    except UserFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_phone(args) -> int:
    """Set a user's recovery phone."""
    try:
        get_metadata(args).set_phone(args.username, args.phone)
        print(f"Phone for '{args.username}' set to {args.phone or '(none)'}.")
        return 0

    except MetadataStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_totp_reset(args) -> int:
    """Clear a user's TOTP secret."""
    try:
        users = get_users(args)
        record = users.find(args.username)
        if record is None:
            print(f"Error: User '{args.username}' not found", file=sys.stderr)
            return 1
        if not record.totp_enabled:
            print(f"User '{args.username}' has no TOTP configured.")
            return 0

        record.totp_secret = ""
        users.upsert(record)
        print(f"TOTP disabled for '{args.username}'.")
        return 0

    except UserFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_recovery_key(args) -> int:
    """Print the TOTP recovery key."""
    print(recovery_key_for(args.username))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyauth-user",
        description="Manage tinyauth users and their account metadata"
    )

    # Global options
    parser.add_argument(
        "--users-file", "-u",
        default=os.environ.get("USERS_FILE_PATH", "/data/users.txt"),
        help="Path to tinyauth users file (default: $USERS_FILE_PATH or /data/users.txt)"
    )
    parser.add_argument(
        "--users-toml", "-m",
        default=os.environ.get("USERS_TOML", "/users/users.toml"),
        help="Path to metadata file (default: $USERS_TOML or /users/users.toml)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List all users")

    add_parser = subparsers.add_parser("add", help="Add a new user")
    add_parser.add_argument("username", help="Username (usually an email address)")
    add_parser.add_argument("--password-stdin", action="store_true", help="Read password from stdin")

    passwd_parser = subparsers.add_parser("passwd", help="Set a user's password")
    passwd_parser.add_argument("username", help="Username")
    passwd_parser.add_argument("--password-stdin", action="store_true", help="Read password from stdin")

    phone_parser = subparsers.add_parser("phone", help="Set a user's recovery phone")
    phone_parser.add_argument("username", help="Username")
    phone_parser.add_argument("phone", help="Phone number (empty string to clear)")

    totp_parser = subparsers.add_parser("totp-reset", help="Disable TOTP for a user")
    totp_parser.add_argument("username", help="Username")

    recovery_parser = subparsers.add_parser("recovery-key", help="Show TOTP recovery key")
    recovery_parser.add_argument("username", help="Username")

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "list": cmd_list,
        "add": cmd_add,
        "passwd": cmd_passwd,
        "phone": cmd_phone,
        "totp-reset": cmd_totp_reset,
        "recovery-key": cmd_recovery_key,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
