# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Command-line interface for NEDA server management.

    neda token create --principal-id <uuid> [--scopes credentials,admin]
    neda token list
    neda token revoke (--principal-id <uuid> | --hash <sha256> | --token <raw>)
    neda migrate status | up | down
    neda serve
"""

from __future__ import annotations

import argparse
import os
import secrets
import stat
import sys
import time
from datetime import datetime
from pathlib import Path
from uuid import UUID

from ..core.db import Database
from ..core.exceptions import UpstreamFailure
from ..core.logging import configure_logging
from ..core.migrations import MigrationRunner
from .auth import USER_SCOPE, TokenStore, hash_token
from .config import get_settings


def get_secure_token_dir() -> Path:
    """Get or create the secure token directory.

    Creates ~/.neda/tokens/ with 0700 permissions.
    """
    token_dir = Path.home() / ".neda" / "tokens"
    token_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(token_dir, stat.S_IRWXU)
    return token_dir


def save_token_securely(principal_id: str, raw_token: str) -> Path:
    """Write a raw session token to a 0600 file and return its path."""
    token_dir = get_secure_token_dir()

    safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in principal_id)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    # Random suffix keeps rapid successive tokens apart
    filename = f"{safe_id}_{timestamp}_{secrets.token_hex(4)}.token"
    token_file = token_dir / filename

    # Create the file with restricted permissions from the start
    fd = os.open(
        token_file,
        os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
        stat.S_IRUSR | stat.S_IWUSR,  # 0600
    )
    try:
        os.write(fd, raw_token.encode("utf-8"))
        os.write(fd, b"\n")
    finally:
        os.close(fd)

    return token_file


# =============================================================================
# TOKEN COMMANDS
# =============================================================================


def cmd_token_create(args: argparse.Namespace) -> int:
    """Create a new session token."""
    try:
        UUID(args.principal_id)
    except ValueError:
        print(f"Invalid principal id '{args.principal_id}': must be a UUID", file=sys.stderr)
        return 1

    store = TokenStore(args.token_file)

    expires_at = None
    if args.expires_days:
        expires_at = time.time() + (args.expires_days * 24 * 60 * 60)

    scopes = [s.strip() for s in args.scopes.split(",") if s.strip()] if args.scopes else [USER_SCOPE]

    raw_token = store.create(
        principal_id=args.principal_id,
        description=args.description,
        scopes=scopes,
        expires_at=expires_at,
    )

    # Saved to a file, never printed, so it stays out of shell history and logs
    token_file = save_token_securely(args.principal_id, raw_token)

    print(f"Session token created for principal '{args.principal_id}' (scopes: {', '.join(scopes)})")
    print(f"Token file: {token_file}")
    print("Permissions: 0600 (owner read/write only)")
    print()
    print("Use it as:")
    print(f'  curl -H "Authorization: Bearer $(cat {token_file})" http://localhost:8420/api/v1/credentials')
    print()
    print("IMPORTANT: Delete the token file after copying to a secure location.")
    return 0


def cmd_token_list(args: argparse.Namespace) -> int:
    """List all session tokens."""
    tokens = TokenStore(args.token_file).list_tokens()

    if not tokens:
        print("No tokens found.")
        return 0

    print(f"{'Principal ID':<38} {'Scopes':<22} {'Created':<18} {'Expires':<20}")
    print("-" * 100)

    for token in tokens:
        created = datetime.fromtimestamp(token.created_at).strftime("%Y-%m-%d %H:%M")
        if token.expires_at:
            expires = datetime.fromtimestamp(token.expires_at).strftime("%Y-%m-%d %H:%M")
            if token.is_expired():
                expires += " (EXPIRED)"
        else:
            expires = "Never"
        print(f"{token.principal_id:<38} {','.join(token.scopes):<22} {created:<18} {expires:<20}")

    print()
    print(f"Total: {len(tokens)} token(s)")
    return 0


def cmd_token_revoke(args: argparse.Namespace) -> int:
    """Revoke session tokens by principal, hash or raw value."""
    store = TokenStore(args.token_file)

    if args.principal_id:
        tokens = store.get_by_principal(args.principal_id)
        if not tokens:
            print(f"No tokens found for principal '{args.principal_id}'")
            return 1
        for token in tokens:
            store.revoke(token.token_hash)
        print(f"Revoked {len(tokens)} token(s) for principal '{args.principal_id}'")
        return 0

    token_hash = args.hash or (hash_token(args.token) if args.token else None)
    if token_hash is None:
        print("Must provide --principal-id, --hash, or --token")
        return 1

    if store.revoke(token_hash):
        print("Token revoked.")
        return 0
    print("Token not found.")
    return 1


# =============================================================================
# MIGRATION COMMANDS
# =============================================================================


def _runner(args: argparse.Namespace) -> MigrationRunner:
    return MigrationRunner(Database(get_settings()), migrations_dir=args.migrations_dir)


def cmd_migrate_status(args: argparse.Namespace) -> int:
    """Show applied and pending migrations."""
    for m in _runner(args).status():
        applied = m.applied_at.strftime("%Y-%m-%d %H:%M") if m.applied_at else ""
        print(f"{m.version:<6} {m.state:<18} {m.description:<40} {applied}")
    return 0


def cmd_migrate_up(args: argparse.Namespace) -> int:
    """Apply pending migrations."""
    applied = _runner(args).up(target=args.target, dry_run=args.dry_run)
    print(f"Applied: {', '.join(applied)}" if applied else "No pending migrations.")
    return 0


def cmd_migrate_down(args: argparse.Namespace) -> int:
    """Roll back migrations."""
    rolled_back = _runner(args).down(target=args.target, dry_run=args.dry_run)
    print(f"Rolled back: {', '.join(rolled_back)}" if rolled_back else "Nothing to roll back.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP server."""
    from .app import run

    run()
    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="NEDA server management CLI", prog="neda")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Token commands
    token_parser = subparsers.add_parser("token", help="Manage session tokens")
    token_parser.add_argument(
        "--token-file",
        type=Path,
        default=None,
        help="Path to token storage file (default: NEDA_TOKEN_FILE)",
    )
    token_sub = token_parser.add_subparsers(dest="token_command", required=True)

    create_parser = token_sub.add_parser("create", help="Create a new session token")
    create_parser.add_argument("--principal-id", "-p", required=True, help="Principal the token authenticates as")
    create_parser.add_argument("--description", "-d", default="", help="Human-readable description")
    create_parser.add_argument(
        "--scopes",
        "-s",
        default=USER_SCOPE,
        help=f"Comma-separated list of scopes (default: {USER_SCOPE}; add 'admin' for the admin console)",
    )
    create_parser.add_argument("--expires-days", "-e", type=int, default=None, help="Token expires after N days")
    create_parser.set_defaults(func=cmd_token_create)

    list_parser = token_sub.add_parser("list", help="List all session tokens")
    list_parser.set_defaults(func=cmd_token_list)

    revoke_parser = token_sub.add_parser("revoke", help="Revoke session tokens")
    revoke_parser.add_argument("--principal-id", "-p", help="Revoke all tokens for this principal")
    revoke_parser.add_argument("--hash", help="Token hash to revoke")
    revoke_parser.add_argument("--token", "-t", help="Raw token to revoke")
    revoke_parser.set_defaults(func=cmd_token_revoke)

    # Migration commands
    migrate_parser = subparsers.add_parser("migrate", help="Manage database migrations")
    migrate_parser.add_argument("--migrations-dir", type=Path, default=None, help="Directory of NNN_name.py migrations")
    migrate_sub = migrate_parser.add_subparsers(dest="migrate_command", required=True)

    status_parser = migrate_sub.add_parser("status", help="List applied and pending migrations")
    status_parser.set_defaults(func=cmd_migrate_status)

    for name, func, help_text in (
        ("up", cmd_migrate_up, "Apply pending migrations"),
        ("down", cmd_migrate_down, "Roll back migrations (latest only, or down to --target)"),
    ):
        sub = migrate_sub.add_parser(name, help=help_text)
        sub.add_argument("--target", default=None, help="Target version")
        sub.add_argument("--dry-run", action="store_true", help="Report without executing")
        sub.set_defaults(func=func)

    # Server
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    if args.command == "token" and args.token_file is None:
        args.token_file = get_settings().token_file

    if args.command == "migrate":
        configure_logging()
        try:
            return args.func(args)
        except UpstreamFailure as e:
            print(f"Database unavailable: {e.message}", file=sys.stderr)
            return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
