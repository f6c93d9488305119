"""
TeamVault CLI — Bootstrap and maintenance commands.

Commands:
- teamvault init         — Create tables and storage directories
- teamvault create-user  — Register an account (first one becomes ADMIN)
- teamvault tree         — Print a user's (or a team's) folder tree
- teamvault search       — Search file names in a user's or team's tree
- teamvault purge-trash  — Permanently delete files trashed before the retention window
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from teamvault.documents.models import FolderNode
from teamvault.engine.config import load_config
from teamvault.engine.errors import ConfigError, TeamVaultError
from teamvault.vault import Vault

logger = logging.getLogger("teamvault.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="teamvault",
        description="TeamVault — versioned team file storage",
    )
    parser.add_argument("--config", default=None, help="Path to teamvault.yaml (default: auto-discover)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # teamvault init
    subparsers.add_parser("init", help="Create tables and storage directories")

    # teamvault create-user
    user_parser = subparsers.add_parser("create-user", help="Register a user account")
    user_parser.add_argument("username", help="Login name")
    user_parser.add_argument("--password", help="Password (prompted if not provided)")
    user_parser.add_argument("--name", help="Display name (default: username)")
    user_parser.add_argument("--email", help="Email address")

    # teamvault tree
    tree_parser = subparsers.add_parser("tree", help="Show a folder tree")
    tree_parser.add_argument("username", help="Acting user")
    tree_parser.add_argument("--team", type=int, help="Team id (default: personal tree)")

    # teamvault search
    search_parser = subparsers.add_parser("search", help="Search file names")
    search_parser.add_argument("username", help="Acting user")
    search_parser.add_argument("query", help="Case-insensitive substring")
    search_parser.add_argument("--team", type=int, help="Team id (default: personal tree)")

    # teamvault purge-trash
    purge_parser = subparsers.add_parser("purge-trash", help="Purge expired trash")
    purge_parser.add_argument(
        "--days", type=int, default=None, help="Retention in days (default: trash.retention_days)"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    commands = {
        "init": cmd_init,
        "create-user": cmd_create_user,
        "tree": cmd_tree,
        "search": cmd_search,
        "purge-trash": cmd_purge_trash,
    }

    vault = Vault(config, async_logging=False)
    try:
        vault.startup(create_tables=True)
        return commands[args.command](vault, args)
    except TeamVaultError as e:
        logger.debug(e.to_json())
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        vault.shutdown()


def cmd_init(vault: Vault, args: argparse.Namespace) -> int:
    cfg = vault.config
    print(f"[OK] Database ready: {cfg.database.url}")
    print(f"[OK] Storage ready: {vault.blobs.root}")
    print(f"[OK] Audit logs: {cfg.logging.directory}")
    return 0


def cmd_create_user(vault: Vault, args: argparse.Namespace) -> int:
    password = args.password
    if not password:
        while True:
            password = getpass.getpass("  Password: ")
            confirm = getpass.getpass("  Confirm password: ")
            if password == confirm:
                break
            print("  Passwords do not match. Try again.")

    user = vault.accounts.signup(args.username, password, password, name=args.name, email=args.email)
    print(f"[OK] Created user '{user.username}' ({user.role})")
    return 0


def _render_tree(nodes: List[FolderNode]) -> List[str]:
    lines: List[str] = []
    stack = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        lines.append(f"{'  ' * depth}{node.name}/  [{node.id}]")
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return lines


def cmd_tree(vault: Vault, args: argparse.Namespace) -> int:
    nodes = vault.folders.get_folder_tree(args.username, team_id=args.team)
    for line in _render_tree(nodes):
        print(line)
    return 0


def cmd_search(vault: Vault, args: argparse.Namespace) -> int:
    results = vault.files.search_files(args.username, args.query, team_id=args.team)
    for result in results:
        print(f"{result.path}/{result.name}  [file {result.id}, {result.size} bytes]")
    print(f"\n{len(results)} match(es)")
    return 0


def cmd_purge_trash(vault: Vault, args: argparse.Namespace) -> int:
    days = args.days if args.days is not None else vault.config.trash.retention_days
    purged = vault.trash.purge_expired(days)
    print(f"[OK] Purged {purged} file(s) trashed more than {days} day(s) ago")
    return 0


if __name__ == "__main__":
    sys.exit(main())
