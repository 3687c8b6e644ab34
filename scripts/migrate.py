#!/usr/bin/env python3
"""
Run scheduling schema migrations.

Usage:
    python scripts/migrate.py                       # upgrade to head
    python scripts/migrate.py downgrade -1
    python scripts/migrate.py revision "add waiting list"
    python scripts/migrate.py current
"""

import argparse
import sys

from alembic import command
from alembic.config import Config
from alembic.util import CommandError


def build_parser() -> argparse.ArgumentParser:
    """Command line for the supported alembic commands."""
    parser = argparse.ArgumentParser(description="Manage the appointment database schema")
    parser.add_argument("--config", default="alembic.ini", help="Path to alembic.ini")
    subparsers = parser.add_subparsers(dest="command")

    upgrade = subparsers.add_parser("upgrade", help="Apply migrations")
    upgrade.add_argument("revision", nargs="?", default="head")

    downgrade = subparsers.add_parser("downgrade", help="Revert migrations")
    downgrade.add_argument("revision")

    revision = subparsers.add_parser("revision", help="Create a migration from model changes")
    revision.add_argument("message")

    subparsers.add_parser("current", help="Show the applied revision")
    return parser


def main() -> int:
    """Run the requested migration command."""
    args = build_parser().parse_args()
    alembic_cfg = Config(args.config)
    name = args.command or "upgrade"

    try:
        if name == "upgrade":
            target = getattr(args, "revision", "head")
            print(f"Upgrading appointment schema to {target}...")
            command.upgrade(alembic_cfg, target)
        elif name == "downgrade":
            print(f"Downgrading appointment schema to {args.revision}...")
            command.downgrade(alembic_cfg, args.revision)
        elif name == "revision":
            print(f"Creating migration: {args.message}")
            command.revision(alembic_cfg, message=args.message, autogenerate=True)
        else:
            command.current(alembic_cfg, verbose=True)
    except CommandError as e:
        print(f"✗ Migration command '{name}' failed: {e}", file=sys.stderr)
        return 1

    print("✓ Done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
