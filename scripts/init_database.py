#!/usr/bin/env python3
"""
Database initialization script for the session builder.

This script provides a command-line interface for initializing,
resetting, and checking the builder tables in the question store.
"""

import sys
import argparse
import logging
import sqlite3
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from session_config import get_config, get_store_path
from session_store import SessionStore


# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def open_store(args) -> SessionStore:
    return SessionStore(get_store_path(args.db), config=get_config())


def init_command(args):
    """Handle init command."""
    logger.info("🚀 Initializing bot tables...")
    with open_store(args) as store:
        try:
            store.init_tables()
        except sqlite3.Error as e:
            logger.error(f"❌ Initialization failed: {e}")
            return 1
        print_status(store.table_counts())
    logger.info("✅ Bot tables initialized")
    return 0


def reset_command(args):
    """Handle reset command."""
    if not args.confirm:
        logger.error("❌ Reset requires --confirm flag")
        logger.error("⚠️  WARNING: This will DELETE all relationships, sessions, runs and ledger entries!")
        logger.error("Run with: python scripts/init_database.py reset --confirm")
        return 1

    with open_store(args) as store:
        try:
            store.reset_tables()
        except sqlite3.Error as e:
            logger.error(f"❌ Reset failed: {e}")
            return 1
        print_status(store.table_counts())
    logger.info("✅ Bot tables reset")
    return 0


def status_command(args):
    """Handle status command."""
    with open_store(args) as store:
        try:
            counts = store.table_counts()
        except sqlite3.Error as e:
            logger.error(f"❌ Cannot read store: {e}")
            return 1
    print_status(counts)

    missing = [table for table, count in counts.items() if count is None and table != "questions"]
    if missing:
        logger.warning(f"⚠️  Missing tables: {', '.join(missing)}")
        logger.info("Run: python scripts/init_database.py init")
        return 1
    return 0


def print_status(counts: dict):
    """Print table row counts in a formatted way."""
    print("\n" + "="*50)
    print("DATABASE STATUS")
    print("="*50)
    for table, count in counts.items():
        value = "missing" if count is None else count
        print(f"  {table}: {value}")
    print("="*50 + "\n")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Database initialization for the session builder"
    )
    parser.add_argument('--db', help='Path of the sqlite database')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    subparsers.add_parser('init', help='Create the builder tables')
    reset_parser = subparsers.add_parser('reset', help='Drop and recreate the builder tables')
    reset_parser.add_argument(
        '--confirm',
        action='store_true',
        help='Confirm the reset'
    )
    subparsers.add_parser('status', help='Show row counts per table')

    args = parser.parse_args(argv)

    if args.command == 'init':
        return init_command(args)
    elif args.command == 'reset':
        return reset_command(args)
    elif args.command == 'status':
        return status_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
