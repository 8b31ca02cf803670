"""CLI tool for admin operations.

Usage:
    python -m journal.cli init-db
    python -m journal.cli bulk-import <user_id> <trades.json> [--allow-duplicates]
"""

import json
import sys
from pathlib import Path

from journal.config import settings
from journal.database import create_db_and_tables, engine
from journal.engine.bulk_import import parse_records
from journal.errors import InvalidInputError
from journal.services.trade_service import TradeService
from journal.utils.logging import setup_logging


def init_db():
    """Create the database tables."""
    create_db_and_tables()
    print("Database initialised.")


def bulk_import(user_id: str, path: str, skip_duplicates: bool = True):
    """Import trades for a user from a JSON file."""
    file = Path(path)
    if not file.is_file():
        print(f"File not found: {path}")
        sys.exit(1)

    try:
        records = parse_records(json.loads(file.read_text()))
    except json.JSONDecodeError as e:
        print(f"Invalid JSON in {path}: {e}")
        sys.exit(1)
    except InvalidInputError as e:
        print(e.message)
        sys.exit(1)

    create_db_and_tables()
    service = TradeService.from_settings(engine, settings)
    result = service.bulk_create_trades(user_id, records, skip_duplicates)

    print(f"Created: {result.created}")
    print(f"Skipped: {result.skipped}")
    if result.errors:
        print(f"Errors: {len(result.errors)}")
        for err in result.errors:
            print(f"  [{err.index}] {err.reason}")
        sys.exit(2)


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m journal.cli <command>")
        print("Commands: init-db, bulk-import")
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]
    if command == "init-db":
        init_db()
    elif command == "bulk-import":
        args = [a for a in sys.argv[2:] if not a.startswith("--")]
        if len(args) != 2:
            print("Usage: python -m journal.cli bulk-import <user_id> <trades.json> [--allow-duplicates]")
            sys.exit(1)
        bulk_import(args[0], args[1], skip_duplicates="--allow-duplicates" not in sys.argv)
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
