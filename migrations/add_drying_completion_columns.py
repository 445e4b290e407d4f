"""
Add completion and floor-level columns to the drying tables.

Adds:
    drying_logs.completed_by      VARCHAR(128)
    drying_logs.locked            BOOLEAN NOT NULL DEFAULT false
    drying_chambers.floor_level   VARCHAR(32) NOT NULL DEFAULT 'main_level'

Usage:
    python migrations/add_drying_completion_columns.py
    python migrations/add_drying_completion_columns.py --database-url sqlite:///drying.sqlite

The script is idempotent and safe to run multiple times. It inspects the current
schema before attempting to alter each table.
"""

import argparse
import os
import sys

from dotenv import load_dotenv

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import OperationalError, ProgrammingError

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_SQLITE_PATH = os.path.join(ROOT_DIR, "drying.sqlite")

# (table, column, DDL type)
COLUMNS = [
    ("drying_logs", "completed_by", "VARCHAR(128)"),
    ("drying_logs", "locked", "BOOLEAN NOT NULL DEFAULT false"),
    ("drying_chambers", "floor_level", "VARCHAR(32) NOT NULL DEFAULT 'main_level'"),
]

# Load environment variables from a .env file if present
load_dotenv()


def normalize_sqlite_path(path: str) -> str:
    """Return a SQLAlchemy-friendly SQLite URL for the given path."""
    if not os.path.isabs(path):
        path = os.path.join(ROOT_DIR, path)
    return f"sqlite:///{path}"


def infer_database_url(cli_url: str = None) -> str:
    """Figure out which database to hit, honoring CLI and environment defaults."""
    candidates = [
        cli_url,
        os.environ.get("DATABASE_URL"),
        os.environ.get("PRODUCTION_DATABASE_URL"),
        os.environ.get("SANDBOX_DATABASE_URL"),
        os.environ.get("LOCAL_DATABASE_URL"),
    ]

    for value in candidates:
        if not value:
            continue

        value = value.strip()
        if value.startswith("postgres://"):
            # SQLAlchemy expects postgresql://
            return value.replace("postgres://", "postgresql://", 1)

        if value.startswith(("postgresql://", "mysql://", "mariadb://", "sqlite://")):
            return value

        # Treat anything else as a filesystem path to a SQLite DB
        return normalize_sqlite_path(value)

    return normalize_sqlite_path(DEFAULT_SQLITE_PATH)


def table_exists(engine, table_name: str) -> bool:
    return inspect(engine).has_table(table_name)


def column_exists(engine, table_name: str, column_name: str) -> bool:
    """Check if a given column exists on the specified table."""
    inspector = inspect(engine)
    columns = inspector.get_columns(table_name)
    return any(col["name"] == column_name for col in columns)


def migrate(database_url: str = None) -> bool:
    """Add any missing drying columns. Returns True when the schema ends up complete."""
    db_url = infer_database_url(database_url)
    print(f"Connecting to database: {db_url}")

    engine = create_engine(db_url)

    try:
        success = True
        for table_name, column_name, ddl in COLUMNS:
            if not table_exists(engine, table_name):
                print(f"✗ Table '{table_name}' does not exist. Create the schema first.")
                success = False
                continue

            if column_exists(engine, table_name, column_name):
                print(f"✓ Column '{column_name}' already exists on '{table_name}'. Nothing to do.")
                continue

            print(f"Adding column '{column_name}' to '{table_name}' table...")
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {ddl}"))

            if column_exists(engine, table_name, column_name):
                print(f"✓ Successfully added '{column_name}' column to '{table_name}'.")
            else:
                print(f"✗ Adding '{column_name}' to '{table_name}' did not succeed. Please verify manually.")
                success = False

        return success

    except (OperationalError, ProgrammingError) as exc:
        print(f"✗ Database error while adding columns: {exc}")
        return False
    finally:
        engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Add completion and floor-level columns to the drying tables.")
    parser.add_argument(
        "--database-url",
        help="Override database URL (otherwise inferred from env or defaults).",
    )
    args = parser.parse_args()

    success = migrate(args.database_url)
    sys.exit(0 if success else 1)
