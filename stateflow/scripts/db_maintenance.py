"""
Database Maintenance.

Creates the sessions table if needed and, with --purge, deletes every
session whose TTL has elapsed. Expired sessions are otherwise only evicted
lazily when they are looked up.

Usage:
    python -m stateflow.scripts.db_maintenance [--purge]
"""

import argparse

from stateflow.infrastructure.database.connection import init_db
from stateflow.repositories.session import PostgresSessionRepository


def main(argv=None):
    parser = argparse.ArgumentParser(description="Session store maintenance")
    parser.add_argument("--purge", action="store_true", help="Delete expired sessions")
    args = parser.parse_args(argv)

    print("Initializing Database Connection...")
    init_db()
    print("Tables ready.")

    if args.purge:
        removed = PostgresSessionRepository().purge_expired()
        print(f"Purged {removed} expired sessions.")


if __name__ == "__main__":
    main()
