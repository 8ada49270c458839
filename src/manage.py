"""FreshCart database management CLI.

Creates and drops the affiliates database schema, reusing the
setup_db/drop_db utilities defined alongside the domain. ``seed-settings``
stores the default program settings so admins have a row to edit.

Usage:
    python src/manage.py setup-db        # Create all tables
    python src/manage.py drop-db         # Drop all tables
    python src/manage.py seed-settings   # Persist default program settings
"""

import argparse
import sys


def _domains():
    from affiliates.domain import affiliates
    from affiliates.utils.db import drop_db, setup_db

    return {"affiliates": (affiliates, setup_db, drop_db)}


def setup_databases(domains=None):
    """Create database schemas for the specified (or all) domains."""
    all_domains = _domains()
    targets = {d: all_domains[d] for d in domains} if domains else all_domains

    for name, (domain, setup_fn, _) in targets.items():
        print(f"Initializing {name} domain...")
        domain.init()
        print(f"Creating {name} database schema...")
        setup_fn(domain)
        print(f"  {name} schema ready.")

    print("Done.")


def drop_databases(domains=None):
    """Drop database schemas for the specified (or all) domains."""
    all_domains = _domains()
    targets = {d: all_domains[d] for d in domains} if domains else all_domains

    for name, (domain, _, drop_fn) in targets.items():
        print(f"Initializing {name} domain...")
        domain.init()
        print(f"Dropping {name} database schema...")
        drop_fn(domain)
        print(f"  {name} schema dropped.")

    print("Done.")


def seed_settings():
    """Persist the default program settings if none are stored yet."""
    from affiliates.domain import affiliates
    from affiliates.program.settings import SETTINGS_ID, ProgramSettings
    from protean.exceptions import ObjectNotFoundError

    affiliates.init()
    with affiliates.domain_context():
        repo = affiliates.repository_for(ProgramSettings)
        try:
            repo.get(SETTINGS_ID)
            print("Program settings already present.")
        except ObjectNotFoundError:
            repo.add(ProgramSettings.with_defaults())
            print("Default program settings stored.")


def main():
    parser = argparse.ArgumentParser(description="FreshCart database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup_parser = subparsers.add_parser("setup-db", help="Create all database tables")
    setup_parser.add_argument(
        "--domain",
        choices=["affiliates"],
        nargs="*",
        help="Specific domain(s) to set up (default: all)",
    )

    drop_parser = subparsers.add_parser("drop-db", help="Drop all database tables")
    drop_parser.add_argument(
        "--domain",
        choices=["affiliates"],
        nargs="*",
        help="Specific domain(s) to drop (default: all)",
    )

    subparsers.add_parser("seed-settings", help="Store default program settings")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases(args.domain)
    elif args.command == "drop-db":
        drop_databases(args.domain)
    elif args.command == "seed-settings":
        seed_settings()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
