import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the budget distribution store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("DISTRIBUTION_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN; defaults to DISTRIBUTION_POSTGRES_DSN.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List pending migration versions without applying them.",
    )
    args = parser.parse_args()

    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    from budget_hierarchy.infrastructure.postgres_migrations import (
        DISTRIBUTIONS_NAMESPACE,
        apply_postgres_migrations,
        pending_migrations,
    )

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        if args.dry_run:
            pending = pending_migrations(connection=connection, namespace=DISTRIBUTIONS_NAMESPACE)
            print(f"Pending migrations for namespace={DISTRIBUTIONS_NAMESPACE}: {pending}")
            return 0
        applied = apply_postgres_migrations(
            connection=connection, namespace=DISTRIBUTIONS_NAMESPACE
        )
    print(f"Applied migrations for namespace={DISTRIBUTIONS_NAMESPACE}: {applied}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
