from __future__ import annotations

import argparse
import asyncio
import sys

from adminpanel.core.logging import configure_logging
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.seed import ADMIN_DEFAULT_PASSWORD, seed_defaults


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed the permission catalog, system roles and admin account")
    parser.add_argument(
        "--admin-password",
        default=ADMIN_DEFAULT_PASSWORD,
        help="Password for the admin account when it is created (ignored if it already exists)",
    )
    return parser


async def _seed(args: argparse.Namespace) -> int:
    # Use the shared async session factory so env config matches the API process.
    async with SessionLocal() as session:
        report = await seed_defaults(session, admin_password=args.admin_password)
    if not report.created:
        print("Database already seeded; nothing to do.")
        return 0
    print("Seeded:")
    for table, count in sorted(report.created.items()):
        print(f"  {table}: {count}")
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_seed(args))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
