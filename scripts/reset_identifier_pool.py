#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from campus_api.db import session_scope
from campus_api.errors import ConflictError
from campus_api.models import IdentifierPool
from campus_api.services.identifier_pools import pool_defaults, reset_pool

POOL_CHOICES = {
    "registration-numbers": IdentifierPool.REGISTRATION_NUMBER,
    "staff-ids": IdentifierPool.STAFF_ID,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Wipe and re-seed an identifier pool.")
    parser.add_argument("pool", choices=sorted(POOL_CHOICES))
    parser.add_argument("--prefix", help="Value prefix, defaults to the configured pool prefix.")
    parser.add_argument("--start", type=int, help="First sequence number.")
    parser.add_argument("--count", type=int, help="Number of values to seed.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Reset even when some values are already assigned.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    pool = POOL_CHOICES[args.pool]
    defaults = pool_defaults(pool)
    prefix = args.prefix or defaults.prefix
    start = defaults.start if args.start is None else args.start
    count = defaults.count if args.count is None else args.count

    summary: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "pool": pool.value,
        "prefix": prefix,
        "start": start,
        "count": count,
        "force": args.force,
    }
    try:
        with session_scope() as session:
            result = reset_pool(session, pool, prefix=prefix, start=start, count=count, force=args.force)
    except ConflictError as exc:
        summary.update({"ok": False, "code": exc.code, "message": exc.message})
        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return 1

    summary.update({"ok": True, "initialized": result.initialized, "pool_size": result.count})
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
