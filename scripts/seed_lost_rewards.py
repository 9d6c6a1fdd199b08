#!/usr/bin/env python3
"""Seed lost-rewards compensation into a running stakeledger API.

Input file: JSON list of {"owner", "token_id", "amount"} objects (or an
object with a "lost_rewards" key holding that list).

Usage:
  python3 scripts/seed_lost_rewards.py rows.json --caller admin
  python3 scripts/seed_lost_rewards.py rows.json --caller admin --batch-size 50 --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from stakeledger.api.structured_logging import configure_structured_logging
from stakeledger.services.operator_client import ApiClient, chunked, load_lost_rewards_file


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("path", help="JSON file with lost-rewards rows")
    ap.add_argument("--api", default=os.environ.get("STAKELEDGER_API_URL", "http://127.0.0.1:8000"))
    ap.add_argument("--caller", required=True, help="admin identity sent as x-caller")
    ap.add_argument("--batch-size", type=int, default=100)
    ap.add_argument("--dry-run", action="store_true")
    args = ap.parse_args()

    configure_structured_logging()
    log = logging.getLogger("stakeledger.scripts.seed_lost_rewards")

    owners, token_ids, amounts = load_lost_rewards_file(args.path)
    log.info("loaded %d rows, total=%d", len(owners), sum(amounts))
    if args.dry_run:
        print(json.dumps({"rows": len(owners), "total": sum(amounts)}, indent=2))
        return 0

    client = ApiClient(base_url=args.api, caller=args.caller)
    for batch in chunked(owners, token_ids, amounts, args.batch_size):
        out = client.add_lost_rewards(*batch)
        if not out.get("ok"):
            print(f"❌ batch rejected: {out.get('error')}", file=sys.stderr)
            return 1
        log.info("seeded batch of %d", len(batch[0]))

    print(f"✅ seeded {len(owners)} lost-rewards rows")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
