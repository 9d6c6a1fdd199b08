#!/usr/bin/env python3
"""Claim delegation rewards for a list of positions until each is drained.

With max_claimable_periods set, one claim settles a bounded number of
periods; this script repeats the claim per token until it pays nothing.

Usage:
  python3 scripts/claim_delegation_rewards.py --caller ops 1 2 3
  python3 scripts/claim_delegation_rewards.py --caller ops --from-file tokens.json
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import List

from stakeledger.api.structured_logging import configure_structured_logging
from stakeledger.services.operator_client import ApiClient, drain_delegation_claims


def _token_ids(args: argparse.Namespace) -> List[int]:
    ids = [int(t) for t in args.token_ids]
    if args.from_file:
        raw = json.loads(Path(args.from_file).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("token_ids", [])
        ids.extend(int(t) for t in raw)
    return ids


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("token_ids", nargs="*", help="position ids")
    ap.add_argument("--from-file", help="JSON list of token ids (or {'token_ids': [...]})")
    ap.add_argument("--api", default=os.environ.get("STAKELEDGER_API_URL", "http://127.0.0.1:8000"))
    ap.add_argument("--caller", required=True, help="identity sent as x-caller; the owner is paid regardless")
    ap.add_argument("--max-rounds", type=int, default=100)
    args = ap.parse_args()

    configure_structured_logging()

    ids = _token_ids(args)
    if not ids:
        ap.error("no token ids given")

    client = ApiClient(base_url=args.api, caller=args.caller)
    totals = drain_delegation_claims(client.claim_delegation, ids, max_rounds=args.max_rounds)
    print(json.dumps({"paid": {str(k): v for k, v in totals.items()}, "total": sum(totals.values())}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
