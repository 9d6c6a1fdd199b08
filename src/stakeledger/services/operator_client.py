# src/stakeledger/services/operator_client.py
from __future__ import annotations

"""Operator-side helpers for a running stakeledger API.

Used by scripts/seed_lost_rewards.py and scripts/claim_delegation_rewards.py.
The batch logic takes plain callables so it can run against an in-process
engine as well as over HTTP.
"""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from stakeledger.runtime.events import log_event

Json = Dict[str, Any]

log = logging.getLogger("stakeledger.operator")


def _http_json(method: str, url: str, body: Optional[Json] = None, *, caller: str = "", timeout_s: float = 10.0) -> Json:
    headers = {"Content-Type": "application/json"}
    if caller:
        headers["x-caller"] = caller
    data = json.dumps(body).encode("utf-8") if body is not None else None
    req = urllib.request.Request(url, data=data, headers=headers, method=method.upper().strip())

    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        raw = e.read().decode("utf-8", errors="replace")
        try:
            return json.loads(raw)
        except ValueError:
            return {"ok": False, "error": {"code": "http_error", "status": int(e.code or 0), "raw": raw}}
    except urllib.error.URLError as e:
        return {"ok": False, "error": {"code": "url_error", "reason": str(getattr(e, "reason", e))}}

    try:
        return json.loads(raw)
    except ValueError:
        return {"ok": False, "error": {"code": "bad_json", "raw": raw}}


@dataclass
class ApiClient:
    base_url: str
    caller: str
    timeout_s: float = 10.0

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def post(self, path: str, body: Optional[Json] = None) -> Json:
        return _http_json("POST", self._url(path), body or {}, caller=self.caller, timeout_s=self.timeout_s)

    def get(self, path: str) -> Json:
        return _http_json("GET", self._url(path), caller=self.caller, timeout_s=self.timeout_s)

    def claim_delegation(self, token_id: int) -> int:
        out = self.post(f"/v1/positions/{int(token_id)}/claim/delegation")
        if not out.get("ok"):
            raise RuntimeError(f"claim failed for token {token_id}: {out.get('error')}")
        return int(out.get("paid") or 0)

    def add_lost_rewards(self, owners: List[str], token_ids: List[int], amounts: List[int]) -> Json:
        return self.post("/v1/admin/lost-rewards", {"owners": owners, "token_ids": token_ids, "amounts": amounts})


# ---- lost-rewards seeding ----


def parse_lost_rewards(rows: Iterable[Any]) -> Tuple[List[str], List[int], List[int]]:
    """Validate `[{"owner", "token_id", "amount"}, ...]` into parallel lists."""
    owners: List[str] = []
    token_ids: List[int] = []
    amounts: List[int] = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"row {i}: expected an object")
        owner = str(row.get("owner") or "").strip()
        if not owner:
            raise ValueError(f"row {i}: missing owner")
        try:
            token_id = int(row["token_id"])
            amount = int(row["amount"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"row {i}: token_id and amount must be integers") from None
        if amount <= 0:
            raise ValueError(f"row {i}: amount must be > 0")
        owners.append(owner)
        token_ids.append(token_id)
        amounts.append(amount)
    if not owners:
        raise ValueError("no lost-rewards rows")
    return owners, token_ids, amounts


def load_lost_rewards_file(path: str) -> Tuple[List[str], List[int], List[int]]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("lost_rewards", [])
    if not isinstance(raw, list):
        raise ValueError("lost rewards file must hold a list (or {'lost_rewards': [...]})")
    return parse_lost_rewards(raw)


def chunked(owners: List[str], token_ids: List[int], amounts: List[int], size: int) -> Iterable[Tuple[List[str], List[int], List[int]]]:
    n = max(int(size), 1)
    for i in range(0, len(owners), n):
        yield owners[i : i + n], token_ids[i : i + n], amounts[i : i + n]


# ---- batched claiming ----


def drain_delegation_claims(claim: Callable[[int], int], token_ids: Iterable[int], *, max_rounds: int = 100) -> Dict[int, int]:
    """Claim each token until a claim pays nothing (bounded arrears drain).

    Returns token_id -> total paid. Raises RuntimeError if a token is still
    paying after `max_rounds` calls.
    """
    totals: Dict[int, int] = {}
    for token_id in token_ids:
        tid = int(token_id)
        total = 0
        for _ in range(max(int(max_rounds), 1)):
            paid = int(claim(tid))
            if paid <= 0:
                break
            total += paid
        else:
            raise RuntimeError(f"token {tid} still had arrears after {max_rounds} claims")
        totals[tid] = total
        log_event(log, "delegation_drained", token_id=tid, paid=total)
    return totals
