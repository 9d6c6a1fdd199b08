from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


def _health_payload(request: Request) -> dict[str, object]:
    # health must never crash
    rt = getattr(request.app.state, "runtime", None)
    payload: dict[str, object] = {
        "ok": True,
        "service": "stakeledger",
        "version": "v1",
        "ts_ms": int(time.time() * 1000),
        "engine": None,
    }
    if rt is not None:
        eng = rt.engine
        payload["engine"] = {
            "mode": rt.cfg.mode,
            "clock": eng.clock.kind,
            "now": eng.clock.now(),
            "block_number": eng.clock.block_number(),
            "paused": eng.access.is_paused(),
            "policy_version": eng.state.policy.version,
            "treasury_balance": eng.treasury.balance,
        }
    return payload


@router.get("/health")
def v1_health(request: Request) -> dict[str, object]:
    return _health_payload(request)
