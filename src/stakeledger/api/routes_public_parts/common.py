from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from stakeledger.api.errors import ApiError
from stakeledger.rewards.engine import RewardEngine
from stakeledger.runtime.engine_boot import EngineRuntime

Json = Dict[str, Any]


def _runtime(request: Request) -> EngineRuntime:
    rt = getattr(request.app.state, "runtime", None)
    if rt is None:
        raise ApiError.internal("not_ready", "engine runtime not attached to app.state", {})
    return rt


def _engine(request: Request) -> RewardEngine:
    return _runtime(request).engine


def _caller(request: Request) -> str:
    """Caller identity for mutating routes (x-caller header)."""
    caller = str(request.headers.get("x-caller") or "").strip()
    if not caller:
        raise ApiError.bad_request("missing_caller", "x-caller header is required", {})
    return caller


def _ok(**fields: Any) -> Json:
    out: Json = {"ok": True}
    out.update(fields)
    return out
