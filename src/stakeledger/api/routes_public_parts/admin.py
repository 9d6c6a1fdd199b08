from __future__ import annotations

from fastapi import APIRouter, Request

from stakeledger.api.routes_public_parts.common import Json, _caller, _engine, _ok
from stakeledger.api.schemas import (
    CutoffRequest,
    LostRewardsAddRequest,
    LostRewardsRemoveRequest,
    MaxClaimablePeriodsRequest,
    PeriodDurationRequest,
    RateRequest,
    RatesBulkRequest,
)

router = APIRouter()


def _policy(request: Request) -> Json:
    return _engine(request).state.policy.to_json()


@router.get("/policy")
async def get_policy(request: Request) -> Json:
    return _ok(policy=_policy(request))


@router.post("/admin/policy/rate")
async def set_rate(body: RateRequest, request: Request) -> Json:
    _engine(request).set_rate_per_block(_caller(request), body.level_id, body.rate)
    return _ok(policy=_policy(request))


@router.post("/admin/policy/rates")
async def set_rates_bulk(body: RatesBulkRequest, request: Request) -> Json:
    _engine(request).set_rates_per_block_bulk(_caller(request), body.level_ids, body.rates)
    return _ok(policy=_policy(request))


@router.post("/admin/policy/period-duration")
async def set_period_duration(body: PeriodDurationRequest, request: Request) -> Json:
    _engine(request).set_period_duration(_caller(request), body.blocks)
    return _ok(policy=_policy(request))


@router.post("/admin/policy/cutoff")
async def set_cutoff(body: CutoffRequest, request: Request) -> Json:
    _engine(request).set_global_accrual_cutoff_block(_caller(request), body.block)
    return _ok(policy=_policy(request))


@router.post("/admin/policy/max-claimable-periods")
async def set_max_claimable_periods(body: MaxClaimablePeriodsRequest, request: Request) -> Json:
    _engine(request).set_max_claimable_periods(_caller(request), body.periods)
    return _ok(policy=_policy(request))


@router.get("/admin/lost-rewards")
async def list_lost_rewards(request: Request) -> Json:
    rows = [{"owner": o, "token_id": t, "amount": a} for o, t, a in _engine(request).lost.entries()]
    return _ok(lost_rewards=rows)


@router.post("/admin/lost-rewards")
async def add_lost_rewards(body: LostRewardsAddRequest, request: Request) -> Json:
    _engine(request).add_lost_rewards(_caller(request), body.owners, body.token_ids, body.amounts)
    return _ok(added=len(body.owners))


@router.post("/admin/lost-rewards/remove")
async def remove_lost_rewards(body: LostRewardsRemoveRequest, request: Request) -> Json:
    removed = _engine(request).remove_lost_rewards(_caller(request), body.owner, body.token_id)
    return _ok(owner=body.owner, token_id=body.token_id, removed=removed)
