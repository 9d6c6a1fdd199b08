from __future__ import annotations

from fastapi import APIRouter, Request

from stakeledger.api.routes_public_parts.common import Json, _caller, _engine, _ok
from stakeledger.api.schemas import DelegateRequest, LostRewardsClaimRequest, StakeRequest, TransferRequest

# Handlers are async and never await: each engine call runs to completion on
# the event loop, which keeps the engine single-writer.
router = APIRouter()


@router.post("/positions")
async def stake(body: StakeRequest, request: Request) -> Json:
    eng = _engine(request)
    caller = _caller(request)
    if body.auto_renew is None:
        pos = eng.stake(caller, body.level_id, body.amount)
    else:
        pos = eng.stake_and_delegate(caller, body.level_id, body.amount, body.auto_renew)
    return _ok(position=pos.to_json())


@router.get("/positions/{token_id}")
async def position_view(token_id: int, request: Request) -> Json:
    return _ok(**_engine(request).position_view(token_id))


@router.post("/positions/{token_id}/delegate")
async def delegate(token_id: int, body: DelegateRequest, request: Request) -> Json:
    rec = _engine(request).delegate(_caller(request), token_id, body.auto_renew)
    return _ok(delegation=rec.to_json())


@router.post("/positions/{token_id}/exit")
async def request_exit(token_id: int, request: Request) -> Json:
    end = _engine(request).request_delegation_exit(_caller(request), token_id)
    return _ok(token_id=token_id, end_block=end)


@router.post("/positions/{token_id}/claim/base")
async def claim_base(token_id: int, request: Request) -> Json:
    paid = _engine(request).claim_base_rewards(_caller(request), token_id)
    return _ok(token_id=token_id, paid=paid)


@router.post("/positions/{token_id}/claim/delegation")
async def claim_delegation(token_id: int, request: Request) -> Json:
    paid = _engine(request).claim_delegation_rewards(_caller(request), token_id)
    return _ok(token_id=token_id, paid=paid)


@router.post("/positions/{token_id}/transfer")
async def transfer(token_id: int, body: TransferRequest, request: Request) -> Json:
    _engine(request).transfer(_caller(request), body.receiver, token_id, data=body.data.encode("utf-8"))
    return _ok(token_id=token_id, owner=body.receiver)


@router.post("/positions/{token_id}/unstake")
async def unstake(token_id: int, request: Request) -> Json:
    pos = _engine(request).unstake(_caller(request), token_id)
    return _ok(position=pos.to_json())


@router.post("/lost-rewards/claim")
async def claim_lost_rewards(body: LostRewardsClaimRequest, request: Request) -> Json:
    paid = _engine(request).claim_lost_rewards(_caller(request), body.owner, body.token_id)
    return _ok(owner=body.owner, token_id=body.token_id, paid=paid)


@router.get("/accounts/{account}/balance")
async def balance(account: str, request: Request) -> Json:
    return _ok(account=account, balance=_engine(request).balance_of(account))
