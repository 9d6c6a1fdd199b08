from __future__ import annotations

from typing import List, Tuple

import pytest

from stakeledger.ledger.constants import UNIT
from stakeledger.ledger.state import RewardPolicy
from stakeledger.ledger.types import EndBlock, Level
from stakeledger.positions.store import InMemoryPositionStore
from stakeledger.rewards.base_accrual import base_reward
from stakeledger.rewards.engine import RewardEngine
from stakeledger.runtime.access import StaticAccessPolicy
from stakeledger.runtime.clock import BlockClock
from stakeledger.runtime.errors import (
    DelegationAlreadyActive,
    EngineError,
    InsufficientRewardFunds,
    OwnerChanged,
    Paused,
    PreconditionError,
    Unauthorized,
)
from stakeledger.runtime.events import BaseRewardsClaimed, DelegationRewardsClaimed

FUNDING = 10**24


def _engine(*, stake: int = UNIT, funding: int = FUNDING) -> Tuple[RewardEngine, BlockClock, InMemoryPositionStore, StaticAccessPolicy]:
    chain = BlockClock()
    store = InMemoryPositionStore(chain, [Level(level_id=1, name="Strength", stake_required=stake, maturity_blocks=0)])
    access = StaticAccessPolicy(admins=["admin"])
    eng = RewardEngine(clock=chain, store=store, access=access, policy=RewardPolicy(rate_per_block={1: 1_000}, period_duration=10))
    eng.fund_treasury(funding)
    return eng, chain, store, access


def _delegated_and_ended(eng: RewardEngine, chain: BlockClock) -> int:
    """alice delegates at 100 without renewal (window 101..111), chain at 115."""
    chain.mine_to(100)
    token = eng.stake("alice", 1, UNIT).token_id
    eng.delegate("alice", token, False)
    chain.mine_to(115)
    return token


def test_transfer_settles_both_streams_to_sender_first() -> None:
    eng, chain, store, _ = _engine()
    token = _delegated_and_ended(eng, chain)
    expected_base = base_reward(UNIT, 15 * 10)

    eng.transfer("alice", "bob", token)

    assert store.owner_of(token) == "bob"
    assert eng.balance_of("alice") == expected_base + 10 * 1_000
    assert eng.balance_of("bob") == 0
    assert eng.claimable_base_rewards(token) == 0
    assert eng.claimable_rewards(token) == 0

    base_events = eng.events.history(BaseRewardsClaimed)
    assert [(e.recipient, e.amount) for e in base_events] == [("alice", expected_base)]


def test_reentrant_receiver_cannot_claim_the_same_interval_twice() -> None:
    eng, chain, store, _ = _engine()
    token = _delegated_and_ended(eng, chain)
    treasury_before = eng.treasury.balance
    seen: List[Tuple[str, int, int]] = []

    def mallory(operator: str, sender: str, token_id: int, data: bytes) -> None:
        # ownership has already moved; anchors were advanced before this call
        assert store.owner_of(token_id) == "mallory"
        base = eng.claim_base_rewards("mallory", token_id)
        delegation = eng.claim_delegation_rewards("mallory", token_id)
        seen.append((sender, base, delegation))

    eng.register_receiver("mallory", mallory)
    eng.transfer("alice", "mallory", token, data=b"hi")

    assert seen == [("alice", 0, 0)]
    owed = base_reward(UNIT, 15 * 10) + 10 * 1_000
    credited = eng.balance_of("alice") + eng.balance_of("mallory")
    assert credited == owed
    assert treasury_before - eng.treasury.balance == owed

    # the new owner only earns base yield from the moment it took ownership
    chain.mine(3)
    assert eng.claim_base_rewards("mallory", token) == base_reward(UNIT, 3 * 10)


def test_receiver_bouncing_position_back_settles_nothing_twice() -> None:
    eng, chain, store, _ = _engine()
    token = _delegated_and_ended(eng, chain)

    def bounce(operator: str, sender: str, token_id: int, data: bytes) -> None:
        eng.transfer("mallory", sender, token_id)

    eng.register_receiver("mallory", bounce)
    eng.transfer("alice", "mallory", token)

    assert store.owner_of(token) == "alice"
    assert eng.balance_of("alice") == base_reward(UNIT, 15 * 10) + 10 * 1_000
    assert eng.balance_of("mallory") == 0
    assert len(eng.events.history(DelegationRewardsClaimed)) == 1


def test_transfer_is_rejected_while_delegation_active() -> None:
    eng, chain, store, _ = _engine()
    chain.mine_to(100)
    token = eng.stake("alice", 1, UNIT).token_id
    eng.delegate("alice", token, True)
    chain.mine_to(130)

    with pytest.raises(PreconditionError) as ei:
        eng.transfer("alice", "bob", token)
    assert (ei.value.code, ei.value.reason) == ("conflict", "position_locked")
    assert store.owner_of(token) == "alice"
    assert eng.balance_of("alice") == 0


def test_underfunded_treasury_reverts_whole_transfer() -> None:
    eng, chain, store, _ = _engine(stake=100, funding=5)
    chain.mine_to(100)
    token = eng.stake("alice", 1, 100).token_id
    eng.delegate("alice", token, False)
    chain.mine_to(115)
    events_before = len(eng.events.history())

    with pytest.raises(InsufficientRewardFunds):
        eng.transfer("alice", "bob", token)

    assert store.owner_of(token) == "alice"
    assert eng.delegation.record(token).accumulation_start == 101
    assert eng.treasury.balance == 5
    assert eng.balance_of("alice") == 0
    assert len(eng.events.history()) == events_before


def test_rejecting_receiver_reverts_settlement_and_ownership() -> None:
    eng, chain, store, _ = _engine()
    token = _delegated_and_ended(eng, chain)
    last_ts = eng.base.last_claim_timestamp(token)

    def reject(operator: str, sender: str, token_id: int, data: bytes) -> None:
        raise ValueError("receiver does not accept positions")

    eng.register_receiver("vault", reject)
    with pytest.raises(ValueError):
        eng.transfer("alice", "vault", token)

    assert store.owner_of(token) == "alice"
    assert eng.balance_of("alice") == 0
    assert eng.base.last_claim_timestamp(token) == last_ts
    assert eng.delegation.record(token).accumulation_start == 101
    assert eng.events.history(BaseRewardsClaimed) == []


def test_handoff_drains_batched_arrears_in_one_go() -> None:
    eng, chain, _, _ = _engine(stake=100)
    chain.mine_to(100)
    token = eng.stake("alice", 1, 100).token_id
    eng.delegate("alice", token, True)
    eng.set_max_claimable_periods("admin", 1)

    chain.mine_to(136)
    assert eng.request_delegation_exit("alice", token) == 141
    chain.mine_to(160)
    assert eng.claimable_rewards(token) == 10 * 1_000

    eng.transfer("alice", "bob", token)
    assert eng.balance_of("alice") == 40 * 1_000
    assert eng.claimable_rewards(token) == 0


def test_transfer_by_non_owner_or_while_paused_is_rejected() -> None:
    eng, chain, store, access = _engine()
    token = _delegated_and_ended(eng, chain)

    with pytest.raises(Unauthorized):
        eng.transfer("bob", "carol", token)

    access.pause()
    with pytest.raises(Paused):
        eng.transfer("alice", "bob", token)
    access.unpause()
    assert store.owner_of(token) == "alice"


def test_settlement_hook_detects_owner_change() -> None:
    eng, chain, _, _ = _engine()
    token = _delegated_and_ended(eng, chain)

    with pytest.raises(OwnerChanged):
        eng.hook.before_transfer(token, "bob")
    assert eng.balance_of("bob") == 0


def test_unstake_blocked_while_active_and_clears_state_after() -> None:
    eng, chain, store, _ = _engine(stake=100)
    chain.mine_to(100)
    token = eng.stake("alice", 1, 100).token_id
    eng.delegate("alice", token, True)
    chain.mine_to(114)

    with pytest.raises(DelegationAlreadyActive) as ei:
        eng.unstake("alice", token)
    assert ei.value.reason == "position_locked"
    with pytest.raises(Unauthorized):
        eng.unstake("bob", token)

    assert eng.request_delegation_exit("alice", token) == 121
    chain.mine_to(125)
    burned = eng.unstake("alice", token)

    assert burned.token_id == token
    assert eng.balance_of("alice") == 20 * 1_000
    assert store.exists(token) is False
    assert store.stake_refund_of("alice") == 100
    assert eng.delegation.record(token) is None
    assert eng.base.last_claim_timestamp(token) == 0


def test_failed_unstake_keeps_position() -> None:
    eng, chain, store, _ = _engine(stake=100, funding=1)
    token = _staked_and_exited_small(eng, chain)

    with pytest.raises(EngineError):
        eng.unstake("alice", token)
    assert store.exists(token) is True
    assert store.stake_refund_of("alice") == 0
    assert eng.delegation.end_block(token) == EndBlock.at(111)


def _staked_and_exited_small(eng: RewardEngine, chain: BlockClock) -> int:
    chain.mine_to(100)
    token = eng.stake("alice", 1, 100).token_id
    eng.delegate("alice", token, False)
    chain.mine_to(115)
    return token
