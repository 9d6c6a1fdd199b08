from __future__ import annotations

from typing import Tuple

import pytest

from stakeledger.ledger.state import RewardPolicy
from stakeledger.ledger.types import DelegationStatus, EndBlock, Level, ValidatorStatus
from stakeledger.positions.protocol_staker import InMemoryProtocolStaker
from stakeledger.positions.store import InMemoryPositionStore
from stakeledger.rewards.engine import RewardEngine
from stakeledger.runtime.access import StaticAccessPolicy
from stakeledger.runtime.clock import BlockClock, ValidatorPeriodClock
from stakeledger.runtime.errors import Unauthorized, UnderMaturity, ValidatorInactive

VALIDATOR = "val-1"


def _engine(*, period: int = 1, max_periods: int = 0) -> Tuple[RewardEngine, BlockClock, InMemoryProtocolStaker]:
    chain = BlockClock()
    staker = InMemoryProtocolStaker()
    staker.add_validator(VALIDATOR, status=ValidatorStatus.QUEUED)
    clock = ValidatorPeriodClock(staker, VALIDATOR, chain)
    store = InMemoryPositionStore(clock, [Level(level_id=1, name="Strength", stake_required=100, maturity_blocks=5)])
    access = StaticAccessPolicy(admins=["admin"])
    policy = RewardPolicy(rate_per_block={1: 7}, period_duration=period, max_claimable_periods=max_periods)
    eng = RewardEngine(clock=clock, store=store, access=access, policy=policy)
    eng.fund_treasury(10**18)
    return eng, chain, staker


def test_delegation_requires_maturity_on_validator_clock() -> None:
    eng, chain, _ = _engine()
    token = eng.stake("alice", 1, 100).token_id

    with pytest.raises(UnderMaturity):
        eng.delegate("alice", token, True)

    chain.mine(5)
    rec = eng.delegate("alice", token, True)
    # accrual starts with the next completed period, not at maturity end
    assert rec.accumulation_start == 1
    assert eng.delegation_status(token) == DelegationStatus.PENDING


def test_migrated_position_skips_maturity() -> None:
    eng, _, _ = _engine()

    with pytest.raises(Unauthorized):
        eng.migrate("alice", "alice", 1, 100)

    pos = eng.migrate("admin", "alice", 1, 100)
    assert pos.migrated is True
    assert pos.maturity_end_block == pos.minted_at_block
    eng.delegate("alice", pos.token_id, False)


def test_validator_must_accept_delegations() -> None:
    eng, chain, staker = _engine()
    chain.mine(5)
    token = eng.stake("alice", 1, 100).token_id
    chain.mine(5)

    staker.set_status(VALIDATOR, ValidatorStatus.EXITED)
    with pytest.raises(ValidatorInactive) as ei:
        eng.delegate("alice", token, True)
    assert ei.value.details == {"validator": VALIDATOR, "status": "exited"}
    assert eng.delegation.record(token) is None


def test_exit_cancels_pending_delegation_immediately() -> None:
    eng, chain, _ = _engine()
    chain.mine(5)
    token = eng.stake("alice", 1, 100).token_id
    chain.mine(5)
    eng.delegate("alice", token, True)

    assert eng.locked_rewards(token) == 0
    assert eng.request_delegation_exit("alice", token) == 0
    assert eng.delegation_end_block(token) == EndBlock.at(0)
    assert eng.is_active(token) is False
    assert eng.can_transfer(token) is True
    assert eng.delegation_status(token) == DelegationStatus.NONE


def test_completed_periods_accrue_and_claims_are_batched() -> None:
    eng, chain, staker = _engine(max_periods=3)
    chain.mine(5)
    token = eng.stake("alice", 1, 100).token_id
    chain.mine(5)
    eng.delegate("alice", token, True)

    staker.set_status(VALIDATOR, ValidatorStatus.ACTIVE)
    staker.complete_periods(VALIDATOR, 10)
    assert eng.delegation_status(token) == DelegationStatus.ACTIVE
    assert eng.accumulated_rewards(token) == 9 * 7

    paid = [eng.claim_delegation_rewards("keeper", token) for _ in range(4)]
    assert paid == [21, 21, 21, 0]
    assert eng.balance_of("alice") == 63


def test_exited_validator_closes_the_window() -> None:
    eng, chain, staker = _engine(period=2)
    chain.mine(5)
    token = eng.stake("alice", 1, 100).token_id
    chain.mine(5)
    eng.delegate("alice", token, True)

    staker.set_status(VALIDATOR, ValidatorStatus.ACTIVE)
    staker.complete_periods(VALIDATOR, 6)
    assert eng.claimable_rewards(token) == 4 * 7
    assert eng.locked_rewards(token) == 1 * 7

    staker.set_status(VALIDATOR, ValidatorStatus.EXITED)
    assert staker.complete_periods(VALIDATOR, 3) == 6
    assert eng.claimable_rewards(token) == 5 * 7
    assert eng.locked_rewards(token) == 0

    # no boundary is coming any more: exit ends the record now
    assert eng.request_delegation_exit("alice", token) == 6
    assert eng.claim_delegation_rewards("alice", token) == 35
    assert eng.delegation_status(token) == DelegationStatus.NONE
