# src/stakeledger/runtime/engine_boot.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stakeledger.ledger.state import RewardPolicy
from stakeledger.ledger.types import ValidatorStatus
from stakeledger.positions.protocol_staker import InMemoryProtocolStaker
from stakeledger.positions.store import InMemoryPositionStore
from stakeledger.rewards.engine import RewardEngine
from stakeledger.runtime.access import StaticAccessPolicy
from stakeledger.runtime.clock import BlockClock, Clock, ValidatorPeriodClock
from stakeledger.runtime.engine_config import EngineConfig, load_engine_config


@dataclass
class EngineRuntime:
    """A booted engine plus the in-process collaborators it was wired to."""

    cfg: EngineConfig
    engine: RewardEngine
    chain: BlockClock
    clock: Clock
    store: InMemoryPositionStore
    access: StaticAccessPolicy
    staker: Optional[InMemoryProtocolStaker] = None


def build_engine(cfg: Optional[EngineConfig] = None) -> EngineRuntime:
    """
    Build a RewardEngine from an explicit config or, if omitted, from
    STAKELEDGER_CONFIG_PATH / defaults.

    Exactly one clock is chosen per engine; block and validator periods are
    never mixed inside one instance.
    """
    c = cfg or load_engine_config()

    chain = BlockClock(start_block=c.start_block, block_interval_seconds=c.block_interval_seconds)
    staker: Optional[InMemoryProtocolStaker] = None
    clock: Clock
    if c.clock == "validator":
        staker = InMemoryProtocolStaker()
        staker.add_validator(c.validator_id, status=ValidatorStatus.QUEUED)
        clock = ValidatorPeriodClock(staker, c.validator_id, chain)
    else:
        clock = chain

    store = InMemoryPositionStore(clock, c.levels)
    access = StaticAccessPolicy(admins=c.admins)
    policy = RewardPolicy(
        rate_per_block=dict(c.rates_per_block),
        period_duration=c.period_duration,
        global_accrual_cutoff=c.global_accrual_cutoff,
        max_claimable_periods=c.max_claimable_periods,
    )

    engine = RewardEngine(clock=clock, store=store, access=access, policy=policy)
    if c.treasury_funding > 0:
        engine.fund_treasury(c.treasury_funding)

    return EngineRuntime(cfg=c, engine=engine, chain=chain, clock=clock, store=store, access=access, staker=staker)
