# src/stakeledger/rewards/engine.py
from __future__ import annotations

"""RewardEngine: one process-wide reward ledger over a single clock.

Wires the policy registry, treasury, base ledger, delegation engine,
lost-rewards ledger and settlement hook around one EngineState and one
AtomicScope, and binds the hook into the position store.

Every mutating entry point is atomic: on any EngineError (or any other
exception) engine state, treasury, balances, position ownership and the
buffered events are restored and the exception propagates unchanged.
"""

import functools
import logging
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

from stakeledger.ledger.state import EngineState, RewardPolicy
from stakeledger.ledger.types import DelegationRecord, DelegationStatus, EndBlock, Position
from stakeledger.positions.store import PositionStore, Receiver
from stakeledger.runtime.access import AccessPolicy, deny_if_paused, require_admin
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.clock import Clock
from stakeledger.runtime.errors import EngineError, Unauthorized
from stakeledger.runtime.events import EventBus
from stakeledger.runtime.metrics import inc_counter, record_rejection
from stakeledger.rewards.base_accrual import BaseAccrualLedger
from stakeledger.rewards.delegation import DelegationEngine
from stakeledger.rewards.lost_rewards import LostRewardsLedger
from stakeledger.rewards.policy import PolicyRegistry
from stakeledger.rewards.settlement import SettlementHook
from stakeledger.rewards.treasury import Treasury

Json = Dict[str, Any]
F = TypeVar("F", bound=Callable[..., Any])

log = logging.getLogger("stakeledger.engine")


def _counted(op: str) -> Callable[[F], F]:
    """Count successful calls as `ops_<op>` and rejections by code/reason."""

    def deco(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                out = fn(*args, **kwargs)
            except EngineError as e:
                record_rejection(e.code, e.reason)
                log.info("rejected op=%s code=%s reason=%s", op, e.code, e.reason)
                raise
            inc_counter(f"ops_{op}")
            return out

        return wrapper  # type: ignore[return-value]

    return deco


class RewardEngine:
    def __init__(
        self,
        *,
        clock: Clock,
        store: PositionStore,
        access: AccessPolicy,
        policy: Optional[RewardPolicy] = None,
    ) -> None:
        self.clock = clock
        self.store = store
        self.access = access

        self.scope = AtomicScope()
        self.state = EngineState(policy=policy or RewardPolicy())
        self.scope.register(self.state)
        self.events = EventBus(self.scope)

        self.treasury = Treasury(self.state, self.scope)
        self.policy = PolicyRegistry(self.state, access, self.events, self.scope)
        self.base = BaseAccrualLedger(
            state=self.state,
            store=store,
            clock=clock,
            access=access,
            treasury=self.treasury,
            events=self.events,
            scope=self.scope,
        )
        self.lost = LostRewardsLedger(
            state=self.state,
            clock=clock,
            access=access,
            treasury=self.treasury,
            events=self.events,
            scope=self.scope,
        )
        self.delegation = DelegationEngine(
            state=self.state,
            store=store,
            clock=clock,
            access=access,
            treasury=self.treasury,
            lost=self.lost,
            events=self.events,
            scope=self.scope,
        )
        self.hook = SettlementHook(
            store=store,
            access=access,
            base=self.base,
            delegation=self.delegation,
            lost=self.lost,
            scope=self.scope,
        )
        store.bind(self.hook, self.scope)

    # ---- positions ----

    @_counted("stake")
    def stake(self, caller: str, level_id: int, amount: int) -> Position:
        deny_if_paused(self.access, op="stake")
        with self.scope.transaction():
            pos = self.store.mint(caller, level_id, amount)
            self.base.register(pos.token_id)
            return pos

    @_counted("stake_and_delegate")
    def stake_and_delegate(self, caller: str, level_id: int, amount: int, auto_renew: bool) -> Position:
        deny_if_paused(self.access, op="stake_and_delegate")
        with self.scope.transaction():
            pos = self.store.mint(caller, level_id, amount)
            self.base.register(pos.token_id)
            self.delegation.delegate(caller, pos.token_id, auto_renew)
            return pos

    @_counted("migrate")
    def migrate(self, caller: str, owner: str, level_id: int, amount: int) -> Position:
        """Admin: bring a legacy position in without a maturity gate."""
        deny_if_paused(self.access, op="migrate")
        require_admin(self.access, caller, op="migrate")
        with self.scope.transaction():
            pos = self.store.mint(owner, level_id, amount, migrated=True)
            self.base.register(pos.token_id)
            return pos

    @_counted("transfer")
    def transfer(self, sender: str, receiver: str, token_id: int, *, data: bytes = b"") -> None:
        self.store.transfer(sender, receiver, token_id, data=data)

    def register_receiver(self, account: str, fn: Receiver) -> None:
        self.store.register_receiver(account, fn)

    @_counted("unstake")
    def unstake(self, caller: str, token_id: int) -> Position:
        deny_if_paused(self.access, op="unstake")
        pos = self.store.position(token_id)
        if caller != pos.owner:
            raise Unauthorized(reason="owner_required", details={"op": "unstake", "token_id": pos.token_id})
        return self.store.burn(pos.token_id)

    # ---- treasury ----

    def fund_treasury(self, amount: int) -> int:
        with self.scope.transaction():
            return self.treasury.fund(amount)

    # ---- claims ----

    @_counted("claim_base_rewards")
    def claim_base_rewards(self, caller: str, token_id: int) -> int:
        return self.base.claim(caller, token_id)

    @_counted("claim_delegation_rewards")
    def claim_delegation_rewards(self, caller: str, token_id: int) -> int:
        return self.delegation.claim(caller, token_id)

    @_counted("claim_lost_rewards")
    def claim_lost_rewards(self, caller: str, owner: str, token_id: int) -> int:
        return self.lost.claim(caller, owner, token_id)

    # ---- delegation ----

    @_counted("delegate")
    def delegate(self, caller: str, token_id: int, auto_renew: bool) -> DelegationRecord:
        return self.delegation.delegate(caller, token_id, auto_renew)

    @_counted("request_delegation_exit")
    def request_delegation_exit(self, caller: str, token_id: int) -> int:
        return self.delegation.request_exit(caller, token_id)

    # ---- policy ----

    @_counted("set_rate_per_block")
    def set_rate_per_block(self, caller: str, level_id: int, rate: int) -> None:
        self.policy.set_rate_per_block(caller, level_id, rate)

    @_counted("set_rates_per_block_bulk")
    def set_rates_per_block_bulk(self, caller: str, level_ids: Sequence[int], rates: Sequence[int]) -> None:
        self.policy.set_rates_per_block_bulk(caller, level_ids, rates)

    @_counted("set_period_duration")
    def set_period_duration(self, caller: str, blocks: int) -> None:
        self.policy.set_period_duration(caller, blocks)

    @_counted("set_global_accrual_cutoff_block")
    def set_global_accrual_cutoff_block(self, caller: str, block: int) -> None:
        self.policy.set_global_accrual_cutoff_block(caller, block)

    @_counted("set_max_claimable_periods")
    def set_max_claimable_periods(self, caller: str, periods: int) -> None:
        self.policy.set_max_claimable_periods(caller, periods)

    @_counted("add_lost_rewards")
    def add_lost_rewards(self, caller: str, owners: Sequence[str], token_ids: Sequence[int], amounts: Sequence[int]) -> None:
        self.lost.add(caller, owners, token_ids, amounts)

    @_counted("remove_lost_rewards")
    def remove_lost_rewards(self, caller: str, owner: str, token_id: int) -> int:
        return self.lost.remove(caller, owner, token_id)

    # ---- views ----

    def is_active(self, token_id: int) -> bool:
        return self.delegation.is_active(token_id)

    def can_transfer(self, token_id: int) -> bool:
        return self.hook.can_transfer(token_id)

    def accumulated_rewards(self, token_id: int) -> int:
        return self.delegation.accumulated(token_id)

    def claimable_rewards(self, token_id: int) -> int:
        return self.delegation.claimable(token_id)

    def locked_rewards(self, token_id: int) -> int:
        return self.delegation.locked(token_id)

    def current_period_end_block(self, token_id: int) -> Optional[int]:
        return self.delegation.current_period_end(token_id)

    def delegation_end_block(self, token_id: int) -> Optional[EndBlock]:
        return self.delegation.end_block(token_id)

    def delegation_status(self, token_id: int) -> DelegationStatus:
        return self.delegation.status(token_id)

    def has_requested_exit(self, token_id: int) -> bool:
        return self.delegation.has_requested_exit(token_id)

    def claimable_base_rewards(self, token_id: int) -> int:
        return self.base.claimable(token_id)

    def claimable_lost_rewards(self, owner: str, token_id: int) -> int:
        return self.lost.claimable(owner, token_id)

    def balance_of(self, account: str) -> int:
        return self.state.balance_of(account)

    def position_view(self, token_id: int) -> Json:
        pos = self.store.position(token_id)
        rec = self.delegation.record(pos.token_id)
        end = self.delegation_end_block(pos.token_id)
        return {
            "position": pos.to_json(),
            "now": self.clock.now(),
            "block_number": self.clock.block_number(),
            "base": {
                "last_claim_timestamp": self.base.last_claim_timestamp(pos.token_id),
                "claimable": self.claimable_base_rewards(pos.token_id),
            },
            "delegation": {
                "status": self.delegation_status(pos.token_id).name,
                "is_active": self.is_active(pos.token_id),
                "can_transfer": self.can_transfer(pos.token_id),
                "auto_renew": bool(rec.auto_renew) if rec is not None else False,
                "accumulation_start": rec.accumulation_start if rec is not None else None,
                "end_block": end.to_json() if end is not None else None,
                "unbounded": bool(end is not None and not end.bounded),
                "has_requested_exit": self.has_requested_exit(pos.token_id),
                "current_period_end_block": self.current_period_end_block(pos.token_id),
                "accumulated": self.accumulated_rewards(pos.token_id),
                "claimable": self.claimable_rewards(pos.token_id),
                "locked": self.locked_rewards(pos.token_id),
            },
            "lost_rewards": self.claimable_lost_rewards(pos.owner, pos.token_id),
        }
