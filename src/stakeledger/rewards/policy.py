# src/stakeledger/rewards/policy.py
from __future__ import annotations

"""Rate & policy registry.

Admin-gated setters over the single RewardPolicy held by EngineState. Every
accrual computation reads the policy by reference, so a change (most notably
the global accrual cutoff) applies to every position at once without
iterating them.

Each successful mutation bumps `policy.version` and emits PolicyChanged.
"""

from typing import Any, Dict, Sequence

from stakeledger.ledger.state import EngineState, RewardPolicy
from stakeledger.runtime.access import AccessPolicy, deny_if_paused, require_admin
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.errors import InvalidPolicy
from stakeledger.runtime.events import EventBus, PolicyChanged


def _as_nonneg_int(v: Any, *, field: str) -> int:
    if isinstance(v, bool):
        raise InvalidPolicy(reason=f"{field}_not_int", details={field: v})
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise InvalidPolicy(reason=f"{field}_not_int", details={field: v}) from None
    if n < 0:
        raise InvalidPolicy(reason=f"{field}_negative", details={field: n})
    return n


def _as_level_id(v: Any) -> int:
    n = _as_nonneg_int(v, field="level_id")
    if n == 0:
        raise InvalidPolicy(reason="level_id_zero", details={"level_id": n})
    return n


def _validated_batch(level_ids: Sequence[int], rates: Sequence[int]) -> Dict[int, int]:
    ids = list(level_ids or [])
    rs = list(rates or [])
    if not ids:
        raise InvalidPolicy(reason="empty_rates", details={})
    if len(ids) != len(rs):
        raise InvalidPolicy(reason="length_mismatch", details={"level_ids": len(ids), "rates": len(rs)})

    updates: Dict[int, int] = {}
    for lid, rate in zip(ids, rs):
        lvl = _as_level_id(lid)
        r = _as_nonneg_int(rate, field="rate")
        if r == 0:
            raise InvalidPolicy(reason="zero_rate_in_batch", details={"level_id": lvl})
        updates[lvl] = r
    return updates


class PolicyRegistry:
    def __init__(self, state: EngineState, access: AccessPolicy, events: EventBus, scope: AtomicScope) -> None:
        self.state = state
        self.access = access
        self.events = events
        self.scope = scope

    @property
    def policy(self) -> RewardPolicy:
        return self.state.policy

    def set_rate_per_block(self, caller: str, level_id: int, rate: int) -> None:
        """Set one level's delegation rate. A zero rate disables delegation for the level."""
        with self._admin_txn(caller, "set_rate_per_block"):
            lvl = _as_level_id(level_id)
            r = _as_nonneg_int(rate, field="rate")
            self.policy.rate_per_block[lvl] = r
            self._changed("rate_per_block", {"level_id": lvl, "rate": r})

    def set_rates_per_block_bulk(self, caller: str, level_ids: Sequence[int], rates: Sequence[int]) -> None:
        """All-or-nothing batch update; rejects empty input and any zero rate."""
        with self._admin_txn(caller, "set_rates_per_block_bulk"):
            updates = _validated_batch(level_ids, rates)
            self.policy.rate_per_block.update(updates)
            self._changed("rate_per_block", {str(k): v for k, v in sorted(updates.items())})

    def set_period_duration(self, caller: str, blocks: int) -> None:
        with self._admin_txn(caller, "set_period_duration"):
            n = _as_nonneg_int(blocks, field="period_duration")
            if n == 0:
                raise InvalidPolicy(reason="period_duration_zero", details={})
            self.policy.period_duration = n
            self._changed("period_duration", n)

    def set_global_accrual_cutoff_block(self, caller: str, block: int) -> None:
        """0 removes the cutoff."""
        with self._admin_txn(caller, "set_global_accrual_cutoff_block"):
            n = _as_nonneg_int(block, field="cutoff_block")
            self.policy.global_accrual_cutoff = n
            self._changed("global_accrual_cutoff", n)

    def set_max_claimable_periods(self, caller: str, periods: int) -> None:
        """0 removes the per-claim bound."""
        with self._admin_txn(caller, "set_max_claimable_periods"):
            n = _as_nonneg_int(periods, field="max_claimable_periods")
            self.policy.max_claimable_periods = n
            self._changed("max_claimable_periods", n)

    def _admin_txn(self, caller: str, op: str):
        deny_if_paused(self.access, op=op)
        require_admin(self.access, caller, op=op)
        return self.scope.transaction()

    def _changed(self, setting: str, value: Any) -> None:
        self.policy.version += 1
        self.events.emit(PolicyChanged(setting=setting, value=value, version=self.policy.version))
