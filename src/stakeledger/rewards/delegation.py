# src/stakeledger/rewards/delegation.py
from __future__ import annotations

"""Delegation settlement engine.

Period-quantized delegation yield over one monotonic clock (block numbers or
validator-completed periods; see runtime.clock).

Accrual window of a record at `now`:

    capped    = min(now, end, cutoff or inf)
    elapsed   = max(capped - accumulation_start, 0)
    completed = elapsed // period_duration

A claim pays `completed * period_duration * rate` and advances
`accumulation_start` by exactly that many whole periods, so a late claim never
loses the partial period in progress. Once the window is closed (end reached,
cutoff passed or validator exited) nothing can accrue any more and the final
claim also settles the partial tail, leaving nothing behind.

`max_claimable_periods` (when non-zero) bounds a single claim; the remaining
arrears and the tail wait for the next call.

State per position:

    NONE     no record, or an ended record with nothing left to settle
    PENDING  record exists, now < accumulation_start
    ACTIVE   record exists, now < end
    EXITED   end reached, remainder not yet claimed
"""

import logging
from dataclasses import dataclass
from typing import Optional

from stakeledger.ledger.state import EngineState
from stakeledger.ledger.types import DelegationRecord, DelegationStatus, EndBlock, Position
from stakeledger.positions.store import PositionStore
from stakeledger.runtime.access import AccessPolicy, deny_if_paused, require_owner_or_manager
from stakeledger.runtime.atomic import AtomicScope
from stakeledger.runtime.clock import Clock
from stakeledger.runtime.errors import (
    DelegationAlreadyActive,
    ExitAlreadyScheduled,
    LevelRateZero,
    NotDelegated,
    OwnerChanged,
    RewardsProgramEnded,
    UnderMaturity,
)
from stakeledger.runtime.events import DelegationExitRequested, DelegationRewardsClaimed, DelegationStarted, EventBus
from stakeledger.rewards.lost_rewards import LostRewardsLedger
from stakeledger.rewards.treasury import Treasury

log = logging.getLogger("stakeledger.rewards.delegation")


@dataclass(frozen=True)
class Window:
    capped: int
    elapsed: int
    closed: bool


class DelegationEngine:
    def __init__(
        self,
        *,
        state: EngineState,
        store: PositionStore,
        clock: Clock,
        access: AccessPolicy,
        treasury: Treasury,
        lost: LostRewardsLedger,
        events: EventBus,
        scope: AtomicScope,
    ) -> None:
        self.state = state
        self.store = store
        self.clock = clock
        self.access = access
        self.treasury = treasury
        self.lost = lost
        self.events = events
        self.scope = scope

    # ---- window math ----

    def window(self, rec: DelegationRecord, now: int) -> Window:
        policy = self.state.policy
        capped = policy.clamp(rec.end.clamp(now))
        elapsed = max(capped - int(rec.accumulation_start), 0)
        closed = rec.end.reached(now) or policy.cutoff_reached(now) or self.clock.accrual_halted()
        return Window(capped=capped, elapsed=elapsed, closed=closed)

    def _settleable(self, rec: DelegationRecord, now: int, *, bounded: bool = True) -> int:
        """Accrual units a claim at `now` would settle."""
        w = self.window(rec, now)
        period = self.state.policy.period_duration
        completed = w.elapsed // period
        take_tail = w.closed

        cap = self.state.policy.max_claimable_periods
        if bounded and cap and completed > cap:
            completed = cap
            take_tail = False

        if take_tail:
            return w.elapsed
        return completed * period

    def next_boundary(self, rec: DelegationRecord, now: int) -> int:
        """Smallest `accumulation_start + k * period` (k >= 1) strictly after `now`."""
        start = int(rec.accumulation_start)
        period = self.state.policy.period_duration
        if now < start:
            return start + period
        return start + ((now - start) // period + 1) * period

    def _rate(self, token_id: int) -> int:
        pos = self.store.position(token_id)
        return self.state.policy.rate(pos.level_id)

    # ---- operations ----

    def delegate(self, caller: str, token_id: int, auto_renew: bool) -> DelegationRecord:
        deny_if_paused(self.access, op="delegate")
        with self.scope.transaction():
            pos = self.store.position(token_id)
            require_owner_or_manager(self.access, caller, pos.owner, pos.token_id, op="delegate")

            now = self.clock.now()
            prior = self.state.delegation(pos.token_id)
            if prior is not None and prior.is_active(now):
                raise DelegationAlreadyActive(details={"token_id": pos.token_id, "status": prior.status(now).name})

            policy = self.state.policy
            if policy.rate(pos.level_id) == 0:
                raise LevelRateZero(details={"token_id": pos.token_id, "level_id": pos.level_id})
            if policy.cutoff_reached(now):
                raise RewardsProgramEnded(details={"now": now, "cutoff": policy.global_accrual_cutoff})

            self.clock.check_delegation_allowed()
            if self.clock.requires_maturity_for_delegation and pos.is_under_maturity(self.clock.block_number()):
                raise UnderMaturity(
                    details={"token_id": pos.token_id, "maturity_end_block": pos.maturity_end_block}
                )

            if prior is not None:
                # drain the exited record in full; nothing may be forfeited
                self._settle(prior, pos, claimer=caller, bounded=False)
                del self.state.delegations[pos.token_id]

            if self.store.owner_of(pos.token_id) != pos.owner:
                raise OwnerChanged(details={"token_id": pos.token_id, "expected_owner": pos.owner})

            if self.clock.requires_maturity_for_delegation:
                start = now + 1
            else:
                start = max(now + 1, int(pos.maturity_end_block))
            end = EndBlock.UNBOUNDED if auto_renew else EndBlock.at(start + policy.period_duration)

            rec = DelegationRecord(
                token_id=pos.token_id,
                auto_renew=bool(auto_renew),
                accumulation_start=start,
                end=end,
                delegated_at=now,
            )
            self.state.delegations[pos.token_id] = rec
            self.events.emit(
                DelegationStarted(token_id=pos.token_id, owner=pos.owner, start_block=start, auto_renew=bool(auto_renew))
            )
            log.debug("delegated token=%s start=%s end=%r", pos.token_id, start, end)
            return rec

    def request_exit(self, caller: str, token_id: int) -> int:
        """Schedule the end of the delegation; returns the end block."""
        deny_if_paused(self.access, op="request_delegation_exit")
        with self.scope.transaction():
            pos = self.store.position(token_id)
            require_owner_or_manager(self.access, caller, pos.owner, pos.token_id, op="request_delegation_exit")

            now = self.clock.now()
            rec = self.state.delegation(pos.token_id)
            if rec is None or not rec.is_active(now):
                raise NotDelegated(details={"token_id": pos.token_id})

            if self.state.policy.cutoff_reached(now) or self.clock.accrual_halted():
                # nothing accrues any more: end now, may pull a scheduled exit earlier
                end = now
            elif self.clock.cancels_pending_on_exit and now < rec.accumulation_start:
                end = now
            elif rec.end.bounded:
                raise ExitAlreadyScheduled(details={"token_id": pos.token_id, "end_block": rec.end.block})
            else:
                end = self.next_boundary(rec, now)

            rec.end = EndBlock.at(end)
            rec.exit_requested = True
            self.events.emit(DelegationExitRequested(token_id=pos.token_id, end_block=end))
            return end

    def claim(self, caller: str, token_id: int) -> int:
        """Anyone may trigger; the current owner is paid. Zero payout is a no-op."""
        deny_if_paused(self.access, op="claim_delegation_rewards")
        with self.scope.transaction():
            pos = self.store.position(token_id)
            paid = 0
            rec = self.state.delegation(pos.token_id)
            if rec is not None:
                paid += self._settle(rec, pos, claimer=caller)
            paid += self.lost.settle(pos.owner, pos.token_id, claimer=caller)
            return paid

    def settle_for_handoff(self, token_id: int, recipient: str) -> int:
        """Drain the record to `recipient` ahead of a transfer or burn."""
        rec = self.state.delegation(token_id)
        if rec is None:
            return 0
        pos = self.store.position(token_id)
        return self._settle(rec, pos, claimer=recipient, bounded=False)

    def clear(self, token_id: int) -> None:
        self.state.delegations.pop(int(token_id), None)

    def _settle(self, rec: DelegationRecord, pos: Position, *, claimer: str, bounded: bool = True) -> int:
        now = self.clock.now()
        units = self._settleable(rec, now, bounded=bounded)
        amount = units * self.state.policy.rate(pos.level_id)
        if amount <= 0:
            return 0

        from_block = int(rec.accumulation_start)
        self.treasury.pay(pos.owner, amount, stream="delegation")
        rec.accumulation_start = from_block + units
        self.events.emit(
            DelegationRewardsClaimed(
                token_id=pos.token_id,
                amount=amount,
                claimer=claimer,
                recipient=pos.owner,
                from_block=from_block,
                to_block=rec.accumulation_start,
            )
        )
        return amount

    # ---- views ----

    def record(self, token_id: int) -> Optional[DelegationRecord]:
        return self.state.delegation(token_id)

    def is_active(self, token_id: int) -> bool:
        rec = self.state.delegation(token_id)
        return rec is not None and rec.is_active(self.clock.now())

    def status(self, token_id: int) -> DelegationStatus:
        rec = self.state.delegation(token_id)
        if rec is None:
            return DelegationStatus.NONE
        now = self.clock.now()
        st = rec.status(now)
        if st == DelegationStatus.EXITED and self._settleable(rec, now, bounded=False) == 0:
            return DelegationStatus.NONE
        return st

    def accumulated(self, token_id: int) -> int:
        """Unfloored accrual plus the current owner's lost rewards (display)."""
        pos = self.store.position(token_id)
        total = self.lost.claimable(pos.owner, pos.token_id)
        rec = self.state.delegation(pos.token_id)
        if rec is not None:
            total += self.window(rec, self.clock.now()).elapsed * self.state.policy.rate(pos.level_id)
        return total

    def claimable(self, token_id: int) -> int:
        """What a claim issued now would pay."""
        pos = self.store.position(token_id)
        total = self.lost.claimable(pos.owner, pos.token_id)
        rec = self.state.delegation(pos.token_id)
        if rec is not None:
            total += self._settleable(rec, self.clock.now()) * self.state.policy.rate(pos.level_id)
        return total

    def locked(self, token_id: int) -> int:
        """Accrued inside the period in progress; 0 unless ACTIVE."""
        rec = self.state.delegation(token_id)
        if rec is None:
            return 0
        now = self.clock.now()
        if rec.status(now) != DelegationStatus.ACTIVE:
            return 0
        w = self.window(rec, now)
        if w.closed:
            return 0
        return (w.elapsed % self.state.policy.period_duration) * self._rate(token_id)

    def current_period_end(self, token_id: int) -> Optional[int]:
        """End of the period in progress, capped at the scheduled end and the cutoff; None without a live record."""
        rec = self.state.delegation(token_id)
        now = self.clock.now()
        if rec is None or self.status(token_id) == DelegationStatus.NONE:
            return None
        if rec.end.reached(now):
            return rec.end.block
        w = self.window(rec, now)
        if w.closed:
            return w.capped
        return self.state.policy.clamp(rec.end.clamp(self.next_boundary(rec, now)))

    def end_block(self, token_id: int) -> Optional[EndBlock]:
        rec = self.state.delegation(token_id)
        return rec.end if rec is not None else None

    def has_requested_exit(self, token_id: int) -> bool:
        rec = self.state.delegation(token_id)
        return rec is not None and rec.exit_requested
