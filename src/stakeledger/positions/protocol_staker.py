from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol

from stakeledger.ledger.types import ValidatorStatus


class ProtocolStaker(Protocol):
    """External validator registry: status and completed-period count."""

    def validator_status(self, validator_id: str) -> ValidatorStatus: ...

    def completed_periods(self, validator_id: str) -> int: ...


@dataclass
class _Validator:
    status: ValidatorStatus
    completed_periods: int = 0


class InMemoryProtocolStaker:
    """Reference protocol staker for tests and local runs."""

    def __init__(self) -> None:
        self._validators: Dict[str, _Validator] = {}

    def add_validator(self, validator_id: str, *, status: ValidatorStatus = ValidatorStatus.QUEUED) -> None:
        v = str(validator_id or "").strip()
        if not v:
            raise ValueError("validator_id must be a non-empty string")
        if v in self._validators:
            raise ValueError(f"validator already registered: {v!r}")
        self._validators[v] = _Validator(status=status)

    def set_status(self, validator_id: str, status: ValidatorStatus) -> None:
        self._get(validator_id).status = status

    def complete_periods(self, validator_id: str, periods: int = 1) -> int:
        val = self._get(validator_id)
        if val.status != ValidatorStatus.ACTIVE:
            # queued or exited validators do not advance periods
            return val.completed_periods
        val.completed_periods += max(int(periods), 0)
        return val.completed_periods

    def validator_status(self, validator_id: str) -> ValidatorStatus:
        val = self._validators.get(str(validator_id))
        return val.status if val is not None else ValidatorStatus.UNKNOWN

    def completed_periods(self, validator_id: str) -> int:
        val = self._validators.get(str(validator_id))
        return val.completed_periods if val is not None else 0

    def _get(self, validator_id: str) -> _Validator:
        val = self._validators.get(str(validator_id))
        if val is None:
            raise KeyError(f"unknown validator: {validator_id!r}")
        return val
