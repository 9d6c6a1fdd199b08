from __future__ import annotations

from typing import Dict, Iterable, Protocol, Set

from stakeledger.runtime.errors import Paused, Unauthorized


class AccessPolicy(Protocol):
    """External authorization and circuit-breaker collaborator."""

    def is_authorized_manager(self, caller: str, token_id: int) -> bool: ...

    def is_admin(self, caller: str) -> bool: ...

    def is_paused(self) -> bool: ...


class StaticAccessPolicy:
    """In-memory access policy: an admin set, per-token managers and a pause flag."""

    def __init__(self, *, admins: Iterable[str] = ()) -> None:
        self._admins: Set[str] = {str(a).strip() for a in admins if str(a).strip()}
        self._managers: Dict[int, Set[str]] = {}
        self._paused = False

    def is_authorized_manager(self, caller: str, token_id: int) -> bool:
        return str(caller) in self._managers.get(int(token_id), set())

    def is_admin(self, caller: str) -> bool:
        return str(caller) in self._admins

    def is_paused(self) -> bool:
        return self._paused

    def grant_admin(self, account: str) -> None:
        a = str(account or "").strip()
        if not a:
            raise ValueError("admin account must be a non-empty string")
        self._admins.add(a)

    def revoke_admin(self, account: str) -> None:
        self._admins.discard(str(account))

    def add_manager(self, token_id: int, manager: str) -> None:
        self._managers.setdefault(int(token_id), set()).add(str(manager))

    def remove_manager(self, token_id: int, manager: str) -> None:
        self._managers.get(int(token_id), set()).discard(str(manager))

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False


def deny_if_paused(access: AccessPolicy, *, op: str) -> None:
    if access.is_paused():
        raise Paused(details={"op": op})


def require_admin(access: AccessPolicy, caller: str, *, op: str) -> None:
    if not access.is_admin(caller):
        raise Unauthorized(reason="admin_required", details={"op": op, "caller": caller})


def require_owner_or_manager(access: AccessPolicy, caller: str, owner: str, token_id: int, *, op: str) -> None:
    if caller == owner or access.is_authorized_manager(caller, token_id):
        return
    raise Unauthorized(reason="owner_or_manager_required", details={"op": op, "caller": caller, "token_id": token_id})
