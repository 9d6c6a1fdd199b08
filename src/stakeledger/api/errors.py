from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stakeledger.runtime.errors import (
    EngineError,
    InsufficientRewardFunds,
    InvariantError,
    Paused,
    Unauthorized,
    UnknownToken,
)


@dataclass(slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def locked(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(423, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


def api_error_from_engine(e: EngineError) -> ApiError:
    """Map the engine error taxonomy onto HTTP statuses."""
    details = dict(e.details or {})
    if isinstance(e, Unauthorized):
        return ApiError.forbidden(e.reason, str(e), details)
    if isinstance(e, Paused):
        return ApiError.locked(e.reason, str(e), details)
    if isinstance(e, UnknownToken):
        return ApiError.not_found(e.reason, str(e), details)
    if isinstance(e, InvariantError):
        return ApiError.internal(e.reason, str(e), details)
    if isinstance(e, InsufficientRewardFunds) or e.code == "conflict":
        return ApiError.conflict(e.reason, str(e), details)
    return ApiError.bad_request(e.reason, str(e), details)
