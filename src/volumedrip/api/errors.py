from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from volumedrip.runtime.errors import ApplyError


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}

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
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


# Ledger rejections that map to something other than 400.
_STATUS_BY_CODE = {
    "unauthorized": 403,
    "forbidden": 403,
    "bad_sig": 401,
    "bad_nonce": 409,
    "tx_too_large": 413,
}


def api_error_from_rejection(result: Dict[str, Any]) -> ApiError:
    """Map an executor `{"ok": False, "error": code, ...}` result to ApiError."""
    code = str(result.get("error") or "rejected")
    details = dict(result.get("details") or {})
    return ApiError(_STATUS_BY_CODE.get(code, 400), code, str(result.get("reason") or code), details)


def api_error_from_apply(e: ApplyError) -> ApiError:
    return api_error_from_rejection({"error": e.code, "reason": e.reason, "details": e.details})
