# hims_billing/utils/resp.py
from __future__ import annotations

from typing import Any, Dict, Optional


def ok(data: Any = None) -> Dict[str, Any]:
    """Standard success envelope (page code checks ok/status)."""
    return {"ok": True, "status": True, "data": data}


def err(
    message: str,
    *,
    code: Optional[str] = None,
    details: Any = None,
    data: Any = None,
) -> Dict[str, Any]:
    """Standard error envelope."""
    error: Dict[str, Any] = {"msg": str(message)}
    if code is not None:
        error["code"] = str(code)
    if details is not None:
        error["details"] = details

    return {
        "ok": False,
        "status": False,
        "data": data,
        "error": error,
        "message": str(message),
    }
