"""Uniform `{success, message, data, pagination?}` response bodies."""

from typing import Any, Dict, Optional


def envelope(
    message: str,
    data: Any = None,
    *,
    pagination: Optional[Dict[str, Any]] = None,
    source: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message, "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    if source is not None:
        body["source"] = source
    return body


def error_envelope(message: Any) -> Dict[str, Any]:
    return {"success": False, "message": message, "data": None}
