from typing import Any, Dict, Optional


def ok(message: str, data: Any = None, pagination: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    return body


def fail(message: str, error: Optional[str] = None) -> Dict[str, Any]:
    body = {"success": False, "message": message}
    if error:
        body["error"] = error
    return body
