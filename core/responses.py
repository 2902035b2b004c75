from typing import Any, Dict, Optional


def success_response(message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body
