import hashlib
import json
import math
from typing import Any, Dict, List, Optional

__all__ = ["api_error", "api_success", "paginated", "weak_etag"]


def weak_etag(payload: Any) -> str:
    """Return a deterministic weak ETag for a JSON-serializable payload or string.
    Accepts dict/list/str/bytes; dict/list will be normalized to a compact JSON string with sorted keys.
    """
    if isinstance(payload, (dict, list)):
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str)
    elif isinstance(payload, (bytes, bytearray)):
        raw = bytes(payload).decode("utf-8", errors="ignore")
    else:
        raw = str(payload)
    return 'W/"' + hashlib.md5(raw.encode("utf-8")).hexdigest() + '"'


def api_success(data: Any = None, message: str = "Success", **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def api_error(
    message: str,
    *,
    error: Optional[str] = None,
    errors: Optional[List[Any]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if error:
        body["error"] = error
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def paginated(items: List[Any], *, page: int, limit: int, total: int, message: str = "Success") -> Dict[str, Any]:
    pages = math.ceil(total / limit) if limit > 0 else 0
    return api_success(
        items,
        message,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "hasNext": page < pages,
            "hasPrev": page > 1,
        },
    )
