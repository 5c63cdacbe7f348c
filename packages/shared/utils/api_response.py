"""Response envelope shared by the JSON discovery endpoints."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def request_id_from_request(request: Any) -> str:
    """Get request_id from FastAPI request state or generate one."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def discovery_response(
    data: Any,
    *,
    request_id: Optional[str] = None,
    session_id: Optional[str] = None,
    summary: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build the standard envelope:

        {"success": true, "data": ..., "metadata": {api_version, timestamp, request_id, session_id}}
    """
    payload: Dict[str, Any] = {
        "success": True,
        "data": data,
        "metadata": {
            "api_version": "v1",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "request_id": request_id or str(uuid.uuid4()),
            "session_id": session_id,
        },
    }
    if summary is not None:
        payload["summary"] = summary
    payload.update(extra)
    return payload
