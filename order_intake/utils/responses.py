"""Response envelope and problem details shared by the API routes."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request

from order_intake.schemas.common import ApiResponse, ErrorDetail, ResponseMeta


def _request_id(request: Optional[Request]) -> str:
    """The request's correlation id, or a fresh one outside a request."""
    if request is None:
        return str(uuid4())
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def _as_data(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return {"items": [_as_data(item) if hasattr(item, "model_dump") else item for item in data]}
    return {"value": data}


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
) -> Dict[str, Any]:
    """Wrap ``data`` in the ``{status, message, data, meta}`` envelope."""
    return ApiResponse(
        status=status,
        message=message,
        data=_as_data(data),
        meta=ResponseMeta(timestamp=datetime.now(timezone.utc), request_id=_request_id(request)),
    ).model_dump(mode="json")


def create_error_detail(title: str, status: int, detail: str, request: Optional[Request] = None) -> ErrorDetail:
    """Problem details (RFC 7807) for an ``HTTPException`` body."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=request.url.path if request is not None else None,
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc),
    )
