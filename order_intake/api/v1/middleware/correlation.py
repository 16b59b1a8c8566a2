"""Correlation id propagation."""

from uuid import uuid4

from fastapi import Request

CORRELATION_HEADER = "X-Correlation-ID"


async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get(CORRELATION_HEADER, str(uuid4()))
    request.state.correlation_id = correlation_id
    request.state.request_id = correlation_id
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response
