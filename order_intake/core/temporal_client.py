"""Shared Temporal client for the API process.

Created on first use so the API can boot while Temporal is still starting.
"""

import asyncio
from typing import Optional

from temporalio.client import Client as TemporalClient

from order_intake.core.config import settings
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

_client: Optional[TemporalClient] = None
_lock = asyncio.Lock()


async def get_temporal_client() -> TemporalClient:
    """FastAPI dependency returning the process-wide Temporal client."""
    global _client
    if _client is not None:
        return _client

    async with _lock:
        if _client is None:
            target = f"{settings.temporal_host}:{settings.temporal_port}"
            LOGGER.info(f"Connecting to Temporal at {target}", extra={"namespace": settings.temporal_namespace})
            _client = await TemporalClient.connect(target, namespace=settings.temporal_namespace)
    return _client


async def close_temporal_client() -> None:
    """Drop the cached client; the connection is released with it."""
    global _client
    _client = None
