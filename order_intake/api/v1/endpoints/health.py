"""Liveness and dependency health."""

from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel, Field

from order_intake.core.config import settings
from order_intake.core.database import db_client
from order_intake.core.temporal_client import get_temporal_client
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy when every component is, otherwise degraded")
    version: str
    service: str
    components: Dict[str, str] = Field(default_factory=dict)


async def _temporal_status() -> str:
    try:
        client = await get_temporal_client()
        await client.service_client.check_health()
    except Exception as e:
        LOGGER.warning(f"Temporal health check failed: {e}")
        return "unhealthy"
    return "healthy"


@router.get(
    "/",
    response_model=HealthCheckResponse,
    summary="Service and dependency health",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    db_health = await db_client.health_check()
    components = {
        "database": db_health["status"],
        "temporal": await _temporal_status(),
    }
    overall = "healthy" if all(v == "healthy" for v in components.values()) else "degraded"
    return HealthCheckResponse(
        status=overall,
        version=settings.app_version,
        service=settings.app_name,
        components=components,
    )
