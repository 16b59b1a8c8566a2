"""FastAPI application for order case intake."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from order_intake.api.v1.endpoints import health
from order_intake.api.v1.middleware.correlation import CORRELATION_HEADER, add_correlation_id
from order_intake.api.v1.router import api_router
from order_intake.core.config import settings
from order_intake.core.database import close_database, init_database
from order_intake.core.temporal_client import close_temporal_client
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


async def _warm_up() -> None:
    """Best-effort startup checks; the API still serves when they fail."""
    if not settings.committee.openrouter_api_key:
        LOGGER.warning("OPENROUTER_API_KEY is missing; reviewer calls will fail")

    try:
        await asyncio.wait_for(
            init_database(create_schema=settings.environment == "development"),
            timeout=settings.db_init_timeout,
        )
    except asyncio.TimeoutError:
        LOGGER.error(f"Case store not reachable within {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Case store initialization failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    LOGGER.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")
    await _warm_up()

    yield

    LOGGER.info("Shutting down")
    await close_temporal_client()
    await close_database()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Spreadsheet sales-order intake with reviewer cross-checks and human approval",
        lifespan=lifespan,
    )
    application.middleware("http")(add_correlation_id)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER],
    )
    application.include_router(api_router, prefix=settings.api_v1_prefix)
    application.include_router(health.router, prefix="/health", tags=["Health"])
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "order_intake.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
