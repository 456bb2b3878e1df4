from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vitalview.core.config import settings
from vitalview.core.db import init_db
from vitalview.core.logging import setup_logging
from vitalview.core.middleware import StructlogMiddleware
from vitalview.core.redis import close_redis, init_redis
from vitalview.modules.alerts.router import router as alerts_router
from vitalview.modules.monitoring.service import build_monitoring_service
from vitalview.modules.vitals.router import router as vitals_router
from vitalview.modules.vitals.store import MongoVitalStore

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    mongo_client = await init_db()
    # Redis is optional; without it the throttle ledger lives in process memory.
    redis_client = await init_redis()
    app.state.mongo_client = mongo_client
    app.state.monitoring = build_monitoring_service(
        settings, vital_store=MongoVitalStore(), redis_client=redis_client
    )

    yield

    # Shutdown
    mongo_client.close()
    await close_redis()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    ## VitalView Monitor API

    This API provides:
    * **Extraction**: Read vitals from bedside monitor frames (vision model + OCR, fused)
    * **Vitals**: Record readings and stream them live over WebSockets
    * **Alerts**: Threshold alerts, a live per-vital feed, SSE stream and throttled notifications
    """,
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(StructlogMiddleware)

app.include_router(
    vitals_router, prefix=f"{settings.API_V1_STR}/vitals", tags=["vitals"]
)
app.include_router(
    alerts_router, prefix=f"{settings.API_V1_STR}/alerts", tags=["alerts"]
)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
