import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from sigp_storage.config import get_settings
from sigp_storage.minio_client import ensure_bucket_exists
from sigp_storage.redis import get_async_redis
from sigp_storage.storage.factory import create_reconciler, create_upload_coordinator
from sigp_storage.api.routes.system import router as system_router
from sigp_storage.api.routes.uploads import router as uploads_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    logger.info("Starting sigp-storage API")

    # Ensure MinIO bucket exists
    await asyncio.to_thread(ensure_bucket_exists)

    redis = get_async_redis()
    app.state.coordinator = create_upload_coordinator(redis, settings)

    reconcile_task = None
    if settings.reconcile_in_api:
        reconciler = create_reconciler(redis, settings, app.state.coordinator)
        reconcile_task = asyncio.create_task(reconciler.run_forever())

    yield

    logger.info("Shutting down sigp-storage API")
    if reconcile_task is not None:
        reconcile_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reconcile_task
    await redis.aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="SIGP Storage",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(system_router, prefix="/api")
    app.include_router(uploads_router, prefix="/api")
    return app


app = create_app()


def main():
    """Entry point for sigp-storage-api script."""
    uvicorn.run(
        "sigp_storage.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
