import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from sigp_storage.db import get_session
from sigp_storage.minio_client import get_object_store
from sigp_storage.redis import get_async_redis

logger = logging.getLogger(__name__)
router = APIRouter(tags=["system"])


@router.get("/system/health")
async def health_check(
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Check connectivity to Postgres, Redis, and MinIO."""
    checks: dict[str, Any] = {}

    # PostgreSQL
    try:
        result = await session.execute(text("SELECT 1"))
        result.scalar()
        checks["postgres"] = "ok"
    except Exception as e:
        logger.error("Postgres health check failed: %s", e)
        checks["postgres"] = f"error: {e}"

    # Redis
    try:
        redis = get_async_redis()
        await redis.ping()
        await redis.aclose()
        checks["redis"] = "ok"
    except Exception as e:
        logger.error("Redis health check failed: %s", e)
        checks["redis"] = f"error: {e}"

    # MinIO
    try:
        if await get_object_store().ping():
            checks["minio"] = "ok"
        else:
            checks["minio"] = "error: bucket missing"
    except Exception as e:
        logger.error("MinIO health check failed: %s", e)
        checks["minio"] = f"error: {e}"

    overall = all(v == "ok" for v in checks.values())
    return {
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }
