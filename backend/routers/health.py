"""
健康检查路由
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from core.config import get_settings
from core.database import engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["健康检查"])

_start_time = time.monotonic()


async def check_database() -> dict:
    """检查数据库连接"""
    start = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"数据库健康检查失败: {e}")
        return {"status": "unhealthy", "message": "数据库连接失败"}

    latency = (time.perf_counter() - start) * 1000
    return {"status": "healthy", "latency_ms": round(latency, 2)}


@router.get("/health")
async def health():
    """系统健康状态；数据库不可用时返回 503"""
    database = await check_database()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "version": get_settings().app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "components": {"database": database}
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
