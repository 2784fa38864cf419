# shopreco/api/v1/routers/health.py
import time
import subprocess
from fastapi import APIRouter, Request
from shopreco.core.config import get_settings
from shopreco.db import mongo
from shopreco.db.redis import get_redis  # returns Redis instance or None

router = APIRouter()
START_TIME = time.time()


def _git_sha(short: bool = True) -> str:
    try:
        cmd = ["git", "rev-parse", "--short" if short else "HEAD"]
        return subprocess.check_output(cmd, stderr=subprocess.DEVNULL).decode().strip()
    except Exception:
        return "unknown"


async def _ping_mongo() -> str:
    try:
        await mongo.get_db().command("ping")
        return "ok"
    except Exception as e:
        return f"error: {e}"


async def _ping_redis() -> str:
    # no Redis only means no memoization
    r = get_redis()
    if r is None:
        return "skipped"
    try:
        await r.ping()
        return "ok"
    except Exception as e:
        return f"error: {e}"


@router.get("/health")
async def health(request: Request):
    """
    Liveness plus dependency status. "degraded" when Redis is down but the
    engine can still compute; "error" when there is no engine or no Mongo.
    """
    settings = get_settings()
    engine = getattr(request.app.state, "engine", None)
    checks: dict[str, object] = {
        "app_name": settings.APP_NAME,
        "env": settings.APP_ENV,
        "version": settings.GIT_SHA if settings.GIT_SHA != "unknown" else _git_sha(),
        "uptime_seconds": int(time.time() - START_TIME),
        "mongodb": await _ping_mongo(),
        "redis": await _ping_redis(),
        "engine": "ok" if engine is not None else "unavailable",
    }
    if engine is not None:
        checks["engine_stats"] = engine.get_stats().model_dump()

    if checks["engine"] != "ok" or checks["mongodb"] != "ok":
        status = "error"
    elif checks["redis"] not in ("ok", "skipped"):
        status = "degraded"
    else:
        status = "ok"

    return {"status": status, "checks": checks, "timestamp": int(time.time())}
