"""
Liveness and readiness checks.

The database is required. Redis and the recommendation client are
reported but never make the service unhealthy: analytics run without them.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
import redis

from stockpulse.core.config import get_settings
from stockpulse.db.session import get_db

router = APIRouter(tags=["health"])


def check_database(db: Session) -> Dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "error", "message": str(e)}
    return {"status": "ok"}


def check_redis(url: str) -> Dict[str, Any]:
    try:
        redis.Redis.from_url(url, socket_connect_timeout=2).ping()
    except redis.ConnectionError:
        return {"status": "unavailable", "message": "Redis not connected"}
    except Exception as e:
        return {"status": "error", "message": str(e)}
    return {"status": "ok"}


@router.get("/health")
async def health_check():
    """Liveness: the process is up."""
    return {"status": "ok"}


@router.get("/api/health")
def api_health_check(request: Request, db: Session = Depends(get_db)):
    """
    Readiness: database (required), Redis and recommendations (optional).

    Returns 503 when the database is unreachable.
    """
    recommender = getattr(request.app.state, "recommender", None)
    services = {
        "database": check_database(db),
        "redis": check_redis(get_settings().REDIS_URL),
        "recommendations": {
            "status": "ok" if recommender is not None and recommender.enabled else "disabled"
        },
    }

    if services["database"]["status"] != "ok":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "services": services},
        )

    return {"status": "ok", "services": services}
