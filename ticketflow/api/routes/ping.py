import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/db", summary="Database connectivity probe")
async def ping_db(request: Request) -> dict[str, Any]:
    tester = getattr(request.app.state, "postgres_tester", None)
    if tester is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    try:
        await tester.test_connection()
        missing = await tester.missing_tables()
    except Exception as exc:
        logger.warning("Database probe failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database is unreachable") from exc
    if missing:
        logger.warning("Database is missing tables: %s", ", ".join(missing))
    return {
        "status": "degraded" if missing else "ok",
        "database": "reachable",
        "missing_tables": missing,
    }
