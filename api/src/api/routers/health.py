"""Health check."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "paygate-api"}


@router.get("/api/healthChecker")
async def legacy_health_check():
    return {"status": "success", "message": "Welcome to Payment Gateway, lets get started"}


@router.get("/health/ready")
async def readiness_check():
    try:
        from paygate.database import get_session
        from sqlalchemy import text

        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "database unavailable"},
        )
