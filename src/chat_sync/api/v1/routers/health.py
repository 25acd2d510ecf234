from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chat_sync.api.deps import get_manager

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str | int]:
    return {"status": "ok", "streams": get_manager().connection_count()}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    try:
        redis = request.app.state.redis
        await redis.ping()
    except Exception as exc:  # noqa: BLE001
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": [f"redis: {exc}"]},
        )
    return JSONResponse(content={"status": "ready"})
