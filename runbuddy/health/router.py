import logging
import time

from fastapi import APIRouter, Request

from runbuddy.dependencies import get_ai_client, get_turn_store
from runbuddy.models import HealthChecks, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    ai_ok = await get_ai_client(request).is_available()
    try:
        store_ok = await get_turn_store(request).ping()
    except Exception:
        logger.warning("Memory store ping failed", exc_info=True)
        store_ok = False
    return HealthResponse(
        status="ok" if ai_ok and store_ok else "degraded",
        checks=HealthChecks(ai_backend=ai_ok, memory_store=store_ok),
    )


@router.get("/ping")
async def ping() -> dict:
    return {"ok": True, "ts": int(time.time() * 1000)}
