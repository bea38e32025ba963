import logging

from fastapi import APIRouter, Request, status
from sqlalchemy import text

from app.features.embed_sessions.services.store import UNAVAILABLE_ERRORS
from app.platform.response import api_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check(request: Request):
    """Liveness plus a one-query datastore probe; 503 when sessions cannot be checked."""
    try:
        async with request.app.state.session_factory() as db:
            await db.execute(text("SELECT 1"))
    except UNAVAILABLE_ERRORS as exc:
        logger.error(f"Health check could not reach the datastore: {type(exc).__name__}")
        return api_response(
            data={"status": "degraded", "service": "Embed Sessions", "database": "unavailable"},
            message="Datastore unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return api_response(
        data={"status": "ok", "service": "Embed Sessions", "database": "ok"},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
