from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from app.features.embed_sessions.schemas.embed_session import SessionInfo
from app.features.embed_sessions.services.lead_registry import LeadRegistry
from app.features.embed_sessions.services.session_manager import SessionLifecycleManager


def get_lead_registry(request: Request) -> LeadRegistry:
    return LeadRegistry(request.app.state.session_store)


def get_session_manager(request: Request) -> SessionLifecycleManager:
    return SessionLifecycleManager(request.app.state.session_store, request.app.state.signing_config)


def get_session_token(
    authorization: Optional[str] = Header(None),
    x_session_token: Optional[str] = Header(None),
) -> str:
    """
    Pull the embed session token from the request.

    Accepts ``Authorization: Bearer <token>`` first, then ``X-Session-Token``.
    """
    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
    elif x_session_token:
        token = x_session_token.strip()

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid session token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


async def require_embed_session(
    token: str = Depends(get_session_token),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> SessionInfo:
    """Dependency for routes that are only open to visitors holding a live embed session."""
    return await manager.validate(token)
