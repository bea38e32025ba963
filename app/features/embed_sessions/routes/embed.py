from fastapi import APIRouter, Depends, HTTPException, status

from app.features.embed_sessions.dependencies.session import (
    get_lead_registry,
    get_session_manager,
    require_embed_session,
)
from app.features.embed_sessions.schemas.embed_session import (
    BusinessInfoUpdate,
    LeadCaptureRequest,
    SessionInfo,
    SessionIssuedOut,
    SessionOut,
)
from app.features.embed_sessions.services.lead_registry import LeadRegistry
from app.features.embed_sessions.services.session_manager import SessionLifecycleManager
from app.platform.response import api_response

router = APIRouter(prefix="/embed", tags=["Embed Sessions"])


@router.post(
    "/leads",
    status_code=status.HTTP_201_CREATED,
    summary="Capture a lead and unlock the embed",
    description="Record the visitor as a lead and issue a short-lived signed session token",
)
async def capture_lead(
    payload: LeadCaptureRequest,
    registry: LeadRegistry = Depends(get_lead_registry),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    lead = await registry.capture(
        email=payload.email,
        source_business=payload.source_business,
        attributes=payload.lead_attributes(),
    )
    issued = await manager.issue(
        lead_id=lead.lead_id,
        email=lead.canonical_email,
        scope=payload.scope,
    )

    return api_response(
        message="Access unlocked",
        data=SessionIssuedOut(
            token=issued.token,
            session_id=issued.session_id,
            expires_at=issued.expires_at,
            key_version=issued.key_version,
            lead_id=lead.lead_id,
            email=lead.canonical_email,
        ),
        status_code=status.HTTP_201_CREATED,
    )


@router.get(
    "/session",
    summary="Check the current embed session",
)
async def get_session(session: SessionInfo = Depends(require_embed_session)):
    return api_response(
        message="Session is valid",
        data=SessionOut(
            session_id=session.session_id,
            lead_id=session.lead_id,
            email=session.email,
            scope=session.scope,
        ),
    )


@router.patch(
    "/session/business",
    summary="Record the business connected through the embed",
)
async def update_session_business(
    body: BusinessInfoUpdate,
    session: SessionInfo = Depends(require_embed_session),
    registry: LeadRegistry = Depends(get_lead_registry),
):
    if not session.lead_id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No lead is attached to this session")

    updated = await registry.update_business_info(
        session.lead_id,
        business_name=body.business_name,
        place_id=body.place_id,
        location_address=body.location_address,
    )
    if not updated:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Lead not found")

    return api_response(message="Business info saved", data={"lead_id": session.lead_id})
