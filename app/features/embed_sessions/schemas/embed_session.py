from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field


class LeadCapture(BaseModel):
    lead_id: str
    canonical_email: str


class IssuedSession(BaseModel):
    token: str
    session_id: str
    expires_at: datetime
    key_version: str


class SessionInfo(BaseModel):
    session_id: str
    lead_id: Optional[str] = None
    email: str
    payload: Dict[str, Any]

    @property
    def scope(self) -> Dict[str, Any]:
        return self.payload.get("scope") or {}


# ── HTTP bodies ─────────────────────────────


class LeadCaptureRequest(BaseModel):
    email: EmailStr = Field(..., description="Visitor email used to unlock the embed")
    source_business: str = Field("", max_length=255, description="Business whose embed captured the lead")
    source_domain: Optional[str] = Field(None, max_length=255)
    utm_source: Optional[str] = Field(None, max_length=255)
    utm_medium: Optional[str] = Field(None, max_length=255)
    utm_campaign: Optional[str] = Field(None, max_length=255)
    referrer_url: Optional[str] = Field(None, max_length=2048)
    additional_fields: Dict[str, Any] = Field(default_factory=dict)
    scope: Dict[str, Any] = Field(default_factory=dict, description="Opaque claims copied into the session")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "owner@example.com",
                "source_business": "acme-dental",
                "utm_source": "newsletter",
                "scope": {"accountId": "acct-1"},
            }
        }

    def lead_attributes(self) -> Dict[str, Any]:
        return self.model_dump(
            exclude={"email", "source_business", "scope"},
            exclude_none=True,
        )


class SessionIssuedOut(BaseModel):
    token: str
    session_id: str
    expires_at: datetime
    key_version: str
    lead_id: str
    email: str


class SessionOut(BaseModel):
    session_id: str
    lead_id: Optional[str] = None
    email: str
    scope: Dict[str, Any]


class BusinessInfoUpdate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    place_id: Optional[str] = Field(None, max_length=255)
    location_address: Optional[str] = Field(None, max_length=512)
