import logging
from typing import Any, Dict, Optional

from app.features.embed_sessions.schemas.embed_session import LeadCapture
from app.features.embed_sessions.services.store import LeadIdentity, SessionStore

logger = logging.getLogger(__name__)

LEAD_COLUMNS = (
    "source_domain",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "referrer_url",
)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def split_attributes(attributes: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map known keys onto lead columns and fold everything else into additional_fields."""
    values: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if key in LEAD_COLUMNS:
            values[key] = value
        elif key == "additional_fields":
            extra.update(value or {})
        else:
            extra[key] = value
    if extra:
        values["additional_fields"] = extra
    return values


class LeadRegistry:
    def __init__(self, store: SessionStore):
        self.store = store

    async def capture(
        self,
        email: str,
        source_business: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> LeadCapture:
        """
        Record a visitor, updating the existing lead when the identity is already known.

        Emails are compared after trimming and lowercasing, so " A@x.com " and
        "a@x.com" from the same business always land on the same row.
        """
        canonical_email = normalize_email(email)
        if not canonical_email:
            raise ValueError("Lead email is required")

        identity = LeadIdentity(email=canonical_email, source_business=(source_business or "").strip())
        lead = await self.store.upsert_lead(identity, split_attributes(attributes))

        logger.info(f"Captured lead {lead.id} for business '{identity.source_business}'")
        return LeadCapture(lead_id=lead.id, canonical_email=canonical_email)

    async def update_business_info(
        self,
        lead_id: str,
        business_name: str,
        place_id: Optional[str] = None,
        location_address: Optional[str] = None,
    ) -> bool:
        """Attach the business a visitor connected through the embed to their lead."""
        updated = await self.store.update_lead(
            lead_id,
            {
                "business_name": business_name,
                "place_id": place_id,
                "location_address": location_address,
            },
        )
        if not updated:
            logger.warning(f"Business info not stored, lead {lead_id} does not exist")
        return updated
