from sqlalchemy import JSON, Column, String, UniqueConstraint

from app.platform.db.base import BaseModel


class Lead(BaseModel):
    """
    A visitor who unlocked an embed by handing over an email address.

    Identity is (email, source_business); email is stored normalized
    (trimmed, lowercased) and never changes after creation.
    """
    __tablename__ = "leads"

    email = Column(String(255), nullable=False, index=True)
    source_business = Column(String(255), nullable=False, default="")

    # Attribution
    source_domain = Column(String(255), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    referrer_url = Column(String(2048), nullable=True)
    additional_fields = Column(JSON, nullable=False, default=dict)

    # Filled in once a session has fetched the visitor's business
    business_name = Column(String(255), nullable=True)
    place_id = Column(String(255), nullable=True)
    location_address = Column(String(512), nullable=True)

    __table_args__ = (
        UniqueConstraint("email", "source_business", name="uq_leads_email_source_business"),
    )

    def __repr__(self) -> str:
        return f"<Lead(email='{self.email}', source_business='{self.source_business}')>"
