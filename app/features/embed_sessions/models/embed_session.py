from sqlalchemy import JSON, Column, DateTime, String

from app.platform.db.base import BaseModel


class EmbedSession(BaseModel):
    """
    Server-side pointer for an issued token, looked up by the token's SHA-256.

    Deleting the row, or moving expires_at into the past, revokes the token
    even while its signature and embedded exp still check out.
    """
    __tablename__ = "embed_sessions"

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    scope = Column(JSON, nullable=False, default=dict)
    key_version = Column(String(64), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    # Lookup only; the session does not own the lead.
    lead_id = Column(String, nullable=True, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)  # naive UTC

    def __repr__(self) -> str:
        return f"<EmbedSession(id='{self.id}', key_version='{self.key_version}')>"
