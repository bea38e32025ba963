from app.features.embed_sessions.models.embed_session import EmbedSession
from app.features.embed_sessions.models.lead import Lead

__all__ = ["EmbedSession", "Lead"]
