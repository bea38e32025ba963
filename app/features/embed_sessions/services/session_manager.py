"""
Issue, validate, and revoke signed embed sessions.

A token is valid only while all of these hold:
  - it splits into three segments and carries the HS256 header,
  - its signature verifies against the configured secret (claims are parsed after),
  - its embedded exp is in the future,
  - a session record keyed by the SHA-256 of the whole token exists,
  - that record's expires_at is in the future.

The record is the authority for revocation: deleting it, or expiring it
through invalidate_by_version, kills the token regardless of the token's own
claims. Exactly one secret is active; the ``ver`` claim only labels which
secret generation minted a token so that generation can be bulk-expired.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from app.features.embed_sessions.exceptions import (
    EmbedSessionError,
    InvalidSignature,
    IssuanceFailed,
    MalformedToken,
    PersistenceUnavailable,
    SessionExpired,
    SessionNotFound,
    TokenExpired,
)
from app.features.embed_sessions.models.embed_session import EmbedSession
from app.features.embed_sessions.schemas.embed_session import IssuedSession, SessionInfo
from app.features.embed_sessions.services.store import SessionStore
from app.features.embed_sessions.utils import signature, token_codec
from app.platform.config import SigningConfig

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime) -> datetime:
    # Session rows keep naive UTC timestamps
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def hash_token(token: str) -> str:
    """SHA-256 hex of the full compact token, the session record's lookup key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionLifecycleManager:
    def __init__(
        self,
        store: SessionStore,
        config: SigningConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    async def issue(
        self,
        lead_id: Optional[str],
        email: str,
        scope: Optional[Dict[str, Any]] = None,
        ttl_minutes: Optional[int] = None,
        key_version: Optional[str] = None,
    ) -> IssuedSession:
        """
        Mint a token for a lead and persist its session record.

        The token is returned only after the record is stored; if the write
        fails, IssuanceFailed is raised and the token is discarded.
        """
        ttl_minutes = self.config.ttl_minutes if ttl_minutes is None else ttl_minutes
        key_version = key_version or self.config.key_version
        scope = dict(scope or {})

        issued_at = int(self.clock().timestamp())
        expires_at = datetime.fromtimestamp(issued_at, tz=timezone.utc) + timedelta(minutes=ttl_minutes)

        payload = {
            "aud": self.config.audience,
            "iss": self.config.issuer,
            "sub": lead_id or email,
            "email": email,
            "scope": scope,
            "iat": issued_at,
            "exp": int(expires_at.timestamp()),
            "ver": key_version,
            # Unique per issuance so two sessions never share a token hash
            "jti": secrets.token_urlsafe(16),
        }
        encoded = token_codec.encode(payload)
        token = f"{encoded.signing_input}.{signature.sign(encoded.signing_input, self.config.secret)}"

        record = EmbedSession(
            token_hash=hash_token(token),
            scope=scope,
            key_version=key_version,
            email=email,
            lead_id=lead_id,
            expires_at=_naive_utc(expires_at),
        )
        try:
            session_id = await self.store.insert_session(record)
        except Exception as exc:
            logger.error(f"Failed to persist embed session for {email}: {type(exc).__name__}")
            raise IssuanceFailed("Session could not be stored") from exc

        logger.info(f"Issued embed session {session_id} (key version {key_version}, ttl {ttl_minutes}m)")
        return IssuedSession(
            token=token,
            session_id=session_id,
            expires_at=expires_at,
            key_version=key_version,
        )

    async def validate(self, token: str) -> SessionInfo:
        try:
            return await self._validate(token)
        except PersistenceUnavailable:
            logger.error("Embed session validation could not reach the datastore")
            raise
        except EmbedSessionError as exc:
            logger.info(f"Embed session rejected: {exc.code.value}")
            raise

    async def _validate(self, token: str) -> SessionInfo:
        parts = token_codec.split(token)

        if not signature.verify(
            parts.signing_input,
            parts.signature,
            self.config.secret,
            algorithm=parts.header.get("alg"),
        ):
            raise InvalidSignature("Token signature does not match")

        # Claims are only parsed once the signature covers them
        payload = token_codec.load_claims(parts.payload_bytes)
        exp = payload.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise MalformedToken("Token exp claim must be an integer timestamp")

        now = self.clock()
        if exp <= now.timestamp():
            raise TokenExpired("Token has expired")

        record = await self.store.find_session_by_hash(hash_token(token))
        if record is None:
            raise SessionNotFound("No session exists for this token")
        if record.expires_at <= _naive_utc(now):
            raise SessionExpired("Session has expired")

        return SessionInfo(
            session_id=record.id,
            lead_id=record.lead_id,
            email=record.email,
            payload=payload,
        )

    async def revoke(self, session_id: str) -> bool:
        removed = await self.store.delete_session(session_id)
        if removed:
            logger.info(f"Revoked embed session {session_id}")
        return removed

    async def invalidate_by_version(self, key_version: str) -> int:
        """Expire every live session minted under key_version. Safe to repeat."""
        count = await self.store.bulk_expire_by_version(key_version, _naive_utc(self.clock()))
        logger.info(f"Invalidated {count} embed session(s) for key version {key_version}")
        return count

    async def purge_expired(self) -> int:
        count = await self.store.delete_expired(_naive_utc(self.clock()))
        logger.info(f"Purged {count} expired embed session(s)")
        return count
