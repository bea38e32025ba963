"""
Persistence for leads and embed session records.

SessionStore is the seam the registry and the session manager depend on;
SqlAlchemySessionStore is the production implementation over an async
session factory created once at startup. Every method is one short
transaction, and driver/connection failures surface as PersistenceUnavailable.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.embed_sessions.exceptions import PersistenceUnavailable
from app.features.embed_sessions.models.embed_session import EmbedSession
from app.features.embed_sessions.models.lead import Lead

logger = logging.getLogger(__name__)

UNAVAILABLE_ERRORS = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    OSError,
)


class LeadIdentity(NamedTuple):
    email: str
    source_business: str


class SessionStore(ABC):
    @abstractmethod
    async def upsert_lead(self, identity: LeadIdentity, attributes: Dict[str, Any]) -> Lead:
        """Create the lead for identity, or overwrite the given attributes on the existing one."""

    @abstractmethod
    async def update_lead(self, lead_id: str, values: Dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def insert_session(self, record: EmbedSession) -> str:
        ...

    @abstractmethod
    async def find_session_by_hash(self, token_hash: str) -> Optional[EmbedSession]:
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def bulk_expire_by_version(self, key_version: str, now: datetime) -> int:
        """Set expires_at = now on every still-live record of key_version."""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        ...


class SqlAlchemySessionStore(SessionStore):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as db:
                yield db
        except UNAVAILABLE_ERRORS as exc:
            logger.error(f"Datastore unavailable: {type(exc).__name__}")
            raise PersistenceUnavailable("Session datastore is unavailable") from exc

    @staticmethod
    async def _find_lead(db: AsyncSession, identity: LeadIdentity) -> Optional[Lead]:
        result = await db.execute(
            select(Lead).where(
                Lead.email == identity.email,
                Lead.source_business == identity.source_business,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply_attributes(lead: Lead, attributes: Dict[str, Any]) -> None:
        for key, value in attributes.items():
            if key == "additional_fields":
                merged = dict(lead.additional_fields or {})
                merged.update(value or {})
                lead.additional_fields = merged
            else:
                setattr(lead, key, value)

    async def upsert_lead(self, identity: LeadIdentity, attributes: Dict[str, Any]) -> Lead:
        async with self._session() as db:
            lead = await self._find_lead(db, identity)
            if lead is None:
                lead = Lead(
                    email=identity.email,
                    source_business=identity.source_business,
                    additional_fields={},
                )
                self._apply_attributes(lead, attributes)
                db.add(lead)
                try:
                    await db.commit()
                    return lead
                except IntegrityError:
                    # A concurrent capture created the same identity first
                    await db.rollback()
                    lead = await self._find_lead(db, identity)
                    if lead is None:
                        raise

            self._apply_attributes(lead, attributes)
            await db.commit()
            return lead

    async def update_lead(self, lead_id: str, values: Dict[str, Any]) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount > 0

    async def insert_session(self, record: EmbedSession) -> str:
        async with self._session() as db:
            db.add(record)
            await db.commit()
            return record.id

    async def find_session_by_hash(self, token_hash: str) -> Optional[EmbedSession]:
        async with self._session() as db:
            result = await db.execute(
                select(EmbedSession).where(EmbedSession.token_hash == token_hash)
            )
            return result.scalar_one_or_none()

    async def delete_session(self, session_id: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                delete(EmbedSession)
                .where(EmbedSession.id == session_id)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount > 0

    async def bulk_expire_by_version(self, key_version: str, now: datetime) -> int:
        async with self._session() as db:
            result = await db.execute(
                update(EmbedSession)
                .where(EmbedSession.key_version == key_version, EmbedSession.expires_at > now)
                .values(expires_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount

    async def delete_expired(self, now: datetime) -> int:
        async with self._session() as db:
            result = await db.execute(
                delete(EmbedSession)
                .where(EmbedSession.expires_at < now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount
