import asyncio

from app.features.embed_sessions.services.session_manager import SessionLifecycleManager
from app.features.embed_sessions.services.store import SqlAlchemySessionStore
from app.platform.config import get_settings, get_signing_config
from app.platform.db.session import create_engine, create_session_factory


async def purge_expired_sessions() -> int:
    settings = get_settings()
    engine = create_engine(settings)
    try:
        store = SqlAlchemySessionStore(create_session_factory(engine))
        manager = SessionLifecycleManager(store, get_signing_config(settings))
        return await manager.purge_expired()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    count = asyncio.run(purge_expired_sessions())
    print(f"✅ Purged {count} expired embed session(s)")
