#!/usr/bin/env python3
"""
Expire every embed session minted under a retiring key version.

Run after deploying a new EMBED_SESSION_SECRET / EMBED_SESSION_KEY_VERSION:

    python scripts/rotate_session_key.py v1
"""

import argparse
import asyncio

from app.features.embed_sessions.services.session_manager import SessionLifecycleManager
from app.features.embed_sessions.services.store import SqlAlchemySessionStore
from app.platform.config import get_settings, get_signing_config
from app.platform.db.session import create_engine, create_session_factory


async def rotate(key_version: str) -> int:
    settings = get_settings()
    engine = create_engine(settings)
    try:
        store = SqlAlchemySessionStore(create_session_factory(engine))
        manager = SessionLifecycleManager(store, get_signing_config(settings))
        return await manager.invalidate_by_version(key_version)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Invalidate embed sessions for a key version")
    parser.add_argument("key_version", help="Key version label being retired")
    args = parser.parse_args()

    count = asyncio.run(rotate(args.key_version))
    print(f"✅ Expired {count} session(s) signed under key version {args.key_version}")


if __name__ == "__main__":
    main()
