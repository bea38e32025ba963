from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.features.embed_sessions import models  # noqa: F401  (registers tables on Base.metadata)
from app.features.embed_sessions.services.store import SqlAlchemySessionStore
from app.features.health.routes.health import router as health_router
from app.platform.config import Settings, get_settings, get_signing_config
from app.platform.db.base import Base
from app.platform.db.session import create_engine, create_session_factory
from app.platform.exceptions import add_exception_handlers
from app.platform.logger import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger = get_logger("app", log_to_file=settings.ENVIRONMENT != "local")

    # Refuse to start without signing material
    signing_config = get_signing_config(settings)

    engine = create_engine(settings)
    if settings.DB_CREATE_ALL:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    app.state.signing_config = signing_config
    app.state.session_factory = create_session_factory(engine)
    app.state.session_store = SqlAlchemySessionStore(app.state.session_factory)
    logger.info(f"Embed sessions ready (key version {signing_config.key_version})")

    try:
        yield
    finally:
        await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Lead capture and signed session tokens for embedded widgets",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": settings.APP_NAME,
            "description": "Unlocks embedded tools in exchange for an email address.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    # Embeds are served from customer sites, so any origin may call in
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
