from fastapi import APIRouter

from app.features.embed_sessions.routes.embed import router as embed_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(embed_router)
