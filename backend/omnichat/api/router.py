"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from omnichat.api.chat import router as chat_router
from omnichat.api.health import router as health_router
from omnichat.api.logs import router as logs_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(logs_router, prefix="/logs", tags=["logs"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
