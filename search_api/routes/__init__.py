"""
Routes package and router aggregator.

Usage:
    from fastapi import FastAPI
    from search_api.routes import get_api_router

    app = FastAPI()
    app.include_router(get_api_router())
"""

from __future__ import annotations

from fastapi import APIRouter


def get_api_router() -> APIRouter:
    from .health import router as health_router
    from .indexes import router as indexes_router
    from .servers import router as servers_router
    from .tasks import router as tasks_router

    router = APIRouter()
    router.include_router(health_router)
    router.include_router(servers_router)
    router.include_router(indexes_router)
    router.include_router(tasks_router)
    return router
