from fastapi import APIRouter

# Aggregate all v1 routers here
from .routers import credentials, documents, queue, sessions, system, tenants

api_router = APIRouter()
api_router.include_router(system.router)
api_router.include_router(tenants.router)
api_router.include_router(documents.router)
api_router.include_router(queue.router)
api_router.include_router(credentials.router)
api_router.include_router(sessions.router)

__all__ = ["api_router"]
