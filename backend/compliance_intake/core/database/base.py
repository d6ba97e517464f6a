# backend/compliance_intake/core/database/base.py
"""
Declarative base shared by every ORM model, and the ``get_db`` dependency.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import declarative_base

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed on success."""
    from ..shared.database_service import database_service

    async with database_service.get_session() as session:
        yield session
