# backend/compliance_intake/core/shared/database_service.py
"""
Engine and session lifecycle for the intake database.

One process-wide ``DatabaseService`` owns the async engine. Local runs and
tests use SQLite through aiosqlite; deployments point DATABASE_URL at
PostgreSQL (asyncpg), which is the only dialect that gets pool tuning
(DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_RECYCLE).

Request handlers receive sessions through ``get_db``; scripts and startup
code use ``database_service.get_session()`` directly:

    async with database_service.get_session() as session:
        tenant = await tenant_service.get_tenant(session, tenant_id)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ...config import settings
from ..database.base import Base

logger = logging.getLogger("compliance.database")


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.sql_echo}
    if make_url(url).get_backend_name() == "postgresql":
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
    return options


class DatabaseService:
    """Lazily builds the engine; nothing connects until the first session."""

    def __init__(self, database_url: Optional[str] = None):
        self._database_url = database_url or settings.database_url
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._connect()
        return self._engine

    def _connect(self) -> None:
        options = _engine_options(self._database_url)
        self._engine = create_async_engine(self._database_url, **options)
        self._sessions = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
        pooled = {k: v for k, v in options.items() if k.startswith("pool_") or k == "max_overflow"}
        logger.info(
            f"Database engine ready: {make_url(self._database_url).render_as_string(hide_password=True)}"
            + (f" {pooled}" if pooled else "")
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session that commits when the block exits cleanly.

        Any exception rolls the session back and is re-raised.
        """
        if self._sessions is None:
            self._connect()
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create missing tables. Existing tables are left untouched."""
        from ..database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Schema ready ({len(Base.metadata.tables)} tables)")

    async def health_check(self) -> Dict[str, Any]:
        dialect = self.engine.dialect.name
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database unreachable ({dialect}): {e}")
            return {"status": "unhealthy", "connected": False, "database_type": dialect, "error": str(e)}
        return {"status": "healthy", "connected": True, "database_type": dialect}

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database engine disposed")


database_service = DatabaseService()
