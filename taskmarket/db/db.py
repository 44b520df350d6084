"""Database connection management using SQLModel with async SQLAlchemy."""

import ssl
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from taskmarket.config.logger import app_logger
from taskmarket.config.settings import settings


def get_db_url(database_url: Optional[str] = None) -> str:
    """Normalize a database URL for an async SQLAlchemy driver."""
    db_url = database_url or settings.effective_database_url
    if not db_url:
        raise ValueError("DATABASE_URL not configured")
    # SQLite or other non-Postgres URLs are returned as-is
    if db_url.startswith("sqlite"):
        return db_url

    # For Postgres URLs, normalize and strip sslmode (asyncpg handles SSL via connect_args)
    parsed = urlparse(db_url)
    query_parts = [p for p in parsed.query.split("&") if not p.startswith("sslmode=") and p]
    query = "&".join(query_parts)
    clean_url = urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            query,
            parsed.fragment,
        )
    )

    # Convert to asyncpg driver
    if clean_url.startswith("postgresql://"):
        clean_url = clean_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif clean_url.startswith("postgres://"):
        clean_url = clean_url.replace("postgres://", "postgresql+asyncpg://", 1)

    return clean_url


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def init(self) -> None:
        """Create the engine and the tables registered on SQLModel.metadata."""
        db_url = get_db_url(self.database_url)
        app_logger.info("Initializing database connection")

        engine_kwargs = {"echo": False}
        if db_url.startswith("postgresql+asyncpg://"):
            # SSL context for Supabase / Postgres (no certificate verification)
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            engine_kwargs.update(pool_size=10, max_overflow=0, connect_args={"ssl": ssl_context})

        self._engine = create_async_engine(db_url, **engine_kwargs)
        self._session_maker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Import all models to register them with SQLModel
        from taskmarket.models import audit_log  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

        app_logger.info("Database initialized successfully")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
            app_logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Async context manager for internal background tasks."""
        if not self._session_maker:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self._session_maker() as session:
            yield session

    async def ping(self) -> tuple[bool, str]:
        """Run a lightweight health query against the database."""
        if not self._session_maker:
            return False, "Database not initialized"

        try:
            async with self._session_maker() as session:
                result = await session.execute(text("SELECT 1"))
                row = result.scalar()
                if row == 1:
                    return True, "Database connection healthy"
                return False, f"Unexpected response: {row}"
        except Exception as e:
            return False, f"Database query failed: {str(e)}"
