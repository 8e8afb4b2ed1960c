"""
DATABASE SESSION MANAGEMENT
===========================

The payroll backend uses async SQLAlchemy. The engine is created lazily
from ``DATABASE_URL`` (or explicitly through ``configure_engine``) so tests
and scripts can point the store at their own database.

Repositories and the SQL store use ``get_session()`` as an async context
manager. It supports both standalone usage and working with an existing
session:

```python
async with get_session() as db:
    result = await db.execute(select(PayrollPeriod))
# Auto-committed (or rolled back on error) and closed
```

CONNECTION POOLING
------------------

- Default: NullPool (safe for async, prevents cross-event-loop issues)
- Configurable via SQL_NULLPOOL, SQL_POOL_SIZE, SQL_MAX_OVERFLOW,
  SQL_POOL_TIMEOUT, SQL_POOL_RECYCLE
- pool_pre_ping=True ensures connections are alive before use
- SQL_ECHO logs all SQL statements
"""

import logging
from typing import Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ..config import get_app_config
from .base import Base

logger = logging.getLogger("payroll.db.session")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def configure_engine(database_url: Optional[str] = None, **overrides) -> AsyncEngine:
    """
    Create (or replace) the process engine and session factory.

    Args:
        database_url: Async SQLAlchemy URL; defaults to the configured DATABASE_URL
        **overrides: Extra keyword arguments for ``create_async_engine``

    Returns:
        The configured engine
    """
    global _engine, _session_factory

    db_config = get_app_config().get_database_config()
    url = database_url or db_config["url"]
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. Please configure it in .env or the environment."
        )
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = {
        "echo": db_config["echo"],
        "pool_pre_ping": True,
    }
    if db_config["nullpool"] or url.startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update({
            "pool_size": db_config["pool_size"],
            "max_overflow": db_config["max_overflow"],
            "pool_timeout": db_config["pool_timeout"],
            "pool_recycle": db_config["pool_recycle"],
        })
    engine_kwargs.update(overrides)

    _engine = create_async_engine(url, **engine_kwargs)
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    logger.info(f"Database engine configured for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_engine() -> AsyncEngine:
    """Return the process engine, creating it from configuration on first use."""
    if _engine is None:
        return configure_engine()
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Return the session factory bound to the process engine."""
    if _session_factory is None:
        configure_engine()
    return _session_factory  # type: ignore[return-value]


@asynccontextmanager
async def get_session(session: Optional[AsyncSession] = None):
    """
    Convenience async context manager used by repositories.
    - If an existing session is provided, yields it without managing lifecycle.
    - If none is provided, creates a session and handles commit/rollback/close.
    """
    if session is not None:
        # Caller manages lifecycle
        yield session
        return
    async with get_session_factory()() as s:
        try:
            yield s
            await s.commit()
        except Exception:
            await s.rollback()
            raise
        finally:
            await s.close()


async def init_db() -> None:
    """Create all payroll tables that do not exist yet."""
    from . import models  # noqa: F401  (register models on the metadata)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the engine and forget it so the next use re-creates it."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
