# talk2text/db/db.py

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncContextManager, AsyncGenerator, AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from talk2text.db.models import Base

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

_initialized = False
_init_lock = asyncio.Lock()


def _default_sqlite_url() -> str:
    backend_root = Path(__file__).resolve().parents[2]  # .../backend
    db_path = backend_root / "talk2text.db"
    return f"sqlite+aiosqlite:///{db_path.as_posix()}"


def normalize_database_url(url: str) -> str:
    u = (url or "").strip()
    if not u:
        return _default_sqlite_url()

    # Supabase / common env formats -> async driver
    if u.startswith("postgres://"):
        u = u.replace("postgres://", "postgresql+asyncpg://", 1)
    elif u.startswith("postgresql://"):
        u = u.replace("postgresql://", "postgresql+asyncpg://", 1)

    # sqlite sync -> sqlite async
    if u.startswith("sqlite:///") and not u.startswith("sqlite+aiosqlite:///"):
        u = u.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

    return u


def _get_database_url() -> str:
    return normalize_database_url(
        os.getenv("DATABASE_URL", "") or os.getenv("SQLALCHEMY_DATABASE_URL", "")
    )


def make_engine(database_url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(
        normalize_database_url(database_url),
        echo=False,
        pool_pre_ping=True,
        **kwargs,
    )


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_engine() -> AsyncEngine:
    global _engine, _sessionmaker
    if _engine is not None and _sessionmaker is not None:
        return _engine

    _engine = make_engine(_get_database_url())
    _sessionmaker = make_sessionmaker(_engine)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _sessionmaker
    if _sessionmaker is None:
        get_engine()
    assert _sessionmaker is not None
    return _sessionmaker


async def init_db() -> None:
    global _initialized
    if _initialized:
        return

    async with _init_lock:
        if _initialized:
            return

        await create_schema(get_engine())
        _initialized = True


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    # lazy init so you don't have to wire startup events
    await init_db()

    sm = get_sessionmaker()
    async with sm() as session:
        yield session


SessionScope = Callable[[], AsyncContextManager[AsyncSession]]


def get_session_scope() -> SessionScope:
    """
    Dependency for handlers that must not touch the store until late in the
    request: they get the opener, not an open session.
    """
    return session_scope


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with session_scope() as session:
        yield session
