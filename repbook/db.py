from __future__ import annotations

from typing import Optional

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker

from .settings import get_settings


def get_engine_url(url: Optional[str] = None) -> str:
    url = url or get_settings().database_url
    if url.startswith("sqlite:///") and not url.startswith("sqlite+aiosqlite:///"):
        # Use aiosqlite for async support
        url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def make_engine(url: Optional[str] = None) -> AsyncEngine:
    return create_async_engine(get_engine_url(url), echo=False, future=True)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = make_engine()

AsyncSessionLocal = make_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    # Create the cache table
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
