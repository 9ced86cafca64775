"""
Officina Database Session Management

Async SQLAlchemy engine and session factory. The analytics API only reads,
so sessions never commit; scripts that seed data commit explicitly.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass


def create_session_factory(
    database_url: str,
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build an engine plus its session factory. Pool sizing only applies to server databases."""
    engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10)

    engine = create_async_engine(database_url, **engine_kwargs)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory


settings = get_settings()
engine, AsyncSessionLocal = create_session_factory(settings.database_url, echo=settings.database_echo)
