"""Async database engine, session factory and declarative base."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from baroni.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG_SQL, future=True)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    """FastAPI dependency: one session per request."""
    async with async_session() as session:
        yield session
