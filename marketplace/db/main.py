import logging
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.config import Config

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    # sqlite (tests, local runs) uses a single-connection pool without sizing knobs
    if url.startswith("sqlite"):
        return {}
    return dict(pool_size=10, max_overflow=20, pool_timeout=60)


async_engine = create_async_engine(
    Config.DATABASE_URL,
    echo=False,
    future=True,
    **_engine_options(Config.DATABASE_URL)
)

Session = sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def init_db() -> None:
    # registers every table on SQLModel.metadata
    from marketplace.db import models  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncSession: # type: ignore
    async with Session() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Session error: {e}")
            raise
