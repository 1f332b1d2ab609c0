import os
from typing import AsyncGenerator

# Settings are read at import time; point them at an in-memory database first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import uuid
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace import app
from marketplace.auth.dependencies import Actor
from marketplace.db.main import get_session
from tests.factories import D, ProductFactory, StoreFactory

# Import all models so metadata includes every table
from marketplace.db import models as _models  # noqa: F401


@pytest_asyncio.fixture
async def test_engine():
    """
    A fresh in-memory SQLite database per test.
    StaticPool keeps every connection on the same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(test_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden DB dependency.
    """
    async def _get_session():
        yield db_session

    app.dependency_overrides[get_session] = _get_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin() -> Actor:
    return Actor(uid=uuid.uuid4(), role="admin")


@pytest.fixture
def buyer() -> Actor:
    return Actor(uid=uuid.uuid4(), role="buyer")


def headers_for(actor: Actor) -> dict:
    return {"X-User-Uid": str(actor.uid), "X-User-Role": actor.role}


@pytest.fixture
def as_headers():
    """Gateway identity headers for an actor."""
    return headers_for


@pytest_asyncio.fixture
async def catalogue(db_session):
    """Two stores: A sells a 300 lamp and a 250 rug, B sells a 100 mug."""
    store_a = StoreFactory.create(name="Store A")
    store_b = StoreFactory.create(name="Store B")
    lamp = ProductFactory.create(store_a.uid, name="Lamp", price=D("300"))
    rug = ProductFactory.create(store_a.uid, name="Rug", price=D("250"))
    mug = ProductFactory.create(store_b.uid, name="Mug", price=D("100"))
    db_session.add_all([store_a, store_b, lamp, rug, mug])
    await db_session.commit()
    return SimpleNamespace(store_a=store_a, store_b=store_b, lamp=lamp, rug=rug, mug=mug)

