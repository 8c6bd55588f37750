import itertools
import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, update, func

# Configure test environment; export DATABASE_URL to run against Postgres instead
TEST_DB = Path(tempfile.gettempdir()) / 'blogverse_test.db'
os.environ.setdefault('DATABASE_URL', f'sqlite+aiosqlite:///{TEST_DB}')
os.environ.setdefault('JWT_SECRET', 'test-secret')

from blogverse import core, crud  # noqa: E402
from blogverse.auth import create_access_token  # noqa: E402
from blogverse.models import Base, engine, AsyncSessionLocal  # noqa: E402
from blogverse.models.users import User  # noqa: E402
from blogverse.models.follows import Follow  # noqa: E402


@pytest_asyncio.fixture
async def db():
    """Fresh schema per test"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def make_user(db):
    seq = itertools.count(1)

    async def _make(username=None):
        username = username or f'user{next(seq)}'
        return await crud.create_user(username=username, email=f'{username}@example.com')

    return _make


@pytest_asyncio.fixture
async def client(db):
    from blogverse.main import app
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {'Authorization': f"Bearer {create_access_token({'id': user_id})}"}
    return _headers


@pytest.fixture
def counts():
    """(followers_count, following_count) as stored on the user row"""
    async def _counts(user_id):
        user = await crud.get_user_by_id(user_id)
        return user.followers_count, user.following_count
    return _counts


@pytest.fixture
def true_counts():
    """(followers, following) computed from the follows table"""
    async def _true_counts(user_id):
        async with AsyncSessionLocal() as session:
            followers = await session.scalar(
                select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
            )
            following = await session.scalar(
                select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
            )
        return followers, following
    return _true_counts


@pytest.fixture
def force_counts():
    """Write counters directly to simulate drift"""
    async def _force(user_id, **values):
        async with AsyncSessionLocal() as session:
            await session.execute(update(User).where(User.id == user_id).values(**values))
            await session.commit()
    return _force


class DummyRedis:
    """In-memory replacement for the redis.asyncio calls the cache and queue make"""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.lists = {}

    async def setex(self, key, ttl, value):
        self.store[key] = value if isinstance(value, bytes) else str(value).encode()
        self.ttls[key] = ttl
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, *keys):
        return sum(self.store.pop(key, None) is not None for key in keys)

    async def incrby(self, key, amount):
        value = int(self.store.get(key, b'0')) + amount
        self.store[key] = str(value).encode()
        return value

    async def expire(self, key, ttl):
        if key not in self.store and key not in self.lists:
            return False
        self.ttls[key] = ttl
        return True

    async def lpush(self, key, *values):
        self.lists.setdefault(key, [])[:0] = reversed(values)
        return len(self.lists[key])


class BrokenProducer:
    async def send(self, *args, **kwargs):
        raise RuntimeError('broker unavailable')


@pytest.fixture
def dummy_redis(monkeypatch):
    redis = DummyRedis()
    monkeypatch.setattr(core, 'REDIS', redis)
    return redis


@pytest.fixture
def broken_kafka(monkeypatch):
    monkeypatch.setattr(core, 'KAFKA_PRODUCER', BrokenProducer())
