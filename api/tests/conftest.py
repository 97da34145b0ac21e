import itertools
from datetime import datetime

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

import contentlynk.models  # noqa: F401  registers mappers
from contentlynk.main import app
from contentlynk.db.database import Base, get_db
from contentlynk.models.post import Post, ContentKind
from contentlynk.models.user import User, CreatorTier

_handles = itertools.count(1)


@pytest.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database per test."""
    engine = create_async_engine(
        f'sqlite+aiosqlite:///{tmp_path / "contentlynk_test.db"}', echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Database session for direct queries in tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory):
    """Async HTTP client for testing, bound to the per-test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Create and commit a user. Standing defaults to a STANDARD creator without a pass."""

    async def _make_user(
        tier: str | None = CreatorTier.STANDARD.value,
        has_bonus_pass: bool | None = False,
        created_at: datetime | None = None,
    ) -> User:
        n = next(_handles)
        user = User(
            name=f'User {n}',
            handle=f'user{n}',
            tier=tier,
            has_bonus_pass=has_bonus_pass,
            created_at=created_at or datetime.utcnow(),
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_post(db_session):
    """Create and commit a post. Extra keyword args set Post columns directly."""

    async def _make_post(
        author: User,
        content_kind: str = ContentKind.TEXT.value,
        body: str | None = 'Short post body',
        **columns,
    ) -> Post:
        post = Post(
            author_id=author.id,
            title='Test post',
            content_kind=content_kind,
            body=body,
            **columns,
        )
        db_session.add(post)
        await db_session.commit()
        return post

    return _make_post


@pytest.fixture
def fail_next_execute(db_session, monkeypatch):
    """Make the next `db_session.execute` raise as if the connection dropped."""

    def _arm():
        original = db_session.execute
        state = {'armed': True}

        async def execute(*args, **kwargs):
            if state['armed']:
                state['armed'] = False
                raise OperationalError('SELECT', {}, Exception('connection reset'))
            return await original(*args, **kwargs)

        monkeypatch.setattr(db_session, 'execute', execute)

    return _arm
