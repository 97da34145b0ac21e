"""Seed script — wipe all data and create creators, a fan and one post of each kind.

Usage (from the api directory):
    python seed.py

Usage (via docker):
    docker compose exec api python seed.py
"""
import asyncio

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.db.database import engine, async_session, init_db
from contentlynk.models.post import Post, ContentKind
from contentlynk.models.user import User, CreatorTier


# Test accounts to create
TEST_USERS = [
    {
        'name': 'Alice',
        'handle': 'alice',
        'tier': CreatorTier.STANDARD.value,
        'has_bonus_pass': False,
    },
    {
        'name': 'Gina',
        'handle': 'gina',
        'tier': CreatorTier.GENESIS.value,
        'has_bonus_pass': True,
    },
    {
        # Standing not synced yet: earnings come out ESTIMATED
        'name': 'Nate',
        'handle': 'nate',
        'tier': None,
        'has_bonus_pass': None,
    },
    {
        'name': 'Bob',
        'handle': 'bob',
        'tier': None,
        'has_bonus_pass': False,
    },
]

# (author handle, kind, measurement columns)
TEST_POSTS = [
    ('alice', ContentKind.TEXT, {'body': 'Hello Contentlynk! ' * 80}),
    ('alice', ContentKind.ARTICLE, {'body': 'Long read', 'reading_time_minutes': 7}),
    ('gina', ContentKind.VIDEO, {'duration_seconds': 1200}),
    ('nate', ContentKind.SHORT_VIDEO, {'duration_seconds': 25}),
]


async def wipe_all(db: AsyncSession):
    """Truncate all tables in dependency-safe order."""
    tables = [
        'earnings_records',
        'consumption_samples',
        'view_logs',
        'engagements',
        'posts',
        'users',
    ]
    for table in tables:
        await db.execute(text(f'TRUNCATE TABLE {table} RESTART IDENTITY CASCADE'))
    await db.commit()
    print('✓ All tables wiped')


async def create_users(db: AsyncSession) -> dict[str, User]:
    """Create test users with their creator standing."""
    users = {}
    for u in TEST_USERS:
        user = User(
            name=u['name'],
            handle=u['handle'],
            tier=u['tier'],
            has_bonus_pass=u['has_bonus_pass'],
        )
        db.add(user)
        await db.flush()
        users[user.handle] = user
        print(f'  ✓ {u["name"]} (@{u["handle"]}) — tier={u["tier"]}, id={user.id}')

    await db.commit()
    return users


async def create_posts(db: AsyncSession, users: dict[str, User]):
    """One post per content kind."""
    for handle, kind, columns in TEST_POSTS:
        post = Post(
            author_id=users[handle].id,
            title=f'{kind.value} by @{handle}',
            content_kind=kind.value,
            **columns,
        )
        db.add(post)
        await db.flush()
        print(f'  ✓ post {post.id}: {kind.value} by @{handle}')

    await db.commit()


async def main():
    print()
    print('=' * 50)
    print('  Contentlynk Seed Script')
    print('=' * 50)
    print()

    await init_db()

    async with async_session() as db:
        print('[1/3] Wiping all data...')
        await wipe_all(db)

        print('[2/3] Creating test users...')
        users = await create_users(db)

        print('[3/3] Creating posts...')
        await create_posts(db, users)

    await engine.dispose()

    print()
    print('Done! Ready for testing.')
    print()
    print('  Users:')
    for u in TEST_USERS:
        print(f'    @{u["handle"]}  —  tier {u["tier"] or "unknown"}')
    print()


if __name__ == '__main__':
    asyncio.run(main())
