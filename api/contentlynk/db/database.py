from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from contentlynk.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    """Request-scoped session. Commits on success, rolls back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def insert_if_absent(
    db: AsyncSession,
    model: type[Base],
    conflict_columns: list[str],
    values: dict,
) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns True if this call inserted the row.

    The unique key in conflict_columns is the idempotency key; losing a race is
    not an error, the caller just reads the winner's row.
    """
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        stmt = postgresql.insert(model.__table__)
    elif dialect == 'sqlite':
        stmt = sqlite.insert(model.__table__)
    else:
        raise NotImplementedError(f'insert_if_absent not supported on {dialect}')

    stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    result = await db.execute(stmt)
    return result.rowcount == 1


async def init_db():
    """Create tables that don't exist yet (dev convenience; prod uses alembic)."""
    import contentlynk.models  # noqa: F401  registers mappers

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
