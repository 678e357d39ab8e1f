from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from medbox_relay.domain.db_models import Base, ConfigRow

"""
Conexion a la BDD (pool async) y fabrica de sesiones.

SQLite (aiosqlite) por defecto; Postgres con postgresql+asyncpg://...
"""


def build_engine(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        # pool_size / max_overflow no aplican a SQLite
        return create_async_engine(database_url)

    return create_async_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine) -> None:
    """Crea las tablas que falten y la fila de config por defecto."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        existing = (await session.execute(select(ConfigRow.id).limit(1))).scalar_one_or_none()
        if existing is None:
            session.add(ConfigRow())
            await session.commit()
