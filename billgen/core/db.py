import ssl

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from billgen.config.settings import settings


def _connect_args() -> dict:
    # Managed Postgres (Neon etc.) needs an explicit SSL context for asyncpg
    if settings.DATABASE_SSL:
        return {"ssl": ssl.create_default_context()}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    connect_args=_connect_args(),
)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
