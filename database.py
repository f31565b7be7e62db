from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

import config

DATABASE_URL = config.resolve_database_url()

engine = create_async_engine(DATABASE_URL, echo=config.DB_ECHO, pool_pre_ping=True)

# expire_on_commit=False keeps loaded rows usable after commit without a lazy reload
async_session = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db():
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
