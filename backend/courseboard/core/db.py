from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from courseboard import models  # noqa: F401  registers the tables
from courseboard.core.config import settings

async_engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI)


async def init_db(engine: AsyncEngine = async_engine) -> None:
    """Create missing tables.

    :param engine: The engine to create the tables with.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
