import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from utils.config import settings

log = logging.getLogger(__name__)

async_engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)
async_session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

async def create_all(engine: AsyncEngine) -> None:
    """Create tables if they don't exist yet."""
    from models.base import Base
    from models import events, players  # noqa: F401  register tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def wait_for_db(engine: AsyncEngine, timeout: float = 10.0, attempts: int = 6, max_delay: float = 8.0) -> int:
    """Ping until the database answers, doubling the pause between tries. Returns the attempt that succeeded."""
    delay = 1.0
    for i in range(1, attempts + 1):
        try:
            await asyncio.wait_for(ping(engine), timeout=timeout)
            return i
        except Exception as e:
            if i == attempts:
                raise
            log.warning("[db] ping attempt %d/%d failed: %s; retrying in %.1fs", i, attempts, e, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)
    raise ValueError("attempts must be at least 1")
