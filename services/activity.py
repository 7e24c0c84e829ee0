from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.events import ActivityLog

log = logging.getLogger(__name__)


class ActivityLogger:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def log(self, guild_id: str | int, action: str, details: dict[str, Any] | None = None) -> None:
        try:
            async with self._session_maker() as s:
                s.add(ActivityLog(guild_id=str(guild_id), action=action, details=details))
                await s.commit()
        except (SQLAlchemyError, OSError) as e:
            log.warning("[activity] could not log %s for guild %s: %s", action, guild_id, e)

    async def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        async with self._session_maker() as s:
            return [row.as_dict() for row in await ActivityLog.recent(s, limit=limit)]
