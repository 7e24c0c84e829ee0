from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.players import PlayerRecord
from utils.rcon_client import PlayerEntry

log = logging.getLogger(__name__)


class PlayerTracker:
    """Remembers every player a `#players` poll has seen."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def record(self, entries: Iterable[PlayerEntry]) -> int:
        entries = list(entries)
        if not entries:
            return 0
        try:
            async with self._session_maker() as s:
                for e in entries:
                    await PlayerRecord.record_seen(s, uid=e.uid, name=e.name, player_id=e.player_id)
                await s.commit()
        except (SQLAlchemyError, OSError):
            log.exception("[tracker] failed to record %d player(s)", len(entries))
            return 0
        log.info("[tracker] recorded %d player(s)", len(entries))
        return len(entries)

    async def search(self, term: str, limit: int = 10) -> tuple[list[PlayerRecord], int]:
        async with self._session_maker() as s:
            return await PlayerRecord.search(s, term, limit=limit)

    async def count(self) -> int:
        async with self._session_maker() as s:
            return await PlayerRecord.count(s)
