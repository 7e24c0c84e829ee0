from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PlayerRecord(Base):
    __tablename__ = "player_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    uid: Mapped[str] = mapped_column(String(64), index=True, unique=True)
    name: Mapped[str] = mapped_column(String(128), index=True)
    player_id: Mapped[str] = mapped_column(String(16))
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    times_seen: Mapped[int] = mapped_column(Integer, default=1)

    @staticmethod
    async def record_seen(s: AsyncSession, *, uid: str, name: str, player_id: str) -> "PlayerRecord":
        row = await PlayerRecord.fetch_one(s, uid)
        now = _now()
        if row:
            row.name = name
            row.player_id = player_id
            row.last_seen = now
            row.times_seen = (row.times_seen or 1) + 1
        else:
            row = PlayerRecord(uid=uid, name=name, player_id=player_id, first_seen=now, last_seen=now, times_seen=1)
            s.add(row)
        return row

    @staticmethod
    async def search(s: AsyncSession, term: str, limit: int = 10) -> tuple[list["PlayerRecord"], int]:
        cond = func.lower(PlayerRecord.name).contains(term.lower(), autoescape=True)
        total = (await s.execute(select(func.count()).select_from(PlayerRecord).where(cond))).scalar_one()
        res = await s.execute(
            select(PlayerRecord).where(cond).order_by(PlayerRecord.last_seen.desc()).limit(limit)
        )
        return list(res.scalars()), int(total)

    @staticmethod
    async def fetch_one(s: AsyncSession, uid: str) -> Optional["PlayerRecord"]:
        res = await s.execute(select(PlayerRecord).where(PlayerRecord.uid == uid))
        return res.scalar_one_or_none()

    @staticmethod
    async def count(s: AsyncSession) -> int:
        res = await s.execute(select(func.count()).select_from(PlayerRecord))
        return int(res.scalar_one())
