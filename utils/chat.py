"""Structural types for the parts of discord.py the command core relies on."""
from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Protocol


class ChatChannel(Protocol):
    id: int

    async def send(self, content: Optional[str] = None, **kwargs: Any) -> Any: ...

    def history(self, *, limit: Optional[int] = 100) -> AsyncIterator[Any]: ...


class ChatGuild(Protocol):
    id: int

    def get_channel(self, channel_id: int, /) -> Optional[ChatChannel]: ...


class ChatMessage(Protocol):
    content: str
    author: Any
    guild: Optional[ChatGuild]
    channel: ChatChannel

    async def reply(self, content: Optional[str] = None, **kwargs: Any) -> Any: ...


def resolve_channel(guild: ChatGuild, channel_id: Optional[str | int]) -> Optional[ChatChannel]:
    """Look a channel up in the guild cache; bad or missing ids resolve to None."""
    if channel_id is None:
        return None
    raw = str(channel_id).strip()
    if not raw.isdigit():
        return None
    return guild.get_channel(int(raw))
