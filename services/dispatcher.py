# services/dispatcher.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import discord

from exceptions import ApiErrorKind, ConfigMissing, ExternalApiError, PermissionDenied, ValidationError
from utils.chat import ChatChannel, ChatGuild
from utils.guild_config import GuildConfig, GuildConfigStore

log = logging.getLogger(__name__)

NOT_CONFIGURED = "❌ This server is not configured yet. Run `{p}setup` first."
NO_PERMISSION = "❌ You do not have permission to use this command."
GENERIC_FAILURE = "❌ Something went wrong while running that command."

API_ERROR_REPLIES = {
    ApiErrorKind.OFFLINE: "🔴 The game server appears to be offline.",
    ApiErrorKind.AUTH: "🔑 The RCON API rejected our credentials. Check the API token with `{p}update`.",
    ApiErrorKind.TIMEOUT: "⏱️ The RCON API did not answer in time. Try again shortly.",
    ApiErrorKind.NETWORK: "⚠️ Could not reach the RCON API.",
    ApiErrorKind.REJECTED: "⚠️ The server rejected the command: {reason}",
}


@dataclass(frozen=True)
class Route:
    pattern: str
    handler: str
    exact: bool = False
    needs_config: bool = True

    def matches(self, content: str) -> bool:
        return content == self.pattern if self.exact else content.startswith(self.pattern)


def build_routes(prefix: str = "!") -> list[Route]:
    """Ordered route table; the first match wins."""
    p = prefix
    return [
        Route(f"{p}setup", "setup", needs_config=False),
        Route(f"{p}players", "players"),
        Route(f"{p}kick", "kick"),
        Route(f"{p}ban ", "ban"),
        Route(f"{p}banlist", "banlist", exact=True),
        Route(f"{p}commands", "commands", exact=True),
        Route(f"{p}startautolist", "start_autolist", exact=True),
        Route(f"{p}stopautolist", "stop_autolist", exact=True),
        Route(f"{p}startcommunitylist", "start_communitylist", exact=True),
        Route(f"{p}stopcommunitylist", "stop_communitylist", exact=True),
        Route(f"{p}update", "update", exact=True),
        Route(f"{p}find ", "find"),
        Route(f"{p}checkip", "checkip", exact=True),
        Route(f"{p}ipalert on", "ipalert_on", exact=True),
        Route(f"{p}ipalert off", "ipalert_off", exact=True),
        Route(f"{p}ipalert status", "ipalert_status", exact=True),
    ]


@dataclass
class CommandContext:
    message: Any
    guild: ChatGuild
    channel: ChatChannel
    config: Optional[GuildConfig]
    args: list[str] = field(default_factory=list)
    can_ban: bool = False

    @property
    def author(self):
        return self.message.author

    async def reply(self, content: str | None = None, **kwargs):
        return await self.channel.send(content, **kwargs)


Handler = Callable[[CommandContext], Awaitable[Any]]


def _can_ban(author) -> bool:
    perms = getattr(author, "guild_permissions", None)
    return bool(getattr(perms, "ban_members", False))


class CommandDispatcher:
    """Routes `!`-prefixed guild messages to handlers and turns their errors into replies."""

    def __init__(self, prefix: str, store: GuildConfigStore, handlers: dict[str, Handler]):
        self.prefix = prefix
        self.store = store
        self.handlers = handlers
        self.routes = build_routes(prefix)
        missing = {r.handler for r in self.routes} - set(handlers)
        if missing:
            raise ValueError(f"no handler for route(s): {', '.join(sorted(missing))}")

    def classify(self, content: str) -> Route | None:
        content = content.strip()
        for route in self.routes:
            if route.matches(content):
                return route
        return None

    async def dispatch(self, message) -> bool:
        """Handle one message. Returns True if a handler ran."""
        if getattr(message.author, "bot", False) or message.guild is None:
            return False
        content = (message.content or "").strip()
        if not content.startswith(self.prefix):
            return False

        route = self.classify(content)
        if route is None:
            return False

        config = self.store.get(message.guild.id)
        if config is None and route.needs_config:
            log.debug("[dispatch] %s ignored: guild %s has no config", route.handler, message.guild.id)
            return False

        ctx = CommandContext(
            message=message,
            guild=message.guild,
            channel=message.channel,
            config=config,
            args=content.split()[1:],
            can_ban=_can_ban(message.author),
        )
        log.info("[dispatch] %s by %s in guild %s", route.handler, getattr(message.author, "id", "?"), message.guild.id)
        try:
            await self.handlers[route.handler](ctx)
        except PermissionDenied:
            await self._safe_reply(ctx, NO_PERMISSION)
        except ConfigMissing:
            await self._safe_reply(ctx, NOT_CONFIGURED.format(p=self.prefix))
        except ValidationError as e:
            await self._safe_reply(ctx, str(e))
        except ExternalApiError as e:
            log.warning("[dispatch] %s failed upstream: %s", route.handler, e)
            await self._safe_reply(ctx, API_ERROR_REPLIES[e.kind].format(p=self.prefix, reason=e.reason))
        except Exception:
            log.exception("[dispatch] %s crashed", route.handler)
            await self._safe_reply(ctx, GENERIC_FAILURE)
        return True

    async def _safe_reply(self, ctx: CommandContext, text: str) -> None:
        try:
            await ctx.reply(text)
        except discord.HTTPException as e:
            log.warning("[dispatch] could not reply in channel %s: %s", getattr(ctx.channel, "id", "?"), e)
