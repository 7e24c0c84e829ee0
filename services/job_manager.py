# services/job_manager.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from exceptions import ApiErrorKind, ConfigMissing, ExternalApiError
from services import embeds
from services.player_tracker import PlayerTracker
from utils.chat import ChatChannel, ChatGuild, resolve_channel
from utils.guild_config import GuildConfig, GuildConfigStore
from utils.pagination import send_paginated
from utils.rcon_client import RconClient
from utils.scheduler import Scheduler, Ticket

log = logging.getLogger(__name__)

LIST_INTERVAL_SECONDS = 600.0
PLAYERS_PAGE_SIZE = 7
PLAYERS_SESSION_SECONDS = 240.0
CLEANUP_SCAN_LIMIT = 50


@dataclass(frozen=True)
class _JobProfile:
    title: str
    channel_field: str
    flag_field: str
    channel_label: str
    start_cmd: str
    stop_cmd: str
    posts: str


class JobKind(str, Enum):
    AUTOLIST = "autolist"
    COMMUNITYLIST = "communitylist"

    @property
    def profile(self) -> _JobProfile:
        return _PROFILES[self]

    def owns_title(self, title: str, config: GuildConfig) -> bool:
        """True if an embed title was posted by this kind of job."""
        if self is JobKind.AUTOLIST:
            return "Players on" in title or "online" in title
        needles = ["Community Status", config.server_id, config.display_name or ""]
        return any(n and n in title for n in needles)


_PROFILES = {
    JobKind.AUTOLIST: _JobProfile(
        title="Auto-list",
        channel_field="rcon_terminal_channel_id",
        flag_field="auto_list_enabled",
        channel_label="RCON Terminal Channel",
        start_cmd="startautolist",
        stop_cmd="stopautolist",
        posts="Player lists",
    ),
    JobKind.COMMUNITYLIST: _JobProfile(
        title="Community List",
        channel_field="online_list_channel_id",
        flag_field="community_list_enabled",
        channel_label="Online List Channel",
        start_cmd="startcommunitylist",
        stop_cmd="stopcommunitylist",
        posts="Server status and player counts",
    ),
}


class StartResult(str, Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    CHANNEL_NOT_CONFIGURED = "channel_not_configured"
    CHANNEL_NOT_FOUND = "channel_not_found"
    CANCELLED = "cancelled"


_UPSTREAM_HINTS = {
    ApiErrorKind.OFFLINE: "🔴 server offline",
    ApiErrorKind.AUTH: "🔑 auth failed, check API token",
    ApiErrorKind.TIMEOUT: "⏱️ request timed out",
    ApiErrorKind.NETWORK: "⚠️ network error",
    ApiErrorKind.REJECTED: "⚠️ server returned an error",
}


class JobManager:
    """
    Owns the recurring auto-list / community-list jobs, at most one per
    (guild, kind). The persisted `*_enabled` flags are the only durable state;
    `restore()` rebuilds the in-memory tickets from them after a restart.
    """

    def __init__(
        self,
        bot,
        store: GuildConfigStore,
        rcon: RconClient,
        tracker: PlayerTracker,
        scheduler: Scheduler,
        interval: float = LIST_INTERVAL_SECONDS,
    ):
        self.bot = bot
        self.store = store
        self.rcon = rcon
        self.tracker = tracker
        self.scheduler = scheduler
        self.interval = interval
        self._jobs: dict[tuple[str, JobKind], Ticket] = {}

    # ---- state --------------------------------------------------------

    def is_running(self, guild_id: str | int, kind: JobKind) -> bool:
        return (str(guild_id), kind) in self._jobs

    def running(self) -> list[tuple[str, JobKind]]:
        return sorted(self._jobs, key=lambda k: (k[0], k[1].value))

    @property
    def interval_minutes(self) -> int:
        return max(1, int(self.interval // 60))

    # ---- transitions --------------------------------------------------

    async def start(self, guild: ChatGuild, kind: JobKind, *, immediate: bool = True, persist: bool = True) -> StartResult:
        gid = str(guild.id)
        key = (gid, kind)
        if key in self._jobs:
            return StartResult.ALREADY_RUNNING

        cfg = self.store.get(gid)
        channel_id = getattr(cfg, kind.profile.channel_field, None) if cfg else None
        if not channel_id:
            return StartResult.CHANNEL_NOT_CONFIGURED
        if resolve_channel(guild, channel_id) is None:
            return StartResult.CHANNEL_NOT_FOUND

        # register first so a second start during the immediate poll is rejected
        ticket = self.scheduler.every(
            self.interval,
            lambda: self.poll_and_post(guild, kind),
            name=f"{kind.value}:{gid}",
        )
        self._jobs[key] = ticket
        if immediate:
            await self._guarded_poll(guild, kind)
            if self._jobs.get(key) is not ticket:
                # stopped while the first poll was running; stop() already persisted false
                log.info("[jobs] %s for guild %s stopped during its first poll", kind.value, gid)
                return StartResult.CANCELLED
        if persist:
            self.store.set_enabled(gid, kind.profile.flag_field, True)
        log.info("[jobs] %s started for guild %s (every %.0fs)", kind.value, gid, self.interval)
        return StartResult.STARTED

    def stop(self, guild_id: str | int, kind: JobKind) -> bool:
        key = (str(guild_id), kind)
        ticket = self._jobs.pop(key, None)
        if ticket is None:
            return False
        ticket.revoke()
        self.scheduler.forget(ticket)
        self.store.set_enabled(key[0], kind.profile.flag_field, False)
        log.info("[jobs] %s stopped for guild %s", kind.value, key[0])
        return True

    async def restore(self) -> int:
        """Re-register every job whose enabled flag survived a restart."""
        restored = 0
        for kind in JobKind:
            for cfg in self.store.enabled(kind.profile.flag_field):
                guild = self.bot.get_guild(int(cfg.guild_id)) if cfg.guild_id.isdigit() else None
                if guild is None:
                    log.warning("[jobs] cannot restore %s: guild %s not visible", kind.value, cfg.guild_id)
                    continue
                result = await self.start(guild, kind, immediate=True, persist=False)
                if result is StartResult.STARTED:
                    restored += 1
                    log.info("[jobs] restored %s for guild %s", kind.value, cfg.guild_id)
                elif result not in (StartResult.ALREADY_RUNNING, StartResult.CANCELLED):
                    log.warning("[jobs] cannot restore %s for guild %s: %s", kind.value, cfg.guild_id, result.value)
        return restored

    def shutdown(self) -> None:
        """Drop all tickets; persisted flags stay as they are for the next start."""
        for ticket in self._jobs.values():
            ticket.revoke()
        self._jobs.clear()

    # ---- one tick -----------------------------------------------------

    async def _guarded_poll(self, guild: ChatGuild, kind: JobKind) -> None:
        try:
            await self.poll_and_post(guild, kind)
        except Exception:
            log.exception("[jobs] immediate %s poll failed for guild %s", kind.value, guild.id)

    async def poll_and_post(self, guild: ChatGuild, kind: JobKind) -> bool:
        """Clean up the previous post, poll `#players` and post a fresh summary. Returns True if posted."""
        cfg = self.store.get(guild.id)
        if cfg is None:
            log.warning("[jobs] %s: guild %s has no config; skipping tick", kind.value, guild.id)
            return False
        channel = resolve_channel(guild, getattr(cfg, kind.profile.channel_field))
        if channel is None:
            log.error("[jobs] %s: %s %s not found", kind.value, kind.profile.channel_label, getattr(cfg, kind.profile.channel_field))
            return False

        await self.cleanup(channel, cfg, kind)

        try:
            entries = await self.rcon.players(cfg)
        except ConfigMissing:
            log.warning("[jobs] %s: guild %s missing server id / token", kind.value, guild.id)
            return False
        except ExternalApiError as e:
            log.warning("[jobs] %s: %s for %s - %s", kind.value, _UPSTREAM_HINTS[e.kind], cfg.server_id, e.reason)
            return False

        await self.tracker.record(entries)

        if kind is JobKind.AUTOLIST:
            await send_paginated(
                channel,
                [embeds.player_line(e) for e in entries],
                PLAYERS_PAGE_SIZE,
                embeds.players_renderer(cfg.label, len(entries)),
                empty=embeds.players_empty(cfg.label),
                timeout=PLAYERS_SESSION_SECONDS,
            )
        else:
            await channel.send(embed=embeds.community_status(cfg, entries))
        log.info("[jobs] %s posted for %s: %d player(s)", kind.value, cfg.server_id, len(entries))
        return True

    async def cleanup(self, channel: ChatChannel, cfg: GuildConfig, kind: JobKind) -> int:
        """Delete this job's earlier posts. Best effort: each failure is logged and skipped."""
        me = getattr(self.bot, "user", None)
        if me is None:
            return 0
        stale = []
        try:
            async for msg in channel.history(limit=CLEANUP_SCAN_LIMIT):
                if msg.author.id != me.id or not msg.embeds:
                    continue
                if kind.owns_title(msg.embeds[0].title or "", cfg):
                    stale.append(msg)
        except Exception as e:
            log.warning("[jobs] %s: could not scan channel history: %s", kind.value, e)

        deleted = 0
        for msg in stale:
            try:
                await msg.delete()
                deleted += 1
            except Exception as e:
                log.warning("[jobs] %s: could not delete message %s: %s", kind.value, getattr(msg, "id", "?"), e)
        if deleted:
            log.info("[jobs] %s: deleted %d old message(s)", kind.value, deleted)
        return deleted
