# services/commands.py
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from exceptions import ConfigMissing, ExternalApiError, PermissionDenied, ValidationError
from services import embeds
from services.activity import ActivityLogger
from services.dispatcher import CommandContext, Handler
from services.ip_monitor import IPMonitor
from services.job_manager import JobKind, JobManager, StartResult
from services.player_tracker import PlayerTracker
from utils.chat import resolve_channel
from utils.pagination import send_paginated
from utils.rcon_client import RconClient

log = logging.getLogger(__name__)

PLAYERS_PAGE_SIZE = 7
PLAYERS_SESSION_SECONDS = 240.0
BANS_PAGE_SIZE = 15
BANS_SESSION_SECONDS = 180.0
FIND_LIMIT = 10


def _config(ctx: CommandContext):
    if ctx.config is None or not ctx.config.is_ready:
        raise ConfigMissing(ctx.guild.id)
    return ctx.config


def _moderator(ctx: CommandContext) -> str:
    return getattr(ctx.author, "mention", None) or str(ctx.author)


class CommandHandlers:
    """One coroutine per routed command. Errors propagate to the dispatcher."""

    def __init__(
        self,
        prefix: str,
        rcon: RconClient,
        jobs: JobManager,
        ip_monitor: IPMonitor,
        tracker: PlayerTracker,
        activity: ActivityLogger,
        wizards,
    ):
        self.prefix = prefix
        self.rcon = rcon
        self.jobs = jobs
        self.ip_monitor = ip_monitor
        self.tracker = tracker
        self.activity = activity
        self.wizards = wizards

    def table(self) -> dict[str, Handler]:
        return {
            "setup": self.wizards.setup,
            "update": self.wizards.update,
            "players": self.players,
            "kick": self.kick,
            "ban": self.ban,
            "banlist": self.banlist,
            "commands": self.commands,
            "find": self.find,
            "checkip": self.checkip,
            "ipalert_on": self.ipalert_on,
            "ipalert_off": self.ipalert_off,
            "ipalert_status": self.ipalert_status,
            "start_autolist": lambda ctx: self.start_job(ctx, JobKind.AUTOLIST),
            "stop_autolist": lambda ctx: self.stop_job(ctx, JobKind.AUTOLIST),
            "start_communitylist": lambda ctx: self.start_job(ctx, JobKind.COMMUNITYLIST),
            "stop_communitylist": lambda ctx: self.stop_job(ctx, JobKind.COMMUNITYLIST),
        }

    # ---- server queries -----------------------------------------------

    async def players(self, ctx: CommandContext) -> None:
        cfg = _config(ctx)
        entries = await self.rcon.players(cfg)
        await self.tracker.record(entries)
        await send_paginated(
            ctx.channel,
            [embeds.player_line(e) for e in entries],
            PLAYERS_PAGE_SIZE,
            embeds.players_renderer(cfg.label, len(entries)),
            empty=embeds.players_empty(cfg.label),
            timeout=PLAYERS_SESSION_SECONDS,
        )

    async def banlist(self, ctx: CommandContext) -> None:
        cfg = _config(ctx)
        bans = await self.rcon.bans(cfg)
        await send_paginated(
            ctx.channel,
            [f"• **{b.name}** (`{b.uid}`)" for b in bans],
            BANS_PAGE_SIZE,
            embeds.bans_renderer(len(bans)),
            empty="🔓 No active bans found.",
            timeout=BANS_SESSION_SECONDS,
        )

    async def find(self, ctx: CommandContext) -> None:
        term = " ".join(ctx.args).strip()
        if not term:
            raise ValidationError(f"Usage: `{self.prefix}find <name>`")
        try:
            records, total = await self.tracker.search(term, limit=FIND_LIMIT)
        except SQLAlchemyError:
            log.exception("[find] search for %r failed", term)
            await ctx.reply("❌ The player database is unavailable right now.")
            return
        if not records:
            await ctx.reply(f"🔍 No players found matching \"{term}\".")
            return
        await ctx.reply(embed=embeds.find_results(term, records, total))

    # ---- moderation ---------------------------------------------------

    async def kick(self, ctx: CommandContext) -> None:
        cfg = _config(ctx)
        if not ctx.args:
            raise ValidationError(f"Usage: `{self.prefix}kick <UID>`")
        uid = ctx.args[0]
        player = await self.rcon.find_player(cfg, uid)
        await self.rcon.run(cfg, f"#kick {uid}")
        name = player.name if player else uid
        await ctx.reply(f"👢 Kicked **{name}** from {cfg.label}.")
        await self.activity.log(ctx.guild.id, "player_kicked", {"uid": uid, "name": name, "moderator": str(ctx.author)})

    async def ban(self, ctx: CommandContext) -> None:
        if not ctx.can_ban:
            raise PermissionDenied()
        cfg = _config(ctx)
        args = list(ctx.args)
        if args and args[0].lower() == "remove":
            await self._unban(ctx, args[1:])
            return
        if args and args[0].lower() == "create":
            args = args[1:]
        if len(args) < 3:
            raise ValidationError(
                f"Usage: `{self.prefix}ban [create] <UID|player> <durationSeconds> <reason>` "
                f"or `{self.prefix}ban remove <UID>`"
            )
        target, duration, reason = args[0], args[1], " ".join(args[2:])
        if not duration.isdigit():
            raise ValidationError("❌ Duration must be a whole number of seconds (0 = permanent).")
        seconds = int(duration)

        player = await self.rcon.find_player(cfg, target)
        await self.rcon.run(cfg, f"#ban create {target} {seconds} {reason}")

        embed = embeds.ban_embed(
            moderator=_moderator(ctx),
            player=player.name if player else target,
            player_id=player.player_id if player else "N/A",
            uid=player.uid if player else target,
            seconds=seconds,
            reason=reason,
        )
        await ctx.reply(embed=embed)
        await self._post_ban_log(ctx, embed)

        if player is not None:
            try:
                await self.rcon.run(cfg, f"#kick {player.player_id}")
            except ExternalApiError as e:
                log.warning("[ban] follow-up kick of %s failed: %s", player.player_id, e)

        await self.activity.log(ctx.guild.id, "player_banned", {
            "target": target,
            "uid": player.uid if player else target,
            "duration": seconds,
            "reason": reason,
            "moderator": str(ctx.author),
        })

    async def _unban(self, ctx: CommandContext, args: list[str]) -> None:
        if not args:
            raise ValidationError(f"Usage: `{self.prefix}ban remove <UID>`")
        uid = args[0]
        await self.rcon.run(ctx.config, f"#ban remove {uid}")
        embed = embeds.unban_embed(_moderator(ctx), uid)
        await ctx.reply(embed=embed)
        await self._post_ban_log(ctx, embed)
        await self.activity.log(ctx.guild.id, "player_unbanned", {"uid": uid, "moderator": str(ctx.author)})

    async def _post_ban_log(self, ctx: CommandContext, embed) -> None:
        channel = resolve_channel(ctx.guild, ctx.config.ban_log_channel_id)
        if channel is None:
            if ctx.config.ban_log_channel_id:
                log.warning("[ban] ban log channel %s not found", ctx.config.ban_log_channel_id)
            return
        try:
            await channel.send(embed=embed)
        except Exception as e:
            log.warning("[ban] could not post to ban log channel %s: %s", channel.id, e)

    # ---- help / ip ----------------------------------------------------

    async def commands(self, ctx: CommandContext) -> None:
        await ctx.reply(embeds.commands_text(self.prefix))

    async def checkip(self, ctx: CommandContext) -> None:
        ip = await self.ip_monitor.fetch_ip()
        await ctx.reply(
            f"🌐 **Bot's current IP address:** `{ip}`\n\n"
            "Make sure this IP is whitelisted on your 0grind.io dashboard."
        )

    async def ipalert_on(self, ctx: CommandContext) -> None:
        if self.ip_monitor.add_channel(ctx.channel.id):
            await ctx.reply("✅ IP change alerts enabled for this channel.")
        else:
            await ctx.reply("ℹ️ IP change alerts are already enabled for this channel.")

    async def ipalert_off(self, ctx: CommandContext) -> None:
        if self.ip_monitor.remove_channel(ctx.channel.id):
            await ctx.reply("🔕 IP change alerts disabled for this channel.")
        else:
            await ctx.reply("ℹ️ IP change alerts were not enabled for this channel.")

    async def ipalert_status(self, ctx: CommandContext) -> None:
        await ctx.reply(embeds.ip_status_text(self.ip_monitor.status()))

    # ---- recurring jobs -----------------------------------------------

    async def start_job(self, ctx: CommandContext, kind: JobKind) -> None:
        profile = kind.profile
        result = await self.jobs.start(ctx.guild, kind)
        if result is StartResult.STARTED:
            channel_id = getattr(self.jobs.store.get(ctx.guild.id), profile.channel_field)
            await ctx.reply(embed=embeds.job_started(
                profile.title, channel_id, profile.posts, f"{self.prefix}{profile.stop_cmd}", self.jobs.interval_minutes,
            ))
            await self.activity.log(ctx.guild.id, f"{kind.value}_started", {"moderator": str(ctx.author)})
        elif result is StartResult.ALREADY_RUNNING:
            await ctx.reply(f"⚠️ {profile.title} is already running. Use `{self.prefix}{profile.stop_cmd}` first.")
        elif result is StartResult.CANCELLED:
            await ctx.reply(f"⚠️ {profile.title} was stopped before its first update finished.")
        elif result is StartResult.CHANNEL_NOT_CONFIGURED:
            await ctx.reply(f"❌ {profile.channel_label} is not configured. Use `{self.prefix}update` to set it.")
        else:
            await ctx.reply(f"❌ {profile.channel_label} not found. Use `{self.prefix}update` to fix it.")

    async def stop_job(self, ctx: CommandContext, kind: JobKind) -> None:
        profile = kind.profile
        if not self.jobs.stop(ctx.guild.id, kind):
            await ctx.reply(f"⚠️ {profile.title} is not currently running.")
            return
        await ctx.reply(embed=embeds.job_stopped(profile.title, profile.posts, f"{self.prefix}{profile.start_cmd}"))
        await self.activity.log(ctx.guild.id, f"{kind.value}_stopped", {"moderator": str(ctx.author)})
