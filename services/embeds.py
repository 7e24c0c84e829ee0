# services/embeds.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Sequence

import discord

from utils.guild_config import GuildConfig
from utils.pagination import PageRenderer
from utils.rcon_client import PlayerEntry

MAX_SERVER_PLAYERS = 128
COMMUNITY_SHOWN = 8
COMMUNITY_NAME_MAX = 20

C_INFO = 0x3498DB
C_OK = 0x2ECC71
C_LIST = 0x00AE86
C_BAN = 0xE74C3C
C_UNBAN = 0xF39C12
C_STOP = 0xFF5555
C_IDLE = 0x95A5A6


def _relative(ts: float | None = None) -> str:
    return f"<t:{int(ts if ts is not None else time.time())}:R>"


# ---- lists -------------------------------------------------------------

def player_line(e: PlayerEntry) -> str:
    return f"Player: {e.name}\nUID: {e.uid}\nID: {e.player_id}"


def players_renderer(label: str, total: int) -> PageRenderer:
    def render(index: int, count: int, page: Sequence[str]) -> discord.Embed:
        e = discord.Embed(title=f"Players on {label}: {total} online", description="\n\n".join(page), color=C_LIST)
        e.set_footer(text=f"Page {index + 1}/{count}")
        return e
    return render


def players_empty(label: str) -> discord.Embed:
    return discord.Embed(title=f"📋 Players on {label}: 0 online", color=C_IDLE)


def bans_renderer(total: int) -> PageRenderer:
    def render(index: int, count: int, page: Sequence[str]) -> discord.Embed:
        e = discord.Embed(title=f"🚫 Current Ban List: {total} total", description="\n".join(page), color=0xFF0000)
        e.set_footer(text=f"Page {index + 1}/{count}")
        return e
    return render


def community_status(config: GuildConfig, entries: Sequence[PlayerEntry], now: float | None = None) -> discord.Embed:
    count = len(entries)
    e = discord.Embed(
        title=f"🌍 {config.label} Community Status",
        description=f"**Players Online:** {count}/{MAX_SERVER_PLAYERS}",
        color=C_OK if count else C_IDLE,
        timestamp=datetime.fromtimestamp(now, timezone.utc) if now is not None else discord.utils.utcnow(),
    )
    e.add_field(name="📊 Server Load", value=f"{round(count / MAX_SERVER_PLAYERS * 100)}%", inline=True)
    e.add_field(name="🕐 Last Updated", value=_relative(now), inline=True)
    if count:
        names = []
        for p in entries[:COMMUNITY_SHOWN]:
            n = p.name if len(p.name) <= COMMUNITY_NAME_MAX else p.name[:COMMUNITY_NAME_MAX] + "..."
            names.append(f"• **{n}**")
        value = "\n".join(names)
        if count > COMMUNITY_SHOWN:
            value += f"\n*...and {count - COMMUNITY_SHOWN} more*"
        if len(value) <= 1024:
            e.add_field(name="👥 Recent Players", value=value, inline=False)
    return e


# ---- moderation --------------------------------------------------------

def duration_text(seconds: int) -> str:
    return "Permanent" if seconds == 0 else f"{seconds} second(s)"


def ban_embed(moderator: str, player: str, player_id: str, uid: str, seconds: int, reason: str) -> discord.Embed:
    e = discord.Embed(title="🔨 Player Banned", color=C_BAN, timestamp=discord.utils.utcnow())
    e.add_field(name="Moderator", value=moderator, inline=True)
    e.add_field(name="Player", value=player, inline=True)
    e.add_field(name="Player ID", value=player_id, inline=True)
    e.add_field(name="UID", value=uid, inline=True)
    e.add_field(name="Duration", value=duration_text(seconds), inline=True)
    e.add_field(name="Reason", value=reason[:1024], inline=False)
    return e


def unban_embed(moderator: str, uid: str) -> discord.Embed:
    e = discord.Embed(
        title="🔓 Player Unbanned",
        description=f"Removed ban for UID: {uid}",
        color=C_UNBAN,
        timestamp=discord.utils.utcnow(),
    )
    e.add_field(name="Moderator", value=moderator, inline=True)
    e.set_footer(text="RconArma Ban System")
    return e


def find_results(term: str, records: Sequence, total: int) -> discord.Embed:
    blocks = []
    for r in records:
        seen = "1 time" if r.times_seen == 1 else f"{r.times_seen} times"
        last = r.last_seen.timestamp() if r.last_seen else None
        blocks.append(f"**{r.name}**\nUID: `{r.uid}`\nID: `{r.player_id}`\nSeen: {seen}\nLast seen: {_relative(last)}")
    e = discord.Embed(title=f"🔍 Search Results for \"{term}\"", description="\n\n".join(blocks)[:4000], color=C_LIST)
    if total > len(records):
        e.set_footer(text=f"Showing first {len(records)} of {total} results")
    else:
        e.set_footer(text=f"Found {total} result{'' if total == 1 else 's'}")
    return e


# ---- jobs --------------------------------------------------------------

def job_started(title: str, channel_id: str, what: str, stop_cmd: str, minutes: int) -> discord.Embed:
    e = discord.Embed(
        title=f"✅ {title} Started",
        description=f"{what} will be automatically posted to <#{channel_id}> every {minutes} minutes.",
        color=0x00FF00,
    )
    e.add_field(name="Stop Command", value=f"`{stop_cmd}`", inline=True)
    return e


def job_stopped(title: str, what: str, start_cmd: str) -> discord.Embed:
    e = discord.Embed(title=f"🛑 {title} Stopped", description=f"{what} have been disabled.", color=C_STOP)
    e.add_field(name="Restart Command", value=f"`{start_cmd}`", inline=True)
    return e


# ---- help / ip ---------------------------------------------------------

def commands_text(p: str = "!") -> str:
    lines = [
        f"**{p}players** - List current online players",
        f"**{p}kick <UID>** - Kick a player",
        f"**{p}ban [create] <UID|player> <durationSeconds> <reason>** - Ban a player (0 = permanent)",
        f"**{p}ban remove <UID>** - Remove a ban (unban)",
        f"**{p}banlist** - Show the current ban list",
        f"**{p}find <name>** - Search for players by name in database",
        f"**{p}startautolist** - Start automatic player list updates",
        f"**{p}stopautolist** - Stop automatic player list updates",
        f"**{p}startcommunitylist** - Start community status monitoring",
        f"**{p}stopcommunitylist** - Stop community status monitoring",
        f"**{p}checkip** - Check the bot's current outbound IP address",
        f"**{p}ipalert on** - Enable IP change alerts for this channel",
        f"**{p}ipalert off** - Disable IP change alerts for this channel",
        f"**{p}ipalert status** - Show IP monitoring status",
        f"**{p}setup** - Configure bot for this server",
        f"**{p}update** - Update bot configuration",
    ]
    return "🔨 **Available Commands:**\n" + "\n".join(lines)


def ip_change_alert(old_ip: str, new_ip: str, p: str = "!") -> str:
    return (
        "🚨 **BOT IP ADDRESS CHANGED!**\n\n"
        f"**Old IP:** `{old_ip}`\n"
        f"**New IP:** `{new_ip}`\n\n"
        "⚠️ **ACTION REQUIRED:** Update your 0grind.io dashboard whitelist immediately!\n"
        f"🔧 Use `{p}checkip` to verify the current IP anytime.\n\n"
        f"🕒 Detected: {_relative()}"
    )


def ip_status_text(status: dict) -> str:
    last = status.get("last_checked")
    last_txt = _relative(datetime.fromisoformat(last).timestamp()) if last else "Never"
    return (
        "📊 **IP Monitoring Status:**\n\n"
        f"**Current IP:** `{status.get('current_ip') or 'Not checked yet'}`\n"
        f"**Last Checked:** {last_txt}\n"
        f"**Alert Channels:** {len(status.get('alert_channels') or [])}\n"
        f"**Monitoring:** {'✅ Active' if status.get('monitoring') else '❌ Inactive'}"
    )
