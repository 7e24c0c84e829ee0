# services/wizards.py
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable

import discord

from exceptions import ExternalApiError, ValidationError, WizardCancelled, WizardTimeout
from services.activity import ActivityLogger
from services.dispatcher import CommandContext
from services.ip_monitor import IPMonitor
from services.job_manager import JobKind, JobManager
from utils.chat import ChatGuild
from utils.guild_config import GuildConfig, GuildConfigStore

log = logging.getLogger(__name__)

STEP_TIMEOUT = 120.0
MENU_TIMEOUT = 30.0

_SERVER_ID = re.compile(r"^[A-Za-z0-9-]+$")
_CHANNEL = re.compile(r"^(?:<#(\d+)>|(\d+))$")


# ---- validators -------------------------------------------------------

def validate_server_id(raw: str) -> str:
    value = raw.strip()
    if not _SERVER_ID.match(value):
        raise ValidationError("❌ Invalid server ID. Use only letters, numbers and dashes.")
    return value


def validate_display_name(raw: str) -> str:
    value = raw.strip()
    if not 1 <= len(value) <= 50:
        raise ValidationError("❌ Display name must be between 1 and 50 characters.")
    return value


def validate_api_token(raw: str) -> str:
    value = raw.strip()
    if len(value) < 10:
        raise ValidationError("❌ API token looks too short (at least 10 characters).")
    return value


def parse_channel(guild: ChatGuild, raw: str) -> str:
    """Accept a `<#id>` mention or a raw id of a channel that exists in this guild."""
    m = _CHANNEL.match(raw.strip())
    if not m:
        raise ValidationError("❌ Please mention a channel (#channel) or paste its numeric ID.")
    cid = m.group(1) or m.group(2)
    if guild.get_channel(int(cid)) is None:
        raise ValidationError(f"❌ Channel `{cid}` was not found in this server.")
    return cid


def mask_token(token: str) -> str:
    if len(token) <= 8:
        return "***"
    return token[:4] + "…" + token[-4:]


@dataclass(frozen=True)
class _Step:
    field: str
    label: str
    prompt: str
    kind: str  # "text" or "channel"
    validate: Callable[[str], str] | None = None


STEPS = [
    _Step("server_id", "Server ID", "**Step 1/6:** Enter your 0grind.io **server ID**.", "text", validate_server_id),
    _Step("display_name", "Display Name", "**Step 2/6:** Enter a **display name** for this server (1-50 characters).", "text", validate_display_name),
    _Step("api_token", "API Token", "**Step 3/6:** Enter your 0grind.io **API token**.", "text", validate_api_token),
    _Step("ban_log_channel_id", "Ban Log Channel", "**Step 4/6:** Mention the **ban log channel**.", "channel"),
    _Step("online_list_channel_id", "Online List Channel", "**Step 5/6:** Mention the **online list channel** (community status).", "channel"),
    _Step("rcon_terminal_channel_id", "RCON Terminal Channel", "**Step 6/6:** Mention the **RCON terminal channel** (auto player list).", "channel"),
]


class Wizards:
    """Interactive `!setup` and `!update` conversations run in the invoking channel."""

    def __init__(
        self,
        bot,
        prefix: str,
        store: GuildConfigStore,
        jobs: JobManager,
        ip_monitor: IPMonitor,
        activity: ActivityLogger,
    ):
        self.bot = bot
        self.prefix = prefix
        self.store = store
        self.jobs = jobs
        self.ip_monitor = ip_monitor
        self.activity = activity

    async def ask(self, ctx: CommandContext, prompt: str, step: str, timeout: float = STEP_TIMEOUT) -> str:
        await ctx.reply(prompt)
        author_id = ctx.author.id
        channel_id = ctx.channel.id

        def check(m) -> bool:
            return m.author.id == author_id and m.channel.id == channel_id

        try:
            answer = await self.bot.wait_for("message", check=check, timeout=timeout)
        except asyncio.TimeoutError:
            raise WizardTimeout(step) from None
        content = (answer.content or "").strip()
        if content.lower() == "cancel":
            raise WizardCancelled()
        return content

    def _validated(self, ctx: CommandContext, step: _Step, raw: str) -> str:
        if step.kind == "channel":
            return parse_channel(ctx.guild, raw)
        return step.validate(raw)

    # ---- setup --------------------------------------------------------

    async def setup(self, ctx: CommandContext) -> None:
        try:
            ip = await self.ip_monitor.fetch_ip()
        except ExternalApiError as e:
            log.warning("[setup] could not determine egress IP: %s", e)
            ip = "unknown"

        intro = discord.Embed(
            title="🔧 RconArma Setup",
            description=(
                "Answer the following questions to connect this server to the 0grind.io RCON API.\n"
                f"You have {int(STEP_TIMEOUT)} seconds per step. Type `cancel` at any time to abort."
            ),
            color=0x3498DB,
        )
        intro.add_field(name="🌐 Bot IP (whitelist this on 0grind.io)", value=f"`{ip}`", inline=False)
        await ctx.reply(embed=intro)

        values: dict[str, str] = {}
        try:
            for step in STEPS:
                raw = await self.ask(ctx, step.prompt, step.field)
                values[step.field] = self._validated(ctx, step, raw)
        except WizardTimeout:
            await ctx.reply(f"⏱️ Setup timed out. Run `{self.prefix}setup` to start again.")
            return
        except WizardCancelled:
            await ctx.reply("❌ Setup cancelled. Nothing was saved.")
            return
        except ValidationError as e:
            await ctx.reply(f"{e}\nSetup aborted. Run `{self.prefix}setup` to start again.")
            return

        cfg = GuildConfig(
            guild_id=str(ctx.guild.id),
            auto_list_enabled=True,
            community_list_enabled=True,
            **values,
        )
        self.store.save(cfg)
        log.info("[setup] guild %s configured for server %s", cfg.guild_id, cfg.server_id)

        summary = discord.Embed(title="✅ Setup Complete", color=0x2ECC71)
        for step in STEPS:
            value = values[step.field]
            if step.field == "api_token":
                value = mask_token(value)
            elif step.kind == "channel":
                value = f"<#{value}>"
            summary.add_field(name=step.label, value=value, inline=True)
        summary.set_footer(text=f"Use {self.prefix}commands to see what the bot can do.")
        await ctx.reply(embed=summary)

        for kind in JobKind:
            result = await self.jobs.start(ctx.guild, kind)
            log.info("[setup] %s for guild %s: %s", kind.value, cfg.guild_id, result.value)

        await self.activity.log(ctx.guild.id, "configuration_created", {
            "server_id": cfg.server_id,
            "display_name": cfg.display_name,
            "by": str(ctx.author),
        })

    # ---- update -------------------------------------------------------

    async def update(self, ctx: CommandContext) -> None:
        menu = discord.Embed(
            title="⚙️ Update Configuration",
            description="\n".join(f"**{i}.** {s.label}" for i, s in enumerate(STEPS, start=1))
            + f"\n\nReply with a number within {int(MENU_TIMEOUT)} seconds, or `cancel`.",
            color=0x3498DB,
        )
        await ctx.reply(embed=menu)
        try:
            choice = await self.ask(ctx, "Which setting do you want to change?", "menu", timeout=MENU_TIMEOUT)
            if not choice.isdigit() or not 1 <= int(choice) <= len(STEPS):
                raise ValidationError(f"❌ Invalid choice. Pick a number from 1 to {len(STEPS)}.")
            step = STEPS[int(choice) - 1]
            raw = await self.ask(ctx, f"Enter the new **{step.label}**:", step.field)
            value = self._validated(ctx, step, raw)
        except WizardTimeout:
            await ctx.reply(f"⏱️ Update timed out. Run `{self.prefix}update` to try again.")
            return
        except WizardCancelled:
            await ctx.reply("❌ Update cancelled. Nothing was changed.")
            return
        except ValidationError as e:
            await ctx.reply(f"{e}\nRun `{self.prefix}update` to try again.")
            return

        self.store.update_field(ctx.guild.id, step.field, value)
        shown = "(hidden)" if step.field == "api_token" else (f"<#{value}>" if step.kind == "channel" else value)
        done = discord.Embed(title="✅ Configuration Updated", color=0x2ECC71)
        done.add_field(name=step.label, value=shown, inline=False)
        await ctx.reply(embed=done)
        await self.activity.log(ctx.guild.id, "configuration_updated", {"field": step.field, "by": str(ctx.author)})
