import logging

import discord
from discord.ext import commands

log = logging.getLogger(__name__)


class RconCog(commands.Cog):
    def __init__(self, bot: commands.Bot, ctx):
        self.bot = bot
        self.ctx = ctx
        self._restored = False

    # Scan guild messages for `!` commands
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return
        await self.ctx.dispatcher.dispatch(message)

    # on_ready fires again after every reconnect; only the first one restores state
    @commands.Cog.listener()
    async def on_ready(self):
        if self._restored:
            return
        self._restored = True
        self.ctx.ip_monitor.start()
        restored = await self.ctx.jobs.restore()
        log.info("[rcon] ready: %d recurring job(s) restored across %d guild(s)", restored, len(self.bot.guilds))

    # commands are routed by the dispatcher; the bot's own command table is empty
    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        log.error("[rcon] command error: %s", error, exc_info=error)
