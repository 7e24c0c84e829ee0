# services/context.py
from __future__ import annotations

import time
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.activity import ActivityLogger
from services.commands import CommandHandlers
from services.dispatcher import CommandDispatcher
from services.ip_monitor import IPMonitor
from services.job_manager import JobManager
from services.player_tracker import PlayerTracker
from services.wizards import Wizards
from utils.config import Settings
from utils.guild_config import GuildConfigStore
from utils.rcon_client import RconClient
from utils.scheduler import Scheduler


@dataclass
class BotContext:
    """Everything the bot's commands, jobs and dashboard share, built once per process."""

    bot: object
    store: GuildConfigStore
    rcon: RconClient
    tracker: PlayerTracker
    activity: ActivityLogger
    scheduler: Scheduler
    jobs: JobManager
    ip_monitor: IPMonitor
    dispatcher: CommandDispatcher
    started_at: float = field(default_factory=time.time)

    async def close(self) -> None:
        self.jobs.shutdown()
        self.ip_monitor.stop()
        self.scheduler.revoke_all()
        await self.rcon.close()


def build_context(bot, cfg: Settings, session_maker: async_sessionmaker[AsyncSession]) -> BotContext:
    prefix = cfg.DISCORD_COMMAND_PREFIX
    store = GuildConfigStore(cfg.GUILD_CONFIG_PATH)
    rcon = RconClient(cfg.RCON_API_BASE, timeout=cfg.RCON_TIMEOUT_SECONDS)
    tracker = PlayerTracker(session_maker)
    activity = ActivityLogger(session_maker)
    scheduler = Scheduler()
    jobs = JobManager(bot, store, rcon, tracker, scheduler, interval=cfg.LIST_INTERVAL_SECONDS)
    ip_monitor = IPMonitor(
        cfg.IP_MONITOR_PATH, cfg.IP_CHECK_URL, cfg.IP_CHECK_INTERVAL_HOURS,
        bot=bot, scheduler=scheduler, prefix=prefix,
    )
    wizards = Wizards(bot, prefix, store, jobs, ip_monitor, activity)
    handlers = CommandHandlers(prefix, rcon, jobs, ip_monitor, tracker, activity, wizards)
    dispatcher = CommandDispatcher(prefix, store, handlers.table())
    return BotContext(
        bot=bot,
        store=store,
        rcon=rcon,
        tracker=tracker,
        activity=activity,
        scheduler=scheduler,
        jobs=jobs,
        ip_monitor=ip_monitor,
        dispatcher=dispatcher,
    )
